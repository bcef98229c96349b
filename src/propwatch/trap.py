"""Mutation traps — catch in-place changes to object-valued properties.

A full reassignment of an observed property goes through its monitor, but
`t.items.append(4)` or `t.config["debug"] = True` never touch the property
itself. The monitor therefore holds object values behind an ObservedObject:
a transparent proxy whose writes and mutating method calls are routed
through a MutationTrap.

For each intercepted mutation the trap:
  1. takes the current snapshot, or the part of it the wrapped value sits
     at, as the old value,
  2. applies the operation to the real object,
  3. replays it on a fresh copy of the old snapshot and commits that copy,
  4. calls back with (path, old snapshot, wrapper).

What counts as a mutation is decided by is_mutator() alone.
"""

from __future__ import annotations

import copy
import functools
import inspect
import operator
import types
from collections.abc import MutableMapping, MutableSequence, MutableSet
from typing import TYPE_CHECKING, Any

from propwatch._clone import WRAPPER_ATTR, clone, is_record, unwrap

if TYPE_CHECKING:
    from propwatch.monitor import Monitor

PATH_SEPARATOR = " -> "

# ─── Mutation policy ─────────────────────────────────────────────────────────

_MUTATORS: tuple[tuple[type, frozenset[str]], ...] = (
    (
        MutableMapping,
        frozenset({
            "update", "pop", "popitem", "clear", "setdefault",
            "move_to_end", "subtract", "__ior__",
        }),
    ),
    (
        MutableSequence,
        frozenset({
            "append", "extend", "insert", "pop", "remove", "clear", "sort", "reverse",
            "appendleft", "extendleft", "popleft", "rotate", "__iadd__", "__imul__",
        }),
    ),
    (
        MutableSet,
        frozenset({
            "add", "discard", "remove", "pop", "clear", "update",
            "difference_update", "intersection_update", "symmetric_difference_update",
            "__ior__", "__iand__", "__isub__", "__ixor__",
        }),
    ),
)


def is_mutator(obj: Any, name: str) -> bool:
    """Should calling obj.<name>() be reported as a change?

    Containers use a closed table of mutating methods. For record objects
    any plain function defined on the class counts, since there is no way
    to know what it touches.
    """
    for kind, names in _MUTATORS:
        if isinstance(obj, kind):
            return name in names
    if name.startswith("__") and name.endswith("__"):
        return False
    try:
        if name in vars(obj):
            return False
    except TypeError:
        return False
    return isinstance(inspect.getattr_static(type(obj), name, None), types.FunctionType)


def _setattr(obj, name, value):
    setattr(obj, name, value)


def _delattr(obj, name):
    delattr(obj, name)


def _setitem(obj, key, value):
    obj[key] = value


def _delitem(obj, key):
    del obj[key]


def _call(obj, name, *args, **kwargs):
    return getattr(obj, name)(*args, **kwargs)


# ─── Trap ────────────────────────────────────────────────────────────────────


def _locate(node: Any, keys: tuple) -> Any:
    """Follow keys down from node: attributes on records, items elsewhere."""
    for key in keys:
        node = unwrap(getattr(node, key) if is_record(node) else node[key])
    return node


class MutationTrap:
    """Capability interface over one wrapped value: get / set / invoke.

    keys locates the wrapped value inside the monitor's value; () for the
    value itself. Values reached through subscription or attribute access
    are wrapped in turn while depth allows, and report at their own path.
    """

    __slots__ = ("monitor", "real", "keys", "depth", "echo", "wrapper")

    def __init__(self, monitor: Monitor, real: Any, keys: tuple = (), depth: int = 1) -> None:
        self.monitor = monitor
        self.real = real
        self.keys = keys
        self.depth = depth
        # Set by an in-place operator that handed back its own wrapper.
        self.echo = False
        self.wrapper: ObservedObject | None = None

    @property
    def path(self) -> str:
        return PATH_SEPARATOR.join([self.monitor.path, *map(str, self.keys)])

    @property
    def live(self) -> bool:
        """False once the value was unobserved, reassigned or moved."""
        if not self.monitor.active:
            return False
        try:
            return _locate(unwrap(self.monitor.value), self.keys) is self.real
        except (LookupError, AttributeError, TypeError):
            return False

    def child(self, key: Any, value: Any) -> Any:
        """value as read from key: wrapped when it is a nested container."""
        if (
            self.depth > 1
            and not isinstance(key, slice)
            and isinstance(value, (MutableMapping, MutableSequence, MutableSet))
        ):
            return observed(self.monitor, value, self.keys + (key,), self.depth - 1)
        return value

    def get(self, name: str) -> Any:
        if is_mutator(self.real, name):
            method = getattr(self.real, name)

            @functools.wraps(method)
            def proxy(*args, **kwargs):
                return self.invoke(name, args, kwargs)

            return proxy
        value = getattr(self.real, name)
        if is_record(self.real) and name in vars(self.real):
            return self.child(name, value)
        return value

    def get_item(self, key: Any) -> Any:
        return self.child(key, self.real[key])

    def set(self, name: str, value: Any) -> None:
        if take_echo(value, self.monitor, self.keys + (name,)):
            return
        self._mutate(_setattr, name, value)

    def delete(self, name: str) -> None:
        self._mutate(_delattr, name)

    def set_item(self, key: Any, value: Any) -> None:
        if take_echo(value, self.monitor, self.keys + (key,)):
            return
        self._mutate(_setitem, key, value)

    def delete_item(self, key: Any) -> None:
        self._mutate(_delitem, key)

    def invoke(self, method: str, args: tuple = (), kwargs: dict | None = None) -> Any:
        result = self._mutate(_call, method, *args, **(kwargs or {}))
        if result is self.real and self.live:
            return self.wrapper
        return result

    def _mutate(self, apply, *args, **kwargs) -> Any:
        if not self.live:
            return apply(self.real, *args, **kwargs)
        monitor = self.monitor
        with monitor.lock:
            root = monitor.snapshot()
            old = _locate(root, self.keys)
            result = apply(self.real, *args, **kwargs)
            shadow = clone(root)
            apply(_locate(shadow, self.keys), *clone(args), **clone(kwargs))
            monitor.commit(shadow)
        monitor.notify(old, self.wrapper, self.path)
        return result


def observed(monitor: Monitor, real: Any, keys: tuple = (), depth: int = 1) -> ObservedObject:
    """Wrap real in an ObservedObject reporting to monitor."""
    trap = MutationTrap(monitor, real, keys, depth)
    trap.wrapper = ObservedObject(real, trap)
    return trap.wrapper


def trap_of(value: Any) -> MutationTrap | None:
    if getattr(type(value), WRAPPER_ATTR, False):
        return object.__getattribute__(value, "_pw_trap")
    return None


def take_echo(value: Any, monitor: Monitor, keys: tuple) -> bool:
    """True, once, when value is a wrapper an in-place operator handed back
    and it is being stored into the slot it was read from."""
    trap = trap_of(value)
    if trap is None or not trap.echo:
        return False
    if trap.monitor is not monitor or trap.keys != keys or not trap.live:
        return False
    trap.echo = False
    return True


# ─── Wrapper ─────────────────────────────────────────────────────────────────


def _forward(op):
    def method(self, other):
        return op(self._pw_real, unwrap(other))

    method.__name__ = f"__{op.__name__.strip('_')}__"
    return method


def _reflect(op):
    def method(self, other):
        return op(unwrap(other), self._pw_real)

    method.__name__ = f"__r{op.__name__.strip('_')}__"
    return method


def _inplace(name):
    def method(self, other):
        if not hasattr(self._pw_real, name):
            return NotImplemented
        result = self._pw_trap.invoke(name, (unwrap(other),))
        if unwrap(result) is not self._pw_real:
            return result
        self._pw_trap.echo = True
        return self

    method.__name__ = name
    return method


class ObservedObject:
    """Transparent stand-in for an observed object-valued property.

    Reads go straight to the real object; sub-key writes, attribute writes,
    deletions and mutating method calls go through the trap. Reports the
    wrapped class via __class__, so isinstance() checks keep passing.
    """

    __slots__ = ("_pw_real", "_pw_trap")
    __propwatch_wrapper__ = True

    def __init__(self, real: Any, trap: MutationTrap) -> None:
        object.__setattr__(self, "_pw_real", real)
        object.__setattr__(self, "_pw_trap", trap)

    @property
    def __class__(self):
        return type(self._pw_real)

    # --- Read operations (forward) ---

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_pw_"):
            raise AttributeError(name)
        return self._pw_trap.get(name)

    def __getitem__(self, key):
        return self._pw_trap.get_item(key)

    def __len__(self) -> int:
        return len(self._pw_real)

    def __iter__(self):
        return iter(self._pw_real)

    def __reversed__(self):
        return reversed(self._pw_real)

    def __contains__(self, item) -> bool:
        return item in self._pw_real

    def __bool__(self) -> bool:
        return bool(self._pw_real)

    def __hash__(self) -> int:
        return hash(self._pw_real)

    def __dir__(self):
        return dir(self._pw_real)

    def __repr__(self) -> str:
        return repr(self._pw_real)

    def __str__(self) -> str:
        return str(self._pw_real)

    def __copy__(self):
        return copy.copy(self._pw_real)

    def __deepcopy__(self, memo):
        return copy.deepcopy(self._pw_real, memo)

    __eq__ = _forward(operator.eq)
    __ne__ = _forward(operator.ne)
    __lt__ = _forward(operator.lt)
    __le__ = _forward(operator.le)
    __gt__ = _forward(operator.gt)
    __ge__ = _forward(operator.ge)
    __add__ = _forward(operator.add)
    __sub__ = _forward(operator.sub)
    __mul__ = _forward(operator.mul)
    __or__ = _forward(operator.or_)
    __and__ = _forward(operator.and_)
    __xor__ = _forward(operator.xor)
    __radd__ = _reflect(operator.add)
    __rmul__ = _reflect(operator.mul)
    __ror__ = _reflect(operator.or_)

    # --- Write operations (trap) ---

    def __setattr__(self, name: str, value) -> None:
        self._pw_trap.set(name, value)

    def __delattr__(self, name: str) -> None:
        self._pw_trap.delete(name)

    def __setitem__(self, key, value) -> None:
        self._pw_trap.set_item(key, value)

    def __delitem__(self, key) -> None:
        self._pw_trap.delete_item(key)

    __iadd__ = _inplace("__iadd__")
    __imul__ = _inplace("__imul__")
    __ior__ = _inplace("__ior__")
    __iand__ = _inplace("__iand__")
    __isub__ = _inplace("__isub__")
    __ixor__ = _inplace("__ixor__")
