"""Monitors — the instrumented accessor installed for one observed property.

Python has no per-instance descriptors, so the first monitor on a target
swaps the target's class for a private subclass that carries monitors as
data descriptors. The caller's class stays in the MRO (isinstance() and
methods keep working) and comes back when the last monitor is removed.

Object-valued properties are held behind a mutation trap wrapper over a
copy of the assigned value, so in-place changes are seen as well.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable

from propwatch._clone import BASE_ATTR, MONITORS_ATTR, clone, is_container, is_record, unwrap
from propwatch.errors import ConstantPropertyError, TargetTypeError
from propwatch.trap import observed, take_echo, trap_of

if TYPE_CHECKING:
    from propwatch.registry import Registry

logger = logging.getLogger("propwatch.monitor")

Callback = Callable[[str, Any, Any], None]


class Monitor:
    """Data descriptor bound to one (target, property) pair.

    Reads return the tracked value; writes update it, refresh the registry
    snapshot and then call callback(path, old_value, new_value).
    """

    __slots__ = (
        "_registry", "target", "name", "callback", "prefix", "depth", "value", "deleted", "active",
    )

    def __init__(
        self,
        registry: Registry,
        target: Any,
        name: str,
        callback: Callback,
        prefix: str = "",
        depth: int = 1,
    ) -> None:
        self._registry = registry
        self.target = target
        self.name = name
        self.callback = callback
        self.prefix = prefix
        self.depth = depth
        self.value: Any = None
        self.deleted = False
        self.active = True

    @property
    def path(self) -> str:
        return self.prefix + self.name

    @property
    def lock(self):
        return self._registry.lock

    # --- Descriptor protocol ---

    def __get__(self, instance, owner=None):
        if instance is None:
            return self
        if self.deleted:
            raise AttributeError(
                f"{type(instance).__name__!r} object has no attribute {self.name!r}"
            )
        trap = trap_of(self.value)
        if trap is not None:
            # Unclaimed echoes expire on the next read.
            trap.echo = False
        return self.value

    def __set__(self, instance, value) -> None:
        self.write(value)

    def __delete__(self, instance) -> None:
        if self.deleted:
            raise AttributeError(self.name)
        # Teardown is left to the deletion poller.
        self.deleted = True
        self.value = None
        logger.debug("Observed property %r deleted", self.path)

    # --- Tracking ---

    def track(self, value: Any) -> Any:
        """The live value to hold for value."""
        if is_container(value):
            return observed(self, clone(value), depth=self.depth)
        return value

    def write(self, value: Any) -> None:
        """Full reassignment of the observed property."""
        if take_echo(value, self, ()):
            # Augmented assignment storing our own wrapper back.
            return
        with self._registry.lock:
            old = self._registry.snapshot(self.target, self.name)
            self.deleted = False
            self.value = self.track(value)
            self._registry.set_snapshot(self.target, self.name, clone(value))
        self.notify(old, value)

    def snapshot(self) -> Any:
        return self._registry.snapshot(self.target, self.name)

    def commit(self, snapshot: Any) -> None:
        self._registry.set_snapshot(self.target, self.name, snapshot)

    def notify(self, old: Any, new: Any, path: str | None = None) -> None:
        if self.active:
            self.callback(path or self.path, old, new)

    def __repr__(self) -> str:
        state = "deleted" if self.deleted else ("active" if self.active else "detached")
        return f"Monitor({self.path!r}, {state})"


# --- Instrumentation ---


def check_target(target: Any) -> None:
    """Raise TargetTypeError unless target can carry monitors."""
    if not is_record(target):
        raise TargetTypeError(
            f"target must be an object with instance attributes, got {type(target).__name__}"
        )


def is_constant(target: Any, name: str) -> bool:
    """True when name cannot be replaced by a monitor on this instance."""
    if name not in vars(target):
        return True
    params = getattr(type(target), "__dataclass_params__", None)
    return params is not None and params.frozen


def instrument(target: Any) -> type:
    """Give target its private subclass. Idempotent."""
    cls = type(target)
    if MONITORS_ATTR in cls.__dict__:
        return cls
    namespace = {
        "__module__": cls.__module__,
        "__qualname__": cls.__qualname__,
        "__slots__": (),
        BASE_ATTR: cls,
        MONITORS_ATTR: {},
    }
    try:
        sub = type(cls)(cls.__name__, (cls,), namespace)
        target.__class__ = sub
    except TypeError as exc:
        raise TargetTypeError(f"cannot instrument {cls.__name__} instances: {exc}") from exc
    return sub


def install(
    registry: Registry,
    target: Any,
    name: str,
    callback: Callback,
    prefix: str = "",
    depth: int = 1,
) -> Monitor:
    """Replace target.name with a monitor and register its snapshot."""
    if is_constant(target, name):
        raise ConstantPropertyError(f"Cannot observe constant property {name!r}")
    current = vars(target)[name]
    snapshot = clone(current)
    monitor = Monitor(registry, target, name, callback, prefix, depth)
    monitor.value = monitor.track(current)

    cls = instrument(target)
    del vars(target)[name]
    setattr(cls, name, monitor)
    cls.__dict__[MONITORS_ATTR][name] = monitor
    registry.register(target, name, snapshot, monitor)
    logger.debug("Monitor installed on %r", monitor.path)
    return monitor


def uninstall(target: Any, monitor: Monitor, *, restore: bool = True) -> None:
    """Remove monitor from target, optionally putting a plain value back.

    The restored value is the live tracked value without its wrapper, or
    None for a property that was deleted while observed.
    """
    monitor.active = False
    cls = type(target)
    monitors = cls.__dict__.get(MONITORS_ATTR)
    if monitors is not None and monitors.get(monitor.name) is monitor:
        del monitors[monitor.name]
        delattr(cls, monitor.name)
    if restore:
        vars(target)[monitor.name] = None if monitor.deleted else unwrap(monitor.value)
    if monitors is not None and not monitors:
        target.__class__ = cls.__dict__[BASE_ATTR]
    logger.debug("Monitor removed from %r", monitor.path)
