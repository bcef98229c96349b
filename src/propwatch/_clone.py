"""Snapshot cloner — structurally independent copies of observed values.

Dispatches on a closed set of kinds instead of calling unknown constructors:
immutable scalars are shared, containers and record objects are rebuilt
member by member, anything unrecognized is shared as-is. A memo keyed by
id() makes cyclic graphs safe.

Also home to the small helpers that let the cloner see through the engine's
own instrumentation (instrumented classes and wrappers) without importing
the modules that define them.
"""

from __future__ import annotations

import copy
import datetime
import decimal
import enum
import fractions
import types
import uuid
from collections.abc import Mapping, MutableMapping, MutableSequence, MutableSet
from typing import Any

# Set on the per-instance subclass created for an instrumented target.
BASE_ATTR = "__propwatch_base__"
MONITORS_ATTR = "__propwatch_monitors__"
# Set on the mutation trap wrapper type.
WRAPPER_ATTR = "__propwatch_wrapper__"

_IMMUTABLE = (
    type(None),
    bool,
    int,
    float,
    complex,
    str,
    bytes,
    range,
    decimal.Decimal,
    fractions.Fraction,
    uuid.UUID,
    datetime.date,
    datetime.time,
    datetime.timedelta,
    datetime.tzinfo,
    enum.Enum,
    type,
    types.ModuleType,
    types.FunctionType,
    types.BuiltinFunctionType,
    types.MethodType,
)


def is_immutable(value: Any) -> bool:
    """True for values that are safe to share between live state and snapshots."""
    return isinstance(value, _IMMUTABLE)


def unwrap(value: Any) -> Any:
    """Return the real object behind a mutation trap wrapper."""
    while getattr(type(value), WRAPPER_ATTR, False):
        value = object.__getattribute__(value, "_pw_real")
    return value


def base_class(obj: Any) -> type:
    """The caller's class of obj, looking through instrumentation."""
    cls = type(obj)
    return cls.__dict__.get(BASE_ATTR, cls)


def own_members(obj: Any) -> dict[str, Any]:
    """Instance attributes of a record object, including monitored ones."""
    members = dict(vars(obj))
    monitors = type(obj).__dict__.get(MONITORS_ATTR)
    if monitors:
        for name, monitor in monitors.items():
            if not monitor.deleted:
                members[name] = monitor.value
    return members


def is_record(value: Any) -> bool:
    """A user-level object whose state lives in its instance __dict__."""
    value = unwrap(value)
    if is_immutable(value) or isinstance(value, (Mapping, MutableSequence, MutableSet)):
        return False
    try:
        vars(value)
    except TypeError:
        return False
    return True


def is_container(value: Any) -> bool:
    """True for values that get a mutation trap wrapper when observed."""
    value = unwrap(value)
    if is_immutable(value):
        return False
    if isinstance(value, (MutableMapping, MutableSequence, MutableSet)):
        return True
    return is_record(value)


def clone(value: Any, _memo: dict[int, Any] | None = None) -> Any:
    """Deep-copy value into a structurally independent duplicate."""
    value = unwrap(value)
    if is_immutable(value):
        return value
    if _memo is None:
        _memo = {}
    key = id(value)
    if key in _memo:
        return _memo[key]

    if isinstance(value, MutableMapping):
        dup = _empty_like(value)
        _memo[key] = dup
        for k, v in value.items():
            dup[k] = clone(v, _memo)
        return dup

    if isinstance(value, MutableSequence):
        dup = _empty_like(value)
        _memo[key] = dup
        dup.extend(clone(item, _memo) for item in value)
        return dup

    if isinstance(value, MutableSet):
        dup = _empty_like(value)
        _memo[key] = dup
        for item in value:
            dup.add(clone(item, _memo))
        return dup

    if isinstance(value, tuple):
        items = [clone(item, _memo) for item in value]
        dup = type(value)._make(items) if hasattr(value, "_make") else type(value)(items)
        _memo[key] = dup
        return dup

    if isinstance(value, frozenset):
        dup = type(value)(clone(item, _memo) for item in value)
        _memo[key] = dup
        return dup

    if is_record(value):
        cls = base_class(value)
        dup = object.__new__(cls)
        _memo[key] = dup
        vars(dup).update({name: clone(v, _memo) for name, v in own_members(value).items()})
        return dup

    return value


def _empty_like(container):
    """A new, empty container of the same concrete kind.

    Shallow-copy then clear keeps constructor state such as a defaultdict's
    factory or a deque's maxlen.
    """
    if type(container) in (dict, list, set, bytearray):
        return type(container)()
    dup = copy.copy(container)
    dup.clear()
    return dup
