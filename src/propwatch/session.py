"""Sessions — observe, unobserve and unobserve_all.

A Session owns everything observation needs: the registry of snapshots and
monitors, and one deletion poller per observed target. Independent sessions
never see each other's state. The module-level observe(), unobserve() and
unobserve_all() act on a default session.

Usage:
    session = Session()
    session.observe(player, "score", lambda path, old, new: print(path, old, new))
    player.score = 10        # prints: score 0 10
    session.unobserve(player, "score")
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Mapping, Sequence, Set
from typing import Any, Iterator

from propwatch._clone import is_container, is_record, own_members, unwrap
from propwatch.errors import (
    AlreadyObservedError,
    CallbackTypeError,
    ConstantPropertyError,
    PropertyNotFoundError,
    TargetTypeError,
)
from propwatch.monitor import Callback, check_target, install, is_constant, uninstall
from propwatch.options import ObserveOptions
from propwatch.poller import DeletionPoller
from propwatch.registry import Registry
from propwatch.trap import PATH_SEPARATOR

logger = logging.getLogger("propwatch.session")

Props = str | list[str] | tuple[str, ...]


def _prop_list(prop: Props) -> list[str]:
    names = [prop] if isinstance(prop, str) else list(prop)
    for name in names:
        if not isinstance(name, str):
            raise TypeError(f"property names must be strings, got {name!r}")
    return names


def _children(value: Any) -> Iterator[tuple[Any, Any]]:
    """(key, child) pairs of a container or record value."""
    if isinstance(value, Mapping):
        yield from value.items()
    elif isinstance(value, (Sequence, Set)) and not isinstance(value, (str, bytes, bytearray)):
        yield from enumerate(value)
    elif is_record(value):
        yield from own_members(value).items()


class Session:
    """Observation state with an explicit owner and lifetime.

    Args:
        defaults: Options applied when observe() is called without them.
            Same keys as ObserveOptions.

    """

    def __init__(self, defaults: Mapping[str, object] | ObserveOptions | None = None) -> None:
        self.registry = Registry()
        self.defaults = ObserveOptions.from_mapping(defaults)

    # --- Public API ---

    def observe(
        self,
        target: Any,
        prop: Props,
        callback: Callback,
        options: Mapping[str, object] | ObserveOptions | None = None,
        _prefix: str = "",
    ) -> None:
        """Call callback(path, old_value, new_value) whenever target.prop changes.

        Changes include reassignment, sub-key writes and mutating method
        calls on object values. prop is one name or an ordered list of names;
        each must exist on target and must not be observed yet.
        """
        target = unwrap(target)
        check_target(target)
        if not callable(callback):
            raise CallbackTypeError(f"callback must be callable, got {type(callback).__name__}")
        opts = ObserveOptions.from_mapping(options, self.defaults)
        names = _prop_list(prop)

        with self.registry.lock:
            seen: set[str] = set()
            for name in names:
                if not hasattr(target, name):
                    raise PropertyNotFoundError(f"property {name!r} does not exist")
                if name in seen or self.registry.is_registered(target, name):
                    raise AlreadyObservedError(f"property {name!r} is already being observed")
                if is_constant(target, name):
                    raise ConstantPropertyError(f"Cannot observe constant property {name!r}")
                seen.add(name)

            for name in names:
                monitor = install(self.registry, target, name, callback, _prefix, opts.depth)
                logger.debug("Observing %r on %s", monitor.path, type(target).__name__)
                if opts.depth > 1:
                    self._observe_children(monitor.value, monitor.path, callback, opts.child())

            if opts.observe_deletion:
                self._start_poller(target, opts)

    def unobserve(self, target: Any, prop: Props) -> None:
        """Stop observing and put plain values back on target."""
        target = unwrap(target)
        check_target(target)
        names = _prop_list(prop)
        with self.registry.lock:
            if not self.registry.has_entry(target):
                return
            for name in names:
                self._teardown(target, name, restore=True)

    def unobserve_all(self, target: Any) -> None:
        """Stop observing every property of target."""
        target = unwrap(target)
        check_target(target)
        with self.registry.lock:
            names = self.registry.props(target)
            if names:
                self.unobserve(target, names)

    def is_observed(self, target: Any, prop: str) -> bool:
        return self.registry.is_registered(unwrap(target), prop)

    def observed_properties(self, target: Any) -> list[str]:
        """Observed property names of target, in observation order."""
        return self.registry.props(unwrap(target))

    @property
    def observed_count(self) -> int:
        """Number of targets with at least one observed property."""
        return self.registry.observed_count

    def reconcile(self, target: Any) -> list[str]:
        """Auto-unobserve properties that no longer exist on target.

        One deletion-poller tick. A deleted property comes back as a plain
        None attribute, so it can be observed again. Returns the names that
        were dropped; a target that is not observed any more is a no-op.
        """
        dropped: list[str] = []
        with self.registry.lock:
            entry = self.registry.entry(target)
            if entry is None:
                return dropped
            for name, monitor in list(entry.monitors.items()):
                if monitor.deleted:
                    self._teardown(target, name, restore=True)
                elif type(target).__dict__.get(name) is not monitor:
                    self._teardown(target, name, restore=False)
                else:
                    continue
                dropped.append(name)
        for name in dropped:
            logger.info("Property %r deleted from %s; unobserved", name, type(target).__name__)
        return dropped

    def close(self) -> None:
        """Unobserve every target and stop all pollers."""
        for target in self.registry.targets():
            self.unobserve_all(target)

    def __enter__(self) -> Session:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"Session({self.observed_count} targets observed)"

    # --- Internals ---

    def _teardown(self, target: Any, name: str, *, restore: bool) -> bool:
        monitor = self.registry.monitor(target, name)
        if monitor is None:
            return False
        uninstall(target, monitor, restore=restore)
        if self.registry.unregister(target, name):
            logger.debug("Last property of %s unobserved", type(target).__name__)
            self.registry.clear_if_empty()
        return True

    def _observe_children(
        self, value: Any, path: str, callback: Callback, opts: ObserveOptions
    ) -> None:
        """Observe every member of every record object below value.

        Nested containers have no members of their own to observe; their
        in-place changes are reported by the trap at their own path, and
        expansion goes on through their items with one level less depth.
        """
        for key, child in _children(unwrap(value)):
            child = unwrap(child)
            if not is_record(child):
                if is_container(child) and opts.depth > 1:
                    self._observe_children(
                        child, f"{path}{PATH_SEPARATOR}{key}", callback, opts.child()
                    )
                continue
            names = [
                name
                for name in vars(child)
                if not is_constant(child, name) and not self.registry.is_registered(child, name)
            ]
            if not names:
                continue
            prefix = f"{path}{PATH_SEPARATOR}{key}{PATH_SEPARATOR}"
            try:
                self.observe(child, names, callback, opts, prefix)
            except TargetTypeError:
                logger.debug("Child %r of %r cannot be instrumented; skipped", key, path)

    def _start_poller(self, target: Any, opts: ObserveOptions) -> None:
        poller = DeletionPoller(
            functools.partial(self.reconcile, target),
            opts.interval_seconds,
            name=f"propwatch-poller-{type(target).__name__}",
        )
        if self.registry.attach_poller(target, poller):
            poller.start()


_default_session = Session()


def get_default_session() -> Session:
    """The session used by the module-level functions."""
    return _default_session


def observe(
    target: Any,
    prop: Props,
    callback: Callback,
    options: Mapping[str, object] | ObserveOptions | None = None,
    _prefix: str = "",
) -> None:
    """observe() on the default session. See Session.observe."""
    _default_session.observe(target, prop, callback, options, _prefix)


def unobserve(target: Any, prop: Props) -> None:
    _default_session.unobserve(target, prop)


def unobserve_all(target: Any) -> None:
    _default_session.unobserve_all(target)
