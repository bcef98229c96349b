"""Observation registry — which properties of which targets are observed.

Maps each target (by identity) to its per-property snapshots and monitors.
Every target's entry is disposed independently: an entry exists exactly
while at least one of its properties is observed, and the observed-object
count is derived from the entries instead of being counted separately.

Thread safety: all access goes through one RLock. Reentrant, because
callbacks run on the writing thread may call back into the session.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from propwatch.monitor import Monitor
    from propwatch.poller import DeletionPoller

logger = logging.getLogger("propwatch.registry")


class _Entry:
    """Observation state of one target."""

    __slots__ = ("target", "snapshots", "monitors", "poller")

    def __init__(self, target: Any) -> None:
        self.target = target
        self.snapshots: dict[str, Any] = {}
        self.monitors: dict[str, Monitor] = {}
        self.poller: DeletionPoller | None = None

    def dispose(self) -> None:
        if self.poller is not None:
            self.poller.stop()
            self.poller = None
        self.snapshots.clear()
        self.monitors.clear()


class Registry:
    """Target -> (property -> snapshot) table with per-target lifecycle."""

    __slots__ = ("_entries", "_lock")

    def __init__(self) -> None:
        self._entries: dict[int, _Entry] = {}
        self._lock = threading.RLock()

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    @property
    def observed_count(self) -> int:
        """Number of targets with at least one observed property."""
        with self._lock:
            return len(self._entries)

    def register(self, target: Any, prop: str, snapshot: Any, monitor: Monitor) -> None:
        """Record prop as observed, creating the target's entry if absent."""
        with self._lock:
            entry = self._entries.get(id(target))
            if entry is None:
                entry = self._entries[id(target)] = _Entry(target)
            entry.snapshots[prop] = snapshot
            entry.monitors[prop] = monitor

    def unregister(self, target: Any, prop: str) -> bool:
        """Forget prop. Returns True when the target's entry was disposed."""
        with self._lock:
            entry = self._entries.get(id(target))
            if entry is None:
                return False
            entry.snapshots.pop(prop, None)
            entry.monitors.pop(prop, None)
            if entry.monitors:
                return False
            del self._entries[id(target)]
            entry.dispose()
            return True

    def has_entry(self, target: Any) -> bool:
        with self._lock:
            return id(target) in self._entries

    def is_registered(self, target: Any, prop: str) -> bool:
        with self._lock:
            entry = self._entries.get(id(target))
            return entry is not None and prop in entry.monitors

    def entry(self, target: Any) -> _Entry | None:
        with self._lock:
            return self._entries.get(id(target))

    def props(self, target: Any) -> list[str]:
        with self._lock:
            entry = self._entries.get(id(target))
            return list(entry.monitors) if entry is not None else []

    def targets(self) -> list[Any]:
        with self._lock:
            return [entry.target for entry in self._entries.values()]

    def monitor(self, target: Any, prop: str) -> Monitor | None:
        with self._lock:
            entry = self._entries.get(id(target))
            return entry.monitors.get(prop) if entry is not None else None

    def snapshot(self, target: Any, prop: str, default: Any = None) -> Any:
        with self._lock:
            entry = self._entries.get(id(target))
            if entry is None:
                return default
            return entry.snapshots.get(prop, default)

    def set_snapshot(self, target: Any, prop: str, snapshot: Any) -> None:
        """Replace the snapshot of an observed prop. No-op if unobserved."""
        with self._lock:
            entry = self._entries.get(id(target))
            if entry is not None and prop in entry.snapshots:
                entry.snapshots[prop] = snapshot

    def attach_poller(self, target: Any, poller: DeletionPoller) -> bool:
        """Give the target's entry a poller unless it already has one."""
        with self._lock:
            entry = self._entries.get(id(target))
            if entry is None or entry.poller is not None:
                return False
            entry.poller = poller
            return True

    def clear_if_empty(self) -> bool:
        """Report whether no target is observed any more.

        Entries are disposed one by one as their last property goes, so
        reaching zero never wipes an entry that belongs to another target.
        """
        with self._lock:
            if self._entries:
                return False
            logger.debug("Registry empty")
            return True

    def __len__(self) -> int:
        return self.observed_count

    def __repr__(self) -> str:
        return f"Registry({self.observed_count} targets)"
