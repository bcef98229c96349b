"""Deletion poller — notice observed properties that disappeared.

`del target.prop` lands in the monitor, which only marks the property as
deleted; a property can also vanish when something resets the target's
class. Either way the registry still lists it, so a daemon thread
periodically asks the session to reconcile the target. Detection is
asynchronous and bounded by the polling interval.

Returns a DeletionPoller handle; stop() ends the thread after its current
wait.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable

logger = logging.getLogger("propwatch.poller")


class DeletionPoller:
    """Disposable handle for one target's polling thread."""

    __slots__ = ("_check", "_interval", "_stopped", "_thread", "_name")

    def __init__(self, check: Callable[[], object], interval: float, name: str = "") -> None:
        self._check = check
        self._interval = interval
        self._stopped = threading.Event()
        self._thread: threading.Thread | None = None
        self._name = name or "propwatch-poller"

    @property
    def interval(self) -> float:
        """Seconds between checks."""
        return self._interval

    @property
    def disposed(self) -> bool:
        return self._stopped.is_set()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> DeletionPoller:
        if self._thread is None and not self.disposed:
            self._thread = threading.Thread(target=self._loop, name=self._name, daemon=True)
            self._thread.start()
        return self

    def stop(self) -> None:
        """Signal the thread to exit. Safe to call from the thread itself."""
        self._stopped.set()

    def tick(self) -> None:
        """Run one check on the calling thread."""
        self._check()

    def _loop(self) -> None:
        while not self._stopped.wait(self._interval):
            try:
                self.tick()
            except Exception:
                logger.exception("Deletion check failed in %s", self._name)

    def __repr__(self) -> str:
        state = "stopped" if self.disposed else ("running" if self.running else "idle")
        return f"DeletionPoller({self._name!r}, every {self._interval}s, {state})"
