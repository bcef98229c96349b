"""Observe options — recognized settings and their defaults.

ObserveOptions is frozen after creation. Callers usually pass a plain
mapping; from_mapping() merges it against the defaults and ignores keys it
does not recognize.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, fields, replace

from propwatch.errors import InvalidOptionError


@dataclass(frozen=True, slots=True)
class ObserveOptions:
    """Settings for one observe() call.

    Attributes:
        observe_deletion: Start a deletion poller for the target.
        observe_deletion_interval: Poller period in milliseconds.
        depth: How many levels of child objects to observe recursively.
            1 observes only the named properties.

    """

    observe_deletion: bool = True
    observe_deletion_interval: int = 500
    depth: int = 1

    def __post_init__(self) -> None:
        if not isinstance(self.observe_deletion, bool):
            raise InvalidOptionError(
                f"observe_deletion must be a bool, got {self.observe_deletion!r}"
            )
        for name in ("observe_deletion_interval", "depth"):
            value = getattr(self, name)
            # bool is an int subclass but never a meaningful count
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidOptionError(f"{name} must be an integer, got {value!r}")
            if value < 1:
                raise InvalidOptionError(f"{name} must be a positive integer, got {value}")

    @classmethod
    def from_mapping(
        cls,
        options: Mapping[str, object] | ObserveOptions | None,
        defaults: ObserveOptions | None = None,
    ) -> ObserveOptions:
        """Merge options against defaults, keeping only recognized keys."""
        base = defaults if defaults is not None else cls()
        if options is None:
            return base
        if isinstance(options, ObserveOptions):
            return options
        if not isinstance(options, Mapping):
            raise InvalidOptionError(f"options must be a mapping, got {type(options).__name__}")
        known = {f.name for f in fields(cls)}
        return replace(base, **{k: v for k, v in options.items() if k in known})

    @property
    def interval_seconds(self) -> float:
        return self.observe_deletion_interval / 1000

    def child(self) -> ObserveOptions:
        """Options for one level further down during depth expansion."""
        return replace(self, depth=self.depth - 1)
