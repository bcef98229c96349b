"""Propwatch error hierarchy.

All propwatch-specific errors inherit from PropwatchError for easy catching.
Validation errors also derive from the matching built-in exception so callers
can keep catching TypeError / ValueError / AttributeError.
"""


class PropwatchError(Exception):
    """Base error for all propwatch operations."""


class TargetTypeError(PropwatchError, TypeError):
    """The target cannot carry observed properties."""


class CallbackTypeError(PropwatchError, TypeError):
    """The callback is not callable."""


class InvalidOptionError(PropwatchError, ValueError):
    """An observe option has the wrong type or range."""


class PropertyNotFoundError(PropwatchError, AttributeError):
    """Observing a property the target does not have."""


class AlreadyObservedError(PropwatchError):
    """The (target, property) pair already has an active monitor."""


class ConstantPropertyError(PropwatchError):
    """The property is not stored on the instance and cannot be redefined."""
