"""Propwatch: observe property changes on arbitrary Python objects."""

from importlib.metadata import version as _version

__version__ = _version("propwatch")

from propwatch.errors import (
    PropwatchError,
    TargetTypeError,
    CallbackTypeError,
    InvalidOptionError,
    PropertyNotFoundError,
    AlreadyObservedError,
    ConstantPropertyError,
)
from propwatch.options import ObserveOptions
from propwatch.registry import Registry
from propwatch.trap import ObservedObject
from propwatch.poller import DeletionPoller
from propwatch.session import Session, get_default_session, observe, unobserve, unobserve_all
from propwatch._clone import clone

__all__ = [
    "observe",
    "unobserve",
    "unobserve_all",
    "Session",
    "get_default_session",
    "ObserveOptions",
    "Registry",
    "ObservedObject",
    "DeletionPoller",
    "clone",
    "PropwatchError",
    "TargetTypeError",
    "CallbackTypeError",
    "InvalidOptionError",
    "PropertyNotFoundError",
    "AlreadyObservedError",
    "ConstantPropertyError",
]
