"""
Error kinds raised by the registration components.

Each exception also derives from the closest builtin so callers that only
know the standard hierarchy (ValueError, IndexError, ...) still catch it.
"""

from enum import Enum


class ErrorKind(str, Enum):
    EMPTY_POINT_SET = "empty_point_set"
    DIMENSION_MISMATCH = "dimension_mismatch"
    SINGULAR_SYSTEM = "singular_system"
    OUT_OF_RANGE = "out_of_range"


class RegistrationError(Exception):
    """Base class for errors raised by registration components."""

    kind: ErrorKind


class EmptyPointSetError(RegistrationError, ValueError):
    kind = ErrorKind.EMPTY_POINT_SET


class DimensionMismatchError(RegistrationError, ValueError):
    kind = ErrorKind.DIMENSION_MISMATCH


class SingularSystemError(RegistrationError, ArithmeticError):
    kind = ErrorKind.SINGULAR_SYSTEM


class OutOfRangeError(RegistrationError, IndexError):
    kind = ErrorKind.OUT_OF_RANGE


ERROR_TYPES = {
    ErrorKind.EMPTY_POINT_SET: EmptyPointSetError,
    ErrorKind.DIMENSION_MISMATCH: DimensionMismatchError,
    ErrorKind.SINGULAR_SYSTEM: SingularSystemError,
    ErrorKind.OUT_OF_RANGE: OutOfRangeError,
}


__all__ = [
    "ErrorKind",
    "RegistrationError",
    "EmptyPointSetError",
    "DimensionMismatchError",
    "SingularSystemError",
    "OutOfRangeError",
]
