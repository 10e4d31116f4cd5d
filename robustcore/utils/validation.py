"""Argument validation shared by the fitting engines."""

import numbers

import numpy as np

from robustcore.errors import PreconditionError


def check_positive_int(value, name: str) -> int:
    """Validate a positive integer scalar."""
    if isinstance(value, (bool, np.bool_)) or not isinstance(value, numbers.Integral):
        raise PreconditionError(f"{name} must be a positive integer, got {value!r}")
    if value <= 0:
        raise PreconditionError(f"{name} must be a positive integer, got {value}")
    return int(value)


def check_nonnegative_finite(value, name: str) -> float:
    """Validate a finite real scalar >= 0."""
    if isinstance(value, (bool, np.bool_)) or not isinstance(value, numbers.Real):
        raise PreconditionError(f"{name} must be a real scalar, got {value!r}")
    if not np.isfinite(value) or value < 0:
        raise PreconditionError(f"{name} must be finite and nonnegative, got {value}")
    return float(value)


def check_positive_finite(value, name: str) -> float:
    """Validate a finite real scalar > 0."""
    value = check_nonnegative_finite(value, name)
    if value == 0:
        raise PreconditionError(f"{name} must be positive, got {value}")
    return value


def check_probability(value, name: str) -> float:
    """Validate a probability strictly between 0 and 1."""
    if isinstance(value, (bool, np.bool_)) or not isinstance(value, numbers.Real):
        raise PreconditionError(f"{name} must be a real scalar, got {value!r}")
    if not 0 < value < 1:
        raise PreconditionError(f"{name} must be in the open interval (0, 1), got {value}")
    return float(value)


def check_choice(value, name: str, choices) -> str:
    """Validate a case-insensitive string option and return its canonical spelling."""
    if isinstance(value, str):
        for choice in choices:
            if value.lower() == choice.lower():
                return choice
    raise PreconditionError(f"{name} must be one of {list(choices)}, got {value!r}")


def check_logical(value, name: str) -> bool:
    """Validate a boolean flag."""
    if not isinstance(value, (bool, np.bool_)):
        raise PreconditionError(f"{name} must be a boolean, got {value!r}")
    return bool(value)
