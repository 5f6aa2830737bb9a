"""
Exception types and input checks shared by the engine modules.

Malformed domain data (an unknown chronic-condition code) is tolerated with a
default, but caller contract violations raise immediately.
"""

import math
from enum import Enum
from typing import Any, Iterable, Optional, Tuple, Type, TypeVar

E = TypeVar("E", bound=Enum)


class InvalidInputError(ValueError):
    """Raised when a caller passes a value outside the engine's contract."""


class ReferenceDataError(ValueError):
    """Raised when a reference table (cost sharing, utilization) is malformed."""


def require_finite(name: str, value: Any) -> float:
    """
    Coerce a numeric input to float and reject NaN, infinity and non-numbers.

    Args:
        name: Parameter name used in the error message
        value: Value supplied by the caller

    Returns:
        The value as a float
    """
    # bool is an int subclass but never a meaningful amount
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidInputError(f"{name} must be a number, got {value!r}")
    result = float(value)
    if not math.isfinite(result):
        raise InvalidInputError(f"{name} must be finite, got {value!r}")
    return result


def require_non_negative(name: str, value: Any) -> float:
    result = require_finite(name, value)
    if result < 0:
        raise InvalidInputError(f"{name} must be non-negative, got {value!r}")
    return result


def require_positive(name: str, value: Any) -> float:
    result = require_finite(name, value)
    if result <= 0:
        raise InvalidInputError(f"{name} must be positive, got {value!r}")
    return result


def parse_enum(enum_cls: Type[E], value: Any, name: str) -> E:
    """
    Resolve a member of enum_cls from a member, its value or its name.

    String matching is case-insensitive. Anything unrecognised is a contract
    violation and raises InvalidInputError listing the accepted values.
    """
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        key = value.strip().lower()
        for member in enum_cls:
            if key == str(member.value).lower() or key == member.name.lower():
                return member
    allowed = ", ".join(str(m.value) for m in enum_cls)
    raise InvalidInputError(f"Unrecognized {name} {value!r}; expected one of: {allowed}")


def coerce_conditions(conditions: Optional[Iterable[str]]) -> Tuple[str, ...]:
    """Turn a list of chronic condition codes (or None) into a tuple of strings."""
    if conditions is None:
        return ()
    if isinstance(conditions, str):
        raise InvalidInputError("chronic_conditions must be a list of codes, not a single string")
    codes = tuple(conditions)
    for code in codes:
        if not isinstance(code, str):
            raise InvalidInputError(f"Chronic condition codes must be strings, got {code!r}")
    return codes
