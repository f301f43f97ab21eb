"""
Typed attribute values and their equality/formatting rules.

Record attributes hold either plain Python scalars (str, int, float, bool,
datetime, Decimal) or one of the wrapper types below. Two helpers decide how
values are compared:

- values_equal: typed equality used when building write plans
- format_value: string rendering used by the audit comparator
"""

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any


@dataclass(frozen=True)
class Reference:
    """Foreign-key value pointing at a record of another table."""

    target_type: str
    target_id: str
    # Display name is informational only and never part of equality
    name: str | None = field(default=None, compare=False)


@dataclass(frozen=True)
class Choice:
    """Option-set value identified by its integer code."""

    value: int


@dataclass(frozen=True)
class Money:
    """Currency amount."""

    value: Decimal

    def __post_init__(self):
        if not isinstance(self.value, Decimal):
            object.__setattr__(self, "value", Decimal(str(self.value)))


@dataclass(frozen=True)
class ManagedBoolean:
    """Boolean managed property (solution-aware flag)."""

    value: bool


def values_equal(source: Any, target: Any) -> bool:
    """
    Compare two attribute values using typed equality.

    References compare by target id only, Choice by code, Money by decimal
    value and ManagedBoolean by flag. Anything else falls back to ``==``.

    Args:
        source: Value from the source record (may be None)
        target: Value from the target record (may be None)

    Returns:
        True if the values are considered equal
    """
    if source is None and target is None:
        return True
    if source is None or target is None:
        return False

    if isinstance(source, Reference) and isinstance(target, Reference):
        return source.target_id == target.target_id
    if isinstance(source, Choice) and isinstance(target, Choice):
        return source.value == target.value
    if isinstance(source, Money) and isinstance(target, Money):
        return source.value == target.value
    if isinstance(source, ManagedBoolean) and isinstance(target, ManagedBoolean):
        return source.value == target.value

    return source == target


def format_money(amount: Decimal) -> str:
    """Render a decimal with exactly two fixed places."""
    return str(Decimal(amount).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def format_value(value: Any) -> str | None:
    """
    Render an attribute value to a comparable display string.

    Args:
        value: Attribute value (may be None)

    Returns:
        Display string, or None for a null value
    """
    if value is None:
        return None

    if isinstance(value, Reference):
        return value.name if value.name is not None else value.target_id

    if isinstance(value, Choice):
        return str(value.value)

    if isinstance(value, Money):
        return format_money(value.value)

    if isinstance(value, ManagedBoolean):
        return str(value.value)

    return str(value)


def choice_code(value: Any, default: int | None = None) -> int | None:
    """Extract the integer code from a Choice (or bare int) value."""
    if isinstance(value, Choice):
        return value.value
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return default
