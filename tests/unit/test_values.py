"""
Unit tests for typed attribute values

Tests verify:
- Typed equality used by the write planner
- Display formatting used by the audit comparator
- Choice code extraction
"""

from datetime import datetime
from decimal import Decimal

from refsync.values import (
    Choice,
    ManagedBoolean,
    Money,
    Reference,
    choice_code,
    format_money,
    format_value,
    values_equal,
)


class TestValuesEqual:
    """Test values_equal function"""

    def test_both_none_are_equal(self):
        assert values_equal(None, None) is True

    def test_none_differs_from_value(self):
        assert values_equal(None, "x") is False
        assert values_equal("x", None) is False

    def test_references_compare_by_target_id_only(self):
        """Display name and target type do not take part in equality"""
        source = Reference("account", "a1", name="Contoso")
        target = Reference("account", "a1", name="Contoso Ltd")

        assert values_equal(source, target) is True
        assert values_equal(source, Reference("account", "a2", name="Contoso")) is False

    def test_choice_compares_by_code(self):
        assert values_equal(Choice(1), Choice(1)) is True
        assert values_equal(Choice(1), Choice(2)) is False

    def test_money_compares_by_decimal_value(self):
        assert values_equal(Money(Decimal("10.50")), Money(Decimal("10.5"))) is True
        assert values_equal(Money(Decimal("10.50")), Money(Decimal("10.51"))) is False

    def test_money_accepts_float_input(self):
        """Money normalizes non-decimal input through its string form"""
        assert Money(1.1).value == Decimal("1.1")

    def test_managed_boolean_compares_by_flag(self):
        assert values_equal(ManagedBoolean(True), ManagedBoolean(True)) is True
        assert values_equal(ManagedBoolean(True), ManagedBoolean(False)) is False

    def test_plain_values_fall_back_to_equality(self):
        assert values_equal("France", "France") is True
        assert values_equal(1, 2) is False

    def test_mixed_wrapper_and_plain_value_differ(self):
        assert values_equal(Choice(1), 1) is False


class TestFormatValue:
    """Test format_value function"""

    def test_none_formats_to_none(self):
        assert format_value(None) is None

    def test_reference_uses_display_name(self):
        assert format_value(Reference("account", "a1", name="Contoso")) == "Contoso"

    def test_reference_without_name_uses_id(self):
        assert format_value(Reference("account", "a1")) == "a1"

    def test_choice_formats_code(self):
        assert format_value(Choice(100000001)) == "100000001"

    def test_money_formats_two_places(self):
        assert format_value(Money(Decimal("10"))) == "10.00"
        assert format_value(Money(Decimal("2.345"))) == "2.35"

    def test_managed_boolean_formats_flag(self):
        assert format_value(ManagedBoolean(False)) == "False"

    def test_scalars_use_str(self):
        assert format_value(42) == "42"
        assert format_value(True) == "True"
        assert format_value(datetime(2024, 1, 2, 3, 4, 5)) == "2024-01-02 03:04:05"

    def test_format_money_rounds_half_up(self):
        assert format_money(Decimal("0.005")) == "0.01"


class TestChoiceCode:
    """Test choice_code function"""

    def test_choice_returns_code(self):
        assert choice_code(Choice(1)) == 1

    def test_bare_int_returns_itself(self):
        assert choice_code(2) == 2

    def test_bool_is_not_a_code(self):
        assert choice_code(True, default=-1) == -1

    def test_missing_value_returns_default(self):
        assert choice_code(None) is None
        assert choice_code(None, default=0) == 0
