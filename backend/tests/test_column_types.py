"""
Column type contract tests.

Verifies:
- Registry resolution (exact, module fallback, permissive)
- Built-in coercion results and error messages
- JSON storage forms for typed values
"""

from datetime import date, time
from decimal import Decimal

import pytest

from tablestore.column_types import PERMISSIVE, ColumnTypeRegistry, build_registry
from tablestore.column_types.builtin import EmailType, IntegerType, parse_number
from tablestore.column_types.phone import PhoneType


@pytest.fixture(scope="module")
def types():
    return build_registry(["tablestore.column_types.phone:register"])


# =============================================================================
# REGISTRY
# =============================================================================


class TestRegistry:
    def test_module_type_registered_under_module_id(self, types):
        assert isinstance(types.resolve("phone-numbers:phone"), PhoneType)
        assert "phone-numbers:phone" in types.type_ids()

    def test_unregistered_module_type_falls_back_to_builtin(self, types):
        assert isinstance(types.resolve("crm:email"), EmailType)

    def test_unknown_type_is_permissive(self, types):
        contract = types.resolve("hologram")
        assert contract is PERMISSIVE
        assert not types.is_known("hologram")
        assert contract.coerce({"anything": 1}).ok

    def test_duplicate_registration_rejected(self):
        registry = ColumnTypeRegistry()
        registry.register(IntegerType())
        with pytest.raises(ValueError):
            registry.register(IntegerType())

    def test_bad_plugin_spec_rejected(self):
        with pytest.raises(ValueError):
            build_registry(["no-colon-here"])

    def test_describe_lists_every_type(self, types):
        described = {d["type"] for d in types.describe()}
        assert {"text", "integer", "country", "phone-numbers:phone"} <= described


# =============================================================================
# NUMBERS
# =============================================================================


class TestNumbers:
    def test_parse_number_returns_int_for_integral_values(self):
        assert parse_number("42") == 42
        assert isinstance(parse_number("4.0"), int)
        assert parse_number(" 3.5 ") == 3.5

    @pytest.mark.parametrize("raw", [True, "NaN", "inf", "1_000", "12abc", [1]])
    def test_parse_number_rejects(self, raw):
        with pytest.raises(ValueError):
            parse_number(raw)

    def test_integer(self, types):
        contract = types.resolve("integer")
        assert contract.coerce("42").value == 42
        assert contract.coerce("4.5").error == "Must be an integer"

    def test_currency_keeps_cents_and_stores_float(self, types):
        contract = types.resolve("currency")
        result = contract.coerce("19.99")
        assert result.value == Decimal("19.99")
        assert contract.to_storage(result.value) == 19.99
        assert contract.coerce("1.234").error == "Currency must have at most 2 decimal places"

    def test_percentage_bounds(self, types):
        contract = types.resolve("percentage")
        assert contract.coerce("75").ok
        assert not contract.coerce("101").ok

    def test_rating(self, types):
        contract = types.resolve("rating")
        assert contract.coerce(5).ok
        assert contract.coerce(0.5).ok
        assert not contract.coerce(6).ok

    def test_numeric_suggestion(self, types):
        assert types.resolve("number").suggest_fix("12 apples") == "Remove non-numeric characters"


# =============================================================================
# BOOLEAN / TEMPORAL
# =============================================================================


class TestBooleanAndTemporal:
    @pytest.mark.parametrize("raw,expected", [("Yes", True), ("off", False), (1, True), ("0", False), (False, False)])
    def test_boolean_tokens(self, types, raw, expected):
        assert types.resolve("boolean").coerce(raw).value is expected

    def test_boolean_rejects_other_text(self, types):
        assert types.resolve("boolean").coerce("maybe").error == "Must be true/false, yes/no, or 1/0"

    @pytest.mark.parametrize("raw", ["2024-01-15", "01/15/2024", "01-15-2024", "2024/01/15", "15.01.2024"])
    def test_date_formats(self, types, raw):
        contract = types.resolve("date")
        value = contract.coerce(raw).value
        assert value == date(2024, 1, 15)
        assert contract.to_storage(value) == "2024-01-15"

    @pytest.mark.parametrize("raw", ["1800-01-01", "2024-02-30", "yesterday"])
    def test_date_rejects(self, types, raw):
        result = types.resolve("date").coerce(raw)
        assert result.error == "Invalid date format (use YYYY-MM-DD)"

    def test_time_storage(self, types):
        contract = types.resolve("time")
        value = contract.coerce("9:05").value
        assert value == time(9, 5)
        assert contract.to_storage(value) == "09:05"
        assert not contract.coerce("25:00").ok

    def test_datetime_normalized_to_utc(self, types):
        contract = types.resolve("datetime")
        value = contract.coerce("2024-01-15T16:30:00+02:00").value
        assert contract.to_storage(value) == "2024-01-15T14:30:00Z"


# =============================================================================
# CONTACT / MISC
# =============================================================================


class TestContactTypes:
    def test_email(self, types):
        contract = types.resolve("email")
        assert contract.coerce(" user@example.com ").value == "user@example.com"
        assert contract.coerce("user.example.com").error == "Invalid email address"
        assert contract.suggest_fix("user.example.com") == "Add @ symbol and domain (e.g., user@example.com)"

    def test_url(self, types):
        contract = types.resolve("url")
        assert contract.coerce("https://example.com/a").ok
        assert not contract.coerce("example.com").ok
        assert contract.suggest_fix("example.com") == "Try adding https:// prefix: https://example.com"

    def test_color(self, types):
        contract = types.resolve("color")
        assert contract.coerce("#fff").ok
        assert contract.coerce("#FF000080").ok
        assert not contract.coerce("red").ok

    def test_phone(self, types):
        contract = types.resolve("phone-numbers:phone")
        assert contract.coerce("+1 (555) 123-4567").ok
        assert contract.coerce("call me").error == "Invalid phone number format"

    def test_text_rejects_structures(self, types):
        assert not types.resolve("text").coerce({"a": 1}).ok
        assert types.resolve("text").coerce(12).value == "12"

    def test_textarea_keeps_line_breaks(self, types):
        assert types.resolve("textarea").coerce("a\nb").value == "a\nb"

    def test_country_blank_tokens(self, types):
        contract = types.resolve("country")
        assert contract.is_blank("N/A")
        assert contract.is_blank("  ")
        assert not contract.is_blank("NA")
