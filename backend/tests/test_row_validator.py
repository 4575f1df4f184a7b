"""
Row validation tests.

Verifies:
- Strict mode coerces, applies defaults, and reports required fields
- Advisory mode reports non-blocking warnings with suggestions
"""

from datetime import date

import pytest

from tablestore.column_types import build_registry
from tablestore.models import TableColumn
from tablestore.services.row_validator import RawRow, RowValidator, ValidationMode


def column(name, type_="text", *, required=False, default=None, unique=False):
    return TableColumn(
        name=name,
        name_key=name.casefold(),
        type=type_,
        is_required=required,
        allow_duplicates=not unique,
        default_value=default,
        position=0,
    )


@pytest.fixture(scope="module")
def validator():
    return RowValidator(build_registry())


@pytest.fixture
def columns():
    return [
        column("name", required=True),
        column("qty", "integer", required=True, default="1"),
        column("released", "date"),
        column("country", "country"),
    ]


class TestStrictValidation:
    def test_coerces_and_stores_json_forms(self, validator, columns):
        row, issues = validator.validate_strict(
            RawRow(1, {"name": " Lamp ", "qty": "3", "released": "01/15/2024", "country": "uk"}),
            columns,
        )
        assert issues == []
        assert row.values["released"] == date(2024, 1, 15)
        assert dict(row.data) == {"name": "Lamp", "qty": 3, "released": "2024-01-15", "country": "GB"}

    def test_default_applied_for_missing_value(self, validator, columns):
        row, issues = validator.validate_strict(RawRow(1, {"name": "Lamp"}), columns)
        assert issues == []
        assert row.data["qty"] == 1
        assert "released" not in row.data

    def test_required_field_missing(self, validator, columns):
        row, issues = validator.validate_strict(RawRow(4, {"qty": "2"}), columns)
        assert row is None
        assert [str(i) for i in issues] == ['Row 4: Required field "name" is missing or empty']

    def test_type_error_message_names_row_and_column(self, validator, columns):
        _, issues = validator.validate_strict(RawRow(2, {"name": "Lamp", "qty": "many"}), columns)
        assert [str(i) for i in issues] == ['Row 2, Column "qty": Must be an integer']

    def test_all_issues_reported(self, validator, columns):
        _, issues = validator.validate_strict(
            RawRow(3, {"name": "", "qty": "x", "country": "Atlantis"}),
            columns,
        )
        assert len(issues) == 3

    def test_extra_defaults_fill_columns_without_defaults(self, validator):
        cols = [column("price", "number", required=True)]
        row, issues = validator.validate_strict(RawRow(1, {}), cols, extra_defaults={"price": 0})
        assert issues == []
        assert row.data == {"price": 0}

    def test_country_placeholder_counts_as_missing(self, validator):
        cols = [column("country", "country", required=True)]
        _, issues = validator.validate_strict(RawRow(1, {"country": "N/A"}), cols)
        assert [str(i) for i in issues] == ['Row 1: Required field "country" is missing or empty']


class TestAdvisoryValidation:
    def test_warnings_carry_suggestions(self, validator, columns):
        result = validator.validate_advisory(7, {"name": "Lamp", "qty": "many", "released": "soon"}, columns)
        assert not result.is_valid
        assert result.invalid_count == 2
        by_column = {w.column_name: w for w in result.warnings}
        assert by_column["qty"].suggestion == "Remove non-numeric characters"
        assert by_column["released"].suggestion == "Use format: YYYY-MM-DD (e.g., 2024-01-15)"

    def test_empty_values_are_valid(self, validator, columns):
        result = validator.validate_advisory(1, {}, columns)
        assert result.is_valid
        assert result.to_dict() == {"rowId": 1, "isValid": True, "invalidCount": 0, "warnings": []}

    def test_mode_dispatch(self, validator, columns):
        advisory = validator.validate(RawRow(5, {"qty": "x"}), columns, ValidationMode.ADVISORY)
        assert advisory.row_id == 5
        strict_row, issues = validator.validate(RawRow(5, {"name": "A"}), columns, "strict")
        assert issues == [] and strict_row.data["qty"] == 1
