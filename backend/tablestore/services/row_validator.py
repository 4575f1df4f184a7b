# Overview: Row validation and coercion against a table's column definitions (strict and advisory modes).

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional

from ..column_types import ColumnTypeRegistry
from ..models import TableColumn

"""
Row validation invariants (authoritative)

STRICT (create/import):
- Present values are coerced through the column's TypeContract; failures are issues.
- Missing values take the column default (coerced through the same contract).
- Required columns that are still missing are issues.
- The caller rejects the row on any issue.

ADVISORY (dataset health checks):
- Same coercion, but results are non-blocking warnings with a suggested fix.
- Empty values are always valid; requiredness is not checked.
- Never mutates stored data.
"""


class ValidationMode(str, enum.Enum):
    STRICT = "strict"
    ADVISORY = "advisory"


@dataclass(frozen=True)
class RawRow:
    """Untrusted input keyed by target column name. index is 1-based for messages."""
    index: int
    values: Mapping[str, Any]


@dataclass(frozen=True)
class ValidatedRow:
    """
    Row whose values were coerced by their column's TypeContract.

    values holds typed Python values (date, Decimal, ...); data holds the
    JSON-compatible form that is persisted.
    """
    index: int
    values: Mapping[str, Any]
    data: Mapping[str, Any]


@dataclass(frozen=True)
class ValidationIssue:
    row_index: int
    column_name: Optional[str]
    message: str

    def __str__(self) -> str:
        if self.column_name is None:
            return f"Row {self.row_index}: {self.message}"
        return f'Row {self.row_index}, Column "{self.column_name}": {self.message}'


@dataclass(frozen=True)
class RequiredFieldIssue(ValidationIssue):
    def __str__(self) -> str:
        return f'Row {self.row_index}: Required field "{self.column_name}" is missing or empty'


@dataclass
class ValueValidationResult:
    is_valid: bool
    value: Any
    column_name: str
    column_type: str
    error: Optional[str] = None
    suggestion: Optional[str] = None

    def to_dict(self) -> dict:
        payload = {
            "isValid": self.is_valid,
            "value": self.value,
            "columnName": self.column_name,
            "columnType": self.column_type,
        }
        if self.error:
            payload["error"] = self.error
        if self.suggestion:
            payload["suggestion"] = self.suggestion
        return payload


@dataclass
class RowValidationResult:
    row_id: Any
    is_valid: bool
    invalid_count: int = 0
    warnings: list[ValueValidationResult] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "rowId": self.row_id,
            "isValid": self.is_valid,
            "invalidCount": self.invalid_count,
            "warnings": [w.to_dict() for w in self.warnings],
        }


class RowValidator:
    def __init__(self, registry: ColumnTypeRegistry):
        self.registry = registry

    def validate(self, row: RawRow, columns: Iterable[TableColumn], mode: ValidationMode = ValidationMode.STRICT):
        """
        STRICT returns (ValidatedRow | None, issues); ADVISORY returns RowValidationResult.
        """
        if ValidationMode(mode) is ValidationMode.ADVISORY:
            return self.validate_advisory(row.index, row.values, columns)
        return self.validate_strict(row, columns)

    # ------------------------------------------------------------------
    # Strict
    # ------------------------------------------------------------------

    def validate_strict(
        self,
        row: RawRow,
        columns: Iterable[TableColumn],
        *,
        extra_defaults: Mapping[str, Any] | None = None,
    ) -> tuple[Optional[ValidatedRow], list[ValidationIssue]]:
        issues: list[ValidationIssue] = []
        values: dict[str, Any] = {}
        data: dict[str, Any] = {}

        for column in columns:
            contract = self.registry.resolve(column.type)
            raw = row.values.get(column.name)

            if contract.is_blank(raw):
                default = self.default_for(column)
                if default is _NO_DEFAULT and extra_defaults and column.name in extra_defaults:
                    default = extra_defaults[column.name]
                if default is _NO_DEFAULT:
                    if column.is_required:
                        issues.append(RequiredFieldIssue(row.index, column.name, "missing"))
                    continue
                values[column.name] = default
                data[column.name] = contract.to_storage(default)
                continue

            result = contract.coerce(raw)
            if not result.ok:
                issues.append(ValidationIssue(row.index, column.name, result.error))
                continue
            values[column.name] = result.value
            data[column.name] = contract.to_storage(result.value)

        if issues:
            return None, issues
        return ValidatedRow(index=row.index, values=values, data=data), []

    def default_for(self, column: TableColumn) -> Any:
        """Coerced column default, or _NO_DEFAULT when the column has none."""
        if column.default_value is None or column.default_value == "":
            return _NO_DEFAULT
        contract = self.registry.resolve(column.type)
        result = contract.coerce(column.default_value)
        if result.ok:
            return result.value
        # A default that does not fit its own type is stored as written
        return column.default_value

    # ------------------------------------------------------------------
    # Advisory
    # ------------------------------------------------------------------

    def validate_value(self, value: Any, column: TableColumn) -> ValueValidationResult:
        contract = self.registry.resolve(column.type)
        if contract.is_blank(value):
            return ValueValidationResult(True, value, column.name, column.type)

        result = contract.coerce(value)
        if result.ok:
            return ValueValidationResult(True, value, column.name, column.type)
        return ValueValidationResult(
            False,
            value,
            column.name,
            column.type,
            error=result.error,
            suggestion=contract.suggest_fix(value),
        )

    def validate_advisory(self, row_id: Any, data: Mapping[str, Any] | None, columns: Iterable[TableColumn]) -> RowValidationResult:
        data = data or {}
        warnings = []
        for column in columns:
            outcome = self.validate_value(data.get(column.name), column)
            if not outcome.is_valid:
                warnings.append(outcome)
        return RowValidationResult(
            row_id=row_id,
            is_valid=not warnings,
            invalid_count=len(warnings),
            warnings=warnings,
        )


class _NoDefault:
    def __repr__(self) -> str:
        return "<no default>"


_NO_DEFAULT = _NoDefault()
