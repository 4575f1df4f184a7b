# Overview: Service-layer operations for dataset health checks and invalid-row remediation.

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable

from ..access import UserContext
from ..models import TableColumn, TableRow, UserTable
from .row_validator import RowValidationResult, RowValidator
from .table_service import TableService, remove_rows

"""
Validation summary invariants (authoritative)

- Built only from advisory RowValidator runs; reading never mutates rows.
- Remediation deletes exactly the rows the fresh scan flags, commits, then
  scans again so the caller sees the post-delete state (invalidRows == 0).
"""

MAX_SAMPLE_ERRORS = 3
MAX_SAMPLE_ISSUES = 10


@dataclass
class ColumnSummary:
    column_name: str
    column_type: str
    invalid_count: int = 0
    valid_count: int = 0
    sample_errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "columnName": self.column_name,
            "columnType": self.column_type,
            "invalidCount": self.invalid_count,
            "validCount": self.valid_count,
            "sampleErrors": list(self.sample_errors),
        }


@dataclass
class DatasetValidationResult:
    total_rows: int = 0
    valid_rows: int = 0
    invalid_rows: int = 0
    total_warnings: int = 0
    rows: list[RowValidationResult] = field(default_factory=list)
    summary: list[ColumnSummary] = field(default_factory=list)

    @property
    def message(self) -> str:
        if self.total_warnings:
            return f"Found {self.total_warnings} validation warnings in {self.invalid_rows} rows"
        return "All data is valid"

    def to_dict(self) -> dict:
        return {
            "totalRows": self.total_rows,
            "validRows": self.valid_rows,
            "invalidRows": self.invalid_rows,
            "totalWarnings": self.total_warnings,
            "rows": [r.to_dict() for r in self.rows],
            "summary": [s.to_dict() for s in self.summary],
        }


class ValidationSummaryService:
    def __init__(self, session, registry, *, ledger=None, cache=None, scan_limit: int = 10000):
        self.session = session
        self.validator = RowValidator(registry)
        self.tables = TableService(session, registry, ledger=ledger, cache=cache)
        self.ledger = ledger
        self.scan_limit = scan_limit

    def validate_dataset(self, rows: Iterable[tuple[Any, dict]], columns: list[TableColumn]) -> DatasetValidationResult:
        """rows are (row_id, data) pairs."""
        result = DatasetValidationResult()
        per_column = {c.name: ColumnSummary(c.name, c.type) for c in columns}

        for row_id, data in rows:
            result.total_rows += 1
            outcome = self.validator.validate_advisory(row_id, data, columns)
            flagged = {w.column_name for w in outcome.warnings}

            for warning in outcome.warnings:
                summary = per_column[warning.column_name]
                summary.invalid_count += 1
                if len(summary.sample_errors) < MAX_SAMPLE_ERRORS:
                    summary.sample_errors.append(f"{warning.value}: {warning.error}")
            for name, summary in per_column.items():
                if name not in flagged:
                    summary.valid_count += 1

            if outcome.is_valid:
                result.valid_rows += 1
            else:
                result.invalid_rows += 1
                result.total_warnings += outcome.invalid_count
                result.rows.append(outcome)

        result.summary = [per_column[c.name] for c in columns]
        return result

    def validate_table(self, table_id: int, user: UserContext | None, *, page: int = 1, limit: int = 500) -> tuple[UserTable, DatasetValidationResult]:
        table = self.tables.get_readable_table(table_id, user)
        page = max(1, page)
        limit = max(1, min(limit, 500))
        rows = (
            self.session.query(TableRow.id, TableRow.data)
            .filter(TableRow.table_id == table.id)
            .order_by(TableRow.id)
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return table, self.validate_dataset(rows, list(table.columns))

    def delete_invalid_rows(self, table_id: int, user: UserContext) -> dict:
        table = self.tables.get_owned_table(table_id, user, "delete rows")
        columns = list(table.columns)

        rows = self.tables.all_rows(table, limit=self.scan_limit)
        scan = self.validate_dataset(((r.id, r.data) for r in rows), columns)
        if not scan.invalid_rows:
            return {
                "deletedCount": 0,
                "invalidRowsFound": 0,
                "totalRowsChecked": scan.total_rows,
                "remainingInvalidRows": 0,
                "message": "No invalid rows found",
            }

        invalid_ids = {r.row_id for r in scan.rows}
        doomed = [r for r in rows if r.id in invalid_ids]
        deleted = remove_rows(self.session, self.ledger, table, doomed, actor=user.actor, notes="Invalid row removed")
        self.session.commit()
        self.tables.invalidate(table.id)

        # Fresh scan, not the pre-delete result
        after = self.validate_dataset(
            ((r.id, r.data) for r in self.tables.all_rows(table, limit=self.scan_limit)),
            columns,
        )
        return {
            "deletedCount": deleted,
            "invalidRowsFound": scan.invalid_rows,
            "totalRowsChecked": scan.total_rows,
            "remainingInvalidRows": after.invalid_rows,
            "message": f"Deleted {deleted} invalid rows",
        }

    def preview_type_change(self, table_id: int, column_id: int, new_type: str, user: UserContext | None) -> dict:
        table = self.tables.get_readable_table(table_id, user)
        column = self.tables.get_column(table, column_id)
        contract = self.validator.registry.resolve(new_type)

        rows = self.tables.all_rows(table, limit=self.scan_limit)
        compatible = 0
        issues = []
        for row in rows:
            value = (row.data or {}).get(column.name)
            if contract.is_blank(value):
                compatible += 1
                continue
            outcome = contract.coerce(value)
            if outcome.ok:
                compatible += 1
            elif len(issues) < MAX_SAMPLE_ISSUES:
                issues.append({"rowId": row.id, "currentValue": value, "issue": outcome.error})

        return {
            "columnName": column.name,
            "currentType": column.type,
            "newType": new_type,
            "totalRows": len(rows),
            "compatibleRows": compatible,
            "incompatibleRows": len(rows) - compatible,
            "sampleIssues": issues,
        }
