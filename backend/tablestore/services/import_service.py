# Overview: Service-layer operations for bulk row imports; encapsulates business logic and database work.

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from ..access import UserContext, ensure_owner
from ..column_types.builtin import BooleanType
from ..errors import ImportValidationError, NotFoundError, ValidationError
from ..models import TableRow, UserTable
from .duplicate_checker import DuplicateChecker
from .row_validator import RawRow, RowValidator, ValidatedRow
from .table_service import quantity_of, remove_rows

logger = logging.getLogger(__name__)

"""
Import Invariants (authoritative)

VALIDATE PHASE (no writes):
- Every row is mapped, coerced, defaulted and required-checked; duplicates are
  checked within the batch and (add mode) against persisted rows.
- ALL errors are collected. Any error rejects the whole batch: nothing is written.

COMMIT PHASE (same transaction as the validate phase):
- Replace mode clears existing rows only after validation passed, with one
  `remove` ledger entry per cleared row on inventory tables.
- Each row insert runs in its own SAVEPOINT. An infrastructure failure on one
  row rolls back that row only and is reported; earlier rows stay.
- Sale tables get one `add` ledger entry per inserted row (best-effort).
- One commit at the end.
"""

IMPORT_MODES = ("add", "replace")

# Sale tables accept imports that do not map price/qty at all
SALE_UNMAPPED_DEFAULTS = {"price": 0, "qty": 1}


@dataclass(frozen=True)
class ColumnMapping:
    source_column: str
    target_column: str


@dataclass
class ImportRequest:
    data: list[list[Any]]
    column_mappings: list[ColumnMapping]
    has_headers: bool = True
    headers: Optional[list[str]] = None
    mode: str = "add"

    @classmethod
    def from_payload(cls, payload: dict) -> "ImportRequest":
        if not isinstance(payload, dict):
            raise ValidationError("Request body must be a JSON object")

        data = payload.get("data")
        if not isinstance(data, list) or not all(isinstance(r, list) for r in data):
            raise ValidationError("data must be a list of rows (lists of cell values)")

        raw_mappings = payload.get("columnMappings", payload.get("column_mappings"))
        if not isinstance(raw_mappings, list) or not raw_mappings:
            raise ValidationError("columnMappings must be a non-empty list")
        mappings = []
        for m in raw_mappings:
            if not isinstance(m, dict):
                raise ValidationError("Each column mapping must be an object")
            source = m.get("sourceColumn", m.get("source_column"))
            target = m.get("targetColumn", m.get("target_column"))
            if not source or not target:
                continue
            mappings.append(ColumnMapping(str(source), str(target)))

        headers = payload.get("headers")
        if headers is not None and not isinstance(headers, list):
            raise ValidationError("headers must be a list")

        mode = payload.get("importMode", payload.get("import_mode", "add"))
        if mode not in IMPORT_MODES:
            raise ValidationError("importMode must be 'add' or 'replace'")

        has_headers = payload.get("hasHeaders", payload.get("has_headers"))
        if has_headers is None:
            has_headers = True
        else:
            parsed = BooleanType().coerce(has_headers)
            if not parsed.ok:
                raise ValidationError("hasHeaders must be true or false")
            has_headers = parsed.value
        return cls(
            data=data,
            column_mappings=mappings,
            has_headers=has_headers,
            headers=[str(h) if h is not None else "" for h in headers] if headers is not None else None,
            mode=mode,
        )


@dataclass
class ImportResult:
    imported_rows: int = 0
    skipped_rows: int = 0
    errors: list[str] = field(default_factory=list)
    error_limit: int = 10

    @property
    def total_errors(self) -> int:
        return len(self.errors)

    def to_dict(self) -> dict:
        if self.imported_rows:
            message = f"Successfully imported {self.imported_rows} rows"
        else:
            message = "No rows were imported"
        if self.errors:
            message += f" ({self.total_errors} rows failed to save)"
        return {
            "importedRows": self.imported_rows,
            "skippedRows": self.skipped_rows,
            "errors": self.errors[: self.error_limit],
            "totalErrors": self.total_errors,
            "message": message,
        }


class ImportPipeline:
    def __init__(self, session, registry, *, ledger=None, cache=None, max_rows: int = 10000, error_limit: int = 10):
        self.session = session
        self.validator = RowValidator(registry)
        self.ledger = ledger
        self.cache = cache
        self.max_rows = max_rows
        self.error_limit = error_limit

    def run(self, table_id: int, request: ImportRequest, user: UserContext) -> ImportResult:
        table = self.session.get(UserTable, table_id)
        if table is None:
            raise NotFoundError("Table not found")
        ensure_owner(user, table, "import data")

        validated, skipped = self.validate(table, request)
        result = self.commit(table, validated, mode=request.mode, actor=user.actor)
        result.skipped_rows = skipped
        return result

    # ------------------------------------------------------------------
    # Phase 1
    # ------------------------------------------------------------------

    def _source_layout(self, request: ImportRequest) -> tuple[dict[str, int], list[list[Any]]]:
        rows = request.data
        if request.has_headers and request.headers is not None:
            headers = request.headers
        elif request.has_headers:
            if not rows:
                return {}, []
            headers = ["" if h is None else str(h).strip() for h in rows[0]]
            rows = rows[1:]
        else:
            width = max((len(r) for r in rows), default=0)
            headers = [f"Column {i + 1}" for i in range(width)]

        index = {}
        for i, header in enumerate(headers):
            # First occurrence wins for repeated headers
            index.setdefault(header, i)
        return index, rows

    def validate(self, table: UserTable, request: ImportRequest) -> tuple[list[ValidatedRow], int]:
        """
        Validate every row without writing. Raises ImportValidationError listing
        every problem when any row fails.
        """
        header_index, rows = self._source_layout(request)
        if not rows:
            raise ValidationError("No data rows to import")
        if len(rows) > self.max_rows:
            raise ValidationError(
                f"Import is limited to {self.max_rows} rows per request; received {len(rows)}"
            )

        columns = list(table.columns)
        by_name = {c.name: c for c in columns}

        mappings: list[tuple[int, str]] = []
        for m in request.column_mappings:
            if m.target_column not in by_name:
                logger.warning("Import into table %s skips mapping to unknown column %r", table.id, m.target_column)
                continue
            if m.source_column not in header_index:
                logger.warning("Import into table %s skips mapping from unknown source %r", table.id, m.source_column)
                continue
            mappings.append((header_index[m.source_column], m.target_column))
        if not mappings:
            raise ValidationError("No valid column mappings found")

        extra_defaults = None
        if table.table_type == "sale":
            mapped_targets = {target for _, target in mappings}
            extra_defaults = {k: v for k, v in SALE_UNMAPPED_DEFAULTS.items() if k not in mapped_targets}

        checker = DuplicateChecker(
            self.session,
            table.id,
            columns,
            check_persisted=request.mode != "replace",
        )

        errors: list[str] = []
        validated: list[ValidatedRow] = []
        skipped = 0

        for position, cells in enumerate(rows, start=1):
            values = {}
            for source_idx, target in mappings:
                values[target] = cells[source_idx] if source_idx < len(cells) else None

            registry = self.validator.registry
            if all(registry.resolve(by_name[t].type).is_blank(v) for t, v in values.items()):
                skipped += 1
                continue

            row, issues = self.validator.validate_strict(
                RawRow(index=position, values=values),
                columns,
                extra_defaults=extra_defaults,
            )
            if issues:
                errors.extend(str(i) for i in issues)
                # Unique values that did coerce still count toward later duplicates
                errors.extend(checker.check_row(position, self._unique_values(values, checker.columns)))
                continue

            dup_errors = checker.check_row(position, dict(row.data))
            if dup_errors:
                errors.extend(dup_errors)
                continue
            validated.append(row)

        if errors:
            raise ImportValidationError(errors, limit=self.error_limit)
        if not validated:
            raise ValidationError("No data rows to import")
        return validated, skipped

    def _unique_values(self, values: dict, unique_columns: list) -> dict:
        """Storage form of the raw values that coerce, for allow_duplicates=False columns."""
        data = {}
        for column in unique_columns:
            contract = self.validator.registry.resolve(column.type)
            raw = values.get(column.name)
            if contract.is_blank(raw):
                continue
            outcome = contract.coerce(raw)
            if outcome.ok:
                data[column.name] = contract.to_storage(outcome.value)
        return data

    # ------------------------------------------------------------------
    # Phase 2
    # ------------------------------------------------------------------

    def commit(self, table: UserTable, rows: list[ValidatedRow], *, mode: str, actor: str) -> ImportResult:
        result = ImportResult(error_limit=self.error_limit)

        if mode == "replace":
            existing = self.session.query(TableRow).filter(TableRow.table_id == table.id).order_by(TableRow.id).all()
            cleared = remove_rows(self.session, self.ledger, table, existing, actor=actor, notes="Replaced by import")
            logger.info("Replace import cleared %s rows from table %s", cleared, table.id)

        for row in rows:
            data = dict(row.data)
            nested = self.session.begin_nested()
            try:
                record = TableRow(table_id=table.id, data=data, created_by=actor)
                self.session.add(record)
                self.session.flush()
                nested.commit()
            except Exception as exc:
                nested.rollback()
                logger.exception("Import into table %s failed to insert row %s", table.id, row.index)
                result.errors.append(f"Row {row.index}: Failed to save row ({exc.__class__.__name__})")
                continue

            result.imported_rows += 1
            if self.ledger is not None and table.table_type == "sale":
                self.ledger.record(
                    table=table,
                    item_id=record.id,
                    transaction_type="add",
                    quantity_change=quantity_of(data),
                    previous_data=None,
                    new_data=data,
                    notes="Imported",
                    created_by=actor,
                )

        self.session.commit()
        if self.cache is not None:
            self.cache.delete_prefix(f"table:{table.id}:")
        return result
