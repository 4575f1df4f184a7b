# Overview: Service-layer operations for user tables, columns and rows; encapsulates business logic and database work.

from __future__ import annotations

from typing import Any, Iterable

from sqlalchemy import func

from ..access import UserContext, ensure_owner, ensure_readable, can_read_table
from ..errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from ..models import TableColumn, TableRow, UserTable
from ..models.tables import RENTAL_PERIODS, TABLE_TYPES, VISIBILITIES
from .concurrency import lock_for_update, run_with_retry
from .duplicate_checker import DuplicateChecker
from .row_validator import RawRow, RowValidator

"""
Table schema invariants (authoritative)

- Column names are unique per table, case-insensitively (ConflictError, 409).
- Renaming a column migrates every row's data key in the same transaction.
- Sale/rent tables always carry their protected columns; those cannot be
  renamed, retyped or deleted.
- Row data keys are a subset of the table's column names.
- On sale/rent tables every row create/update/delete writes one ledger entry.
"""

DEFAULT_COLUMNS = {
    "sale": (
        {"name": "price", "type": "number", "is_required": True, "allow_duplicates": True},
        {"name": "qty", "type": "integer", "is_required": True, "allow_duplicates": True, "default_value": "1"},
    ),
    "rent": (
        {"name": "price", "type": "number", "is_required": True, "allow_duplicates": True},
        {"name": "fee", "type": "number", "is_required": True, "allow_duplicates": True, "default_value": "0"},
        {"name": "used", "type": "boolean", "is_required": True, "allow_duplicates": True, "default_value": "false"},
        {"name": "available", "type": "boolean", "is_required": True, "allow_duplicates": True, "default_value": "true"},
    ),
}

PROTECTED_COLUMNS = {
    table_type: frozenset(c["name"] for c in cols) for table_type, cols in DEFAULT_COLUMNS.items()
}

INVENTORY_TABLE_TYPES = ("sale", "rent")

MAX_NAME_LENGTH = 255


def name_key(name: str) -> str:
    return name.strip().casefold()


def is_protected(table: UserTable, column_name: str) -> bool:
    return column_name in PROTECTED_COLUMNS.get(table.table_type, ())


def quantity_of(data: dict | None) -> float | None:
    qty = (data or {}).get("qty")
    if isinstance(qty, bool) or not isinstance(qty, (int, float)):
        return None
    return qty


def remove_rows(session, ledger, table: UserTable, rows: Iterable[TableRow], *, actor: str, notes: str | None = None) -> int:
    """
    Delete rows, writing a `remove` ledger entry per row on inventory tables.

    Does not commit.
    """
    count = 0
    for row in rows:
        if ledger is not None and table.table_type in INVENTORY_TABLE_TYPES:
            qty = quantity_of(row.data) if table.table_type == "sale" else None
            ledger.record(
                table=table,
                item_id=row.id,
                transaction_type="remove",
                quantity_change=-qty if qty is not None else None,
                previous_data=row.data,
                new_data=None,
                notes=notes,
                created_by=actor,
            )
        session.delete(row)
        count += 1
    session.flush()
    return count


class TableService:
    def __init__(self, session, registry, *, ledger=None, cache=None):
        self.session = session
        self.registry = registry
        self.validator = RowValidator(registry)
        self.ledger = ledger
        self.cache = cache

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    def get_table(self, table_id: int) -> UserTable:
        table = self.session.get(UserTable, table_id)
        if table is None:
            raise NotFoundError("Table not found")
        return table

    def get_readable_table(self, table_id: int, user: UserContext | None) -> UserTable:
        table = self.get_table(table_id)
        ensure_readable(user, table)
        return table

    def get_owned_table(self, table_id: int, user: UserContext | None, action: str = "modify this table") -> UserTable:
        table = self.get_table(table_id)
        ensure_owner(user, table, action)
        return table

    def list_tables(self, user: UserContext, *, table_type: str | None = None) -> list[UserTable]:
        q = self.session.query(UserTable)
        if table_type:
            q = q.filter(UserTable.table_type == table_type)
        tables = q.order_by(UserTable.id).all()
        return [t for t in tables if can_read_table(user, t)]

    def create_table(self, payload: dict, user: UserContext) -> UserTable:
        name = _clean_name(payload.get("name"), "Table name")
        table_type = payload.get("table_type") or payload.get("tableType") or "default"
        visibility = payload.get("visibility") or "private"
        if table_type not in TABLE_TYPES:
            raise ValidationError(f"table_type must be one of: {', '.join(TABLE_TYPES)}")
        if visibility not in VISIBILITIES:
            raise ValidationError(f"visibility must be one of: {', '.join(VISIBILITIES)}")

        rental_period = payload.get("rental_period") or payload.get("rentalPeriod")
        if table_type == "rent":
            rental_period = rental_period or "month"
            if rental_period not in RENTAL_PERIODS:
                raise ValidationError(f"rental_period must be one of: {', '.join(RENTAL_PERIODS)}")
        else:
            rental_period = None

        table = UserTable(
            name=name,
            description=payload.get("description"),
            created_by=user.actor,
            visibility=visibility,
            table_type=table_type,
            product_id_column=payload.get("product_id_column") or payload.get("productIdColumn"),
            rental_period=rental_period,
        )
        self.session.add(table)
        self.session.flush()

        requested = payload.get("columns") or []
        if not isinstance(requested, list) or not all(isinstance(c, dict) for c in requested):
            raise ValidationError("columns must be a list of column objects")
        specs = list(DEFAULT_COLUMNS.get(table_type, ()))
        protected = PROTECTED_COLUMNS.get(table_type, frozenset())
        # Protected columns always use the default definition
        specs.extend(c for c in requested if name_key(str(c.get("name", ""))) not in protected)

        for spec in specs:
            self._add_column(table, spec)

        self.session.commit()
        return table

    def update_table(self, table_id: int, payload: dict, user: UserContext) -> UserTable:
        table = self.get_owned_table(table_id, user)
        if "table_type" in payload or "tableType" in payload:
            raise ValidationError("table_type cannot be changed after creation")

        if "name" in payload:
            table.name = _clean_name(payload.get("name"), "Table name")
        if "description" in payload:
            table.description = payload.get("description")
        if "visibility" in payload:
            if payload["visibility"] not in VISIBILITIES:
                raise ValidationError(f"visibility must be one of: {', '.join(VISIBILITIES)}")
            table.visibility = payload["visibility"]
        if "product_id_column" in payload:
            table.product_id_column = payload.get("product_id_column")
        if "rental_period" in payload and table.table_type == "rent":
            if payload["rental_period"] not in RENTAL_PERIODS:
                raise ValidationError(f"rental_period must be one of: {', '.join(RENTAL_PERIODS)}")
            table.rental_period = payload["rental_period"]

        self.session.commit()
        return table

    def delete_table(self, table_id: int, user: UserContext) -> None:
        """Ledger history, sales and rentals outlive the table (they keep a name snapshot)."""
        table = self.get_owned_table(table_id, user, "delete this table")
        self.session.query(TableRow).filter(TableRow.table_id == table.id).delete(synchronize_session=False)
        self.session.delete(table)
        self.session.commit()
        self.invalidate(table_id)

    # ------------------------------------------------------------------
    # Columns
    # ------------------------------------------------------------------

    def get_column(self, table: UserTable, column_id: int) -> TableColumn:
        column = self.session.get(TableColumn, column_id)
        if column is None or column.table_id != table.id:
            raise NotFoundError("Column not found")
        return column

    def _ensure_unique_name(self, table: UserTable, name: str, *, exclude_id: int | None = None) -> None:
        q = self.session.query(TableColumn.id).filter(
            TableColumn.table_id == table.id,
            TableColumn.name_key == name_key(name),
        )
        if exclude_id is not None:
            q = q.filter(TableColumn.id != exclude_id)
        if q.first() is not None:
            raise ConflictError(
                f'A column named "{name}" already exists in this table. Please choose a different name.'
            )

    def _add_column(self, table: UserTable, spec: dict) -> TableColumn:
        name = _clean_name(spec.get("name"), "Column name")
        self._ensure_unique_name(table, name)

        type_id = str(spec.get("type") or "text").strip()
        position = spec.get("position")
        if position is None:
            current_max = (
                self.session.query(func.max(TableColumn.position))
                .filter(TableColumn.table_id == table.id)
                .scalar()
            )
            position = 0 if current_max is None else current_max + 1

        column = TableColumn(
            table_id=table.id,
            name=name,
            name_key=name_key(name),
            type=type_id,
            is_required=bool(_pick(spec, "is_required", "isRequired", default=False)),
            allow_duplicates=bool(_pick(spec, "allow_duplicates", "allowDuplicates", default=True)),
            default_value=_default_text(_pick(spec, "default_value", "defaultValue")),
            position=int(position),
        )
        self.session.add(column)
        self.session.flush()
        return column

    def add_column(self, table_id: int, payload: dict, user: UserContext) -> TableColumn:
        table = self.get_owned_table(table_id, user, "change columns")
        column = self._add_column(table, payload)
        self.session.commit()
        self.invalidate(table.id)
        return column

    def update_column(self, table_id: int, column_id: int, payload: dict, user: UserContext) -> TableColumn:
        table = self.get_owned_table(table_id, user, "change columns")
        column = self.get_column(table, column_id)
        protected = is_protected(table, column.name)

        if "name" in payload:
            new_name = _clean_name(payload.get("name"), "Column name")
            if new_name != column.name:
                if protected:
                    raise ForbiddenError(f'Column "{column.name}" is required for {table.table_type} tables and cannot be renamed')
                self._ensure_unique_name(table, new_name, exclude_id=column.id)
                self._migrate_row_key(table, column.name, new_name)
                column.name = new_name
                column.name_key = name_key(new_name)

        if "type" in payload:
            new_type = str(payload.get("type") or "").strip()
            if not new_type:
                raise ValidationError("Column type is required")
            if protected and new_type != column.type:
                raise ForbiddenError(f'Column "{column.name}" is required for {table.table_type} tables and cannot change type')
            column.type = new_type

        for attr, aliases in (
            ("is_required", ("is_required", "isRequired")),
            ("allow_duplicates", ("allow_duplicates", "allowDuplicates")),
        ):
            for key in aliases:
                if key in payload:
                    setattr(column, attr, bool(payload[key]))
        for key in ("default_value", "defaultValue"):
            if key in payload:
                column.default_value = _default_text(payload[key])
        if "position" in payload:
            column.position = int(payload["position"])

        self.session.commit()
        self.invalidate(table.id)
        return column

    def delete_column(self, table_id: int, column_id: int, user: UserContext) -> None:
        table = self.get_owned_table(table_id, user, "change columns")
        column = self.get_column(table, column_id)
        if is_protected(table, column.name):
            raise ForbiddenError(f'Column "{column.name}" is required for {table.table_type} tables and cannot be deleted')

        self._migrate_row_key(table, column.name, None)
        self.session.delete(column)
        self.session.commit()
        self.invalidate(table.id)

    def _migrate_row_key(self, table: UserTable, old: str, new: str | None) -> None:
        rows = self.session.query(TableRow).filter(TableRow.table_id == table.id).all()
        for row in rows:
            data = dict(row.data or {})
            if old not in data:
                continue
            value = data.pop(old)
            if new is not None:
                data[new] = value
            row.data = data
        self.session.flush()

    def column_values(self, table_id: int, column_id: int, user: UserContext | None) -> list:
        """Distinct non-empty values of one column (for filter pickers)."""
        table = self.get_readable_table(table_id, user)
        column = self.get_column(table, column_id)

        def _compute() -> list:
            values = []
            seen = set()
            rows = self.session.query(TableRow.data).filter(TableRow.table_id == table.id)
            for (data,) in rows.yield_per(500):
                value = (data or {}).get(column.name)
                if value is None or value == "" or isinstance(value, (dict, list)):
                    continue
                if value not in seen:
                    seen.add(value)
                    values.append(value)
            return sorted(values, key=lambda v: str(v))

        if self.cache is None:
            return _compute()
        return self.cache.get_or_compute(self.cache.column_values_key(table.id, column.name), _compute)

    # ------------------------------------------------------------------
    # Rows
    # ------------------------------------------------------------------

    def list_rows(self, table_id: int, user: UserContext | None, *, page: int = 1, limit: int = 100) -> dict:
        table = self.get_readable_table(table_id, user)
        page = max(1, page)
        limit = max(1, min(limit, 500))
        q = self.session.query(TableRow).filter(TableRow.table_id == table.id)
        total = q.count()
        rows = q.order_by(TableRow.id).offset((page - 1) * limit).limit(limit).all()
        return {
            "items": [r.to_dict() for r in rows],
            "total": total,
            "page": page,
            "limit": limit,
        }

    def get_row(self, table: UserTable, row_id: int, *, lock: bool = False) -> TableRow:
        q = self.session.query(TableRow).filter(TableRow.id == row_id, TableRow.table_id == table.id)
        if lock:
            q = lock_for_update(q)
        row = q.first()
        if row is None:
            raise NotFoundError("Row not found")
        return row

    def _validated_data(self, table: UserTable, values: dict, *, exclude_row_id: int | None = None) -> dict:
        if not isinstance(values, dict):
            raise ValidationError("data must be an object")
        columns = list(table.columns)
        known = {c.name for c in columns}
        unknown = sorted(k for k in values if k not in known)
        if unknown:
            raise ValidationError(f"Unknown column(s): {', '.join(unknown)}")

        validated, issues = self.validator.validate_strict(RawRow(index=1, values=values), columns)
        messages = [str(i) for i in issues]
        if validated is not None:
            checker = DuplicateChecker(self.session, table.id, columns, exclude_row_id=exclude_row_id)
            messages.extend(checker.check_row(1, dict(validated.data)))
        if messages:
            raise ValidationError(messages[0], details=messages)
        return dict(validated.data)

    def create_row(self, table_id: int, values: dict, user: UserContext) -> TableRow:
        table = self.get_owned_table(table_id, user, "add rows")
        data = self._validated_data(table, values)

        row = TableRow(table_id=table.id, data=data, created_by=user.actor)
        self.session.add(row)
        self.session.flush()

        if self.ledger is not None and table.table_type in INVENTORY_TABLE_TYPES:
            qty = quantity_of(data) if table.table_type == "sale" else None
            self.ledger.record(
                table=table,
                item_id=row.id,
                transaction_type="add",
                quantity_change=qty,
                previous_data=None,
                new_data=data,
                created_by=user.actor,
            )

        self.session.commit()
        self.invalidate(table.id)
        return row

    def update_row(self, table_id: int, row_id: int, changes: dict, user: UserContext) -> TableRow:
        table = self.get_owned_table(table_id, user, "edit rows")
        if not isinstance(changes, dict) or not changes:
            raise ValidationError("No update data provided")

        def _op() -> TableRow:
            row = self.get_row(table, row_id, lock=True)
            previous = dict(row.data or {})
            merged = {**previous, **changes}
            data = self._validated_data(table, merged, exclude_row_id=row.id)
            row.data = data
            self.session.flush()

            if self.ledger is not None and table.table_type in INVENTORY_TABLE_TYPES:
                delta = None
                if table.table_type == "sale":
                    before, after = quantity_of(previous), quantity_of(data)
                    if before is not None and after is not None:
                        delta = after - before
                self.ledger.record(
                    table=table,
                    item_id=row.id,
                    transaction_type="update",
                    quantity_change=delta,
                    previous_data=previous,
                    new_data=data,
                    created_by=user.actor,
                )
            self.session.commit()
            return row

        row = run_with_retry(_op, session=self.session)
        self.invalidate(table.id)
        return row

    def delete_row(self, table_id: int, row_id: int, user: UserContext) -> None:
        table = self.get_owned_table(table_id, user, "delete rows")
        row = self.get_row(table, row_id)
        remove_rows(self.session, self.ledger, table, [row], actor=user.actor)
        self.session.commit()
        self.invalidate(table.id)

    def mass_delete_rows(self, table_id: int, row_ids: list, user: UserContext) -> int:
        table = self.get_owned_table(table_id, user, "delete rows")
        if not isinstance(row_ids, list) or not row_ids:
            raise ValidationError("row_ids must be a non-empty list")
        try:
            ids = sorted({int(r) for r in row_ids})
        except (TypeError, ValueError):
            raise ValidationError("row_ids must contain integers")

        rows = (
            self.session.query(TableRow)
            .filter(TableRow.table_id == table.id, TableRow.id.in_(ids))
            .all()
        )
        count = remove_rows(self.session, self.ledger, table, rows, actor=user.actor, notes="Mass delete")
        self.session.commit()
        self.invalidate(table.id)
        return count

    def all_rows(self, table: UserTable, *, limit: int | None = None) -> list[TableRow]:
        q = self.session.query(TableRow).filter(TableRow.table_id == table.id).order_by(TableRow.id)
        if limit is not None:
            q = q.limit(limit)
        return q.all()

    def invalidate(self, table_id: int) -> None:
        if self.cache is not None:
            self.cache.delete_prefix(f"table:{table_id}:")


def _clean_name(value: Any, label: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{label} is required")
    name = value.strip()
    if len(name) > MAX_NAME_LENGTH:
        raise ValidationError(f"{label} must be at most {MAX_NAME_LENGTH} characters")
    return name


def _pick(spec: dict, *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in spec:
            return spec[key]
    return default


def _default_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)
