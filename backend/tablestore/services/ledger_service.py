# Overview: Service-layer operations for the inventory ledger; encapsulates business logic and database work.

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Any, Optional

from sqlalchemy import case, func

from ..errors import ValidationError
from ..models import InventoryTransaction, UserTable
from ..models.inventory import TRANSACTION_TYPES
from ..time_utils import parse_iso_date, to_utc_z

logger = logging.getLogger(__name__)

"""
Inventory Ledger Invariants (authoritative)

- Append-only: entries are inserted, never updated or deleted.
- Entries are written inside the same DB transaction as the change they record,
  each in its own SAVEPOINT. A failed write rolls back only the savepoint, is
  logged, and never reaches the caller.
- The ledger is an audit side-channel. Current state lives on the table row.
- Date filters are inclusive calendar days (YYYY-MM-DD).
"""


def day_bounds(date_from: Optional[date], date_to: Optional[date]) -> tuple[Optional[datetime], Optional[datetime]]:
    start = datetime.combine(date_from, datetime.min.time()) if date_from else None
    end = datetime.combine(date_to + timedelta(days=1), datetime.min.time()) if date_to else None
    return start, end


def parse_date_filters(date_from: Optional[str], date_to: Optional[str]) -> tuple[Optional[date], Optional[date]]:
    try:
        start = parse_iso_date(date_from)
        end = parse_iso_date(date_to)
    except ValueError:
        raise ValidationError("dateFrom and dateTo must be YYYY-MM-DD dates")
    if start and end and start > end:
        raise ValidationError("dateFrom must not be after dateTo")
    return start, end


class InventoryLedger:
    def __init__(self, session, *, cache=None, cache_ttl: int | None = None):
        self.session = session
        self.cache = cache
        self.cache_ttl = cache_ttl

    def record(
        self,
        *,
        table: UserTable,
        item_id: int,
        transaction_type: str,
        quantity_change: float | None = None,
        previous_data: dict | None = None,
        new_data: dict | None = None,
        reference_id: int | None = None,
        notes: str | None = None,
        created_by: str | None = None,
    ) -> Optional[InventoryTransaction]:
        """
        Append one ledger entry. Never raises.

        Flushes inside a savepoint but does not commit; the caller's
        transaction decides whether the entry lands.
        """
        nested = None
        try:
            if transaction_type not in TRANSACTION_TYPES:
                raise ValueError(f"Unknown transaction type {transaction_type!r}")

            nested = self.session.begin_nested()
            entry = InventoryTransaction(
                table_id=table.id,
                table_name=table.name,
                item_id=item_id,
                transaction_type=transaction_type,
                quantity_change=quantity_change,
                previous_data=dict(previous_data) if previous_data is not None else None,
                new_data=dict(new_data) if new_data is not None else None,
                reference_id=reference_id,
                notes=notes,
                created_by=created_by,
            )
            self.session.add(entry)
            self.session.flush()
            nested.commit()
        except Exception:
            if nested is not None and nested.is_active:
                nested.rollback()
            logger.exception(
                "Failed to record %s ledger entry for table %s item %s",
                transaction_type,
                getattr(table, "id", None),
                item_id,
            )
            return None

        if self.cache is not None:
            self.cache.delete_prefix("ledger:")
        return entry

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _filtered(self, *, table_id=None, item_id=None, transaction_type=None, date_from=None, date_to=None):
        q = self.session.query(InventoryTransaction)
        if table_id is not None:
            q = q.filter(InventoryTransaction.table_id == table_id)
        if item_id is not None:
            q = q.filter(InventoryTransaction.item_id == item_id)
        if transaction_type:
            q = q.filter(InventoryTransaction.transaction_type == transaction_type)
        start, end = day_bounds(date_from, date_to)
        if start is not None:
            q = q.filter(InventoryTransaction.created_at >= start)
        if end is not None:
            q = q.filter(InventoryTransaction.created_at < end)
        return q

    def list_transactions(
        self,
        *,
        table_id: int | None = None,
        item_id: int | None = None,
        transaction_type: str | None = None,
        date_from: date | None = None,
        date_to: date | None = None,
        page: int = 1,
        limit: int = 100,
    ) -> dict:
        if transaction_type and transaction_type not in TRANSACTION_TYPES:
            raise ValidationError(f"transaction_type must be one of: {', '.join(TRANSACTION_TYPES)}")
        page = max(1, page)
        limit = max(1, min(limit, 500))

        q = self._filtered(
            table_id=table_id,
            item_id=item_id,
            transaction_type=transaction_type,
            date_from=date_from,
            date_to=date_to,
        )
        total = q.count()
        rows = (
            q.order_by(InventoryTransaction.created_at.desc(), InventoryTransaction.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return {
            "items": [r.to_dict() for r in rows],
            "total": total,
            "page": page,
            "limit": limit,
        }

    def query_analytics(
        self,
        *,
        date_from: date | None = None,
        date_to: date | None = None,
        table_id: int | None = None,
    ) -> dict:
        def _compute() -> dict:
            return self._compute_analytics(date_from=date_from, date_to=date_to, table_id=table_id)

        if self.cache is None:
            return _compute()
        key = f"ledger:analytics:{date_from}:{date_to}:{table_id}"
        return self.cache.get_or_compute(key, _compute, self.cache_ttl)

    def _compute_analytics(self, *, date_from, date_to, table_id) -> dict:
        base = self._filtered(table_id=table_id, date_from=date_from, date_to=date_to)
        total = base.count()

        by_type_rows = (
            base.with_entities(
                InventoryTransaction.transaction_type,
                func.count(InventoryTransaction.id),
                func.coalesce(func.sum(InventoryTransaction.quantity_change), 0),
            )
            .group_by(InventoryTransaction.transaction_type)
            .all()
        )
        transactions_by_type = {t: 0 for t in TRANSACTION_TYPES}
        quantity_by_type = {t: 0 for t in TRANSACTION_TYPES}
        for tx_type, count, qty in by_type_rows:
            transactions_by_type[tx_type] = int(count)
            quantity_by_type[tx_type] = _number(qty)

        tx_count = func.count(InventoryTransaction.id).label("tx_count")
        table_rows = (
            base.with_entities(
                InventoryTransaction.table_id,
                func.max(InventoryTransaction.table_name),
                tx_count,
            )
            .group_by(InventoryTransaction.table_id)
            .order_by(tx_count.desc(), InventoryTransaction.table_id)
            .limit(10)
            .all()
        )
        item_rows = (
            base.with_entities(
                InventoryTransaction.table_id,
                InventoryTransaction.item_id,
                tx_count,
            )
            .group_by(InventoryTransaction.table_id, InventoryTransaction.item_id)
            .order_by(tx_count.desc(), InventoryTransaction.item_id)
            .limit(10)
            .all()
        )

        day = func.date(InventoryTransaction.created_at)
        date_rows = (
            base.with_entities(day.label("day"), func.count(InventoryTransaction.id))
            .group_by(day)
            .order_by(day)
            .all()
        )

        return {
            "totalTransactions": total,
            "transactionsByType": transactions_by_type,
            "quantityByType": quantity_by_type,
            "mostActiveTables": [
                {"tableId": tid, "tableName": name, "count": int(count)}
                for tid, name, count in table_rows
            ],
            "mostActiveItems": [
                {"tableId": tid, "itemId": iid, "count": int(count)}
                for tid, iid, count in item_rows
            ],
            "transactionsByDate": [
                {"date": str(d), "count": int(count)} for d, count in date_rows
            ],
        }

    def item_summary(self, table_id: int, item_id: int) -> dict:
        tx = InventoryTransaction
        qty = func.coalesce(tx.quantity_change, 0)
        row = (
            self.session.query(
                func.count(tx.id),
                func.coalesce(func.sum(case((tx.transaction_type == "add", qty), else_=0)), 0),
                func.coalesce(func.sum(case((tx.transaction_type == "remove", func.abs(qty)), else_=0)), 0),
                func.coalesce(func.sum(case((tx.transaction_type == "sale", func.abs(qty)), else_=0)), 0),
                func.coalesce(func.sum(case((tx.transaction_type.in_(("adjust", "update")), qty), else_=0)), 0),
                func.max(tx.created_at),
            )
            .filter(tx.table_id == table_id, tx.item_id == item_id)
            .one()
        )
        count, added, removed, sold, adjustments, last_at = row

        latest = (
            self.session.query(tx)
            .filter(tx.table_id == table_id, tx.item_id == item_id)
            .order_by(tx.created_at.desc(), tx.id.desc())
            .first()
        )
        current_quantity = None
        if latest is not None and latest.new_data is not None:
            current_quantity = latest.new_data.get("qty")

        return {
            "tableId": table_id,
            "itemId": item_id,
            "currentQuantity": current_quantity,
            "totalAdded": _number(added),
            "totalRemoved": _number(removed),
            "totalSold": _number(sold),
            "totalAdjustments": _number(adjustments),
            "lastTransactionDate": to_utc_z(last_at) if isinstance(last_at, datetime) else last_at,
            "transactionCount": int(count),
        }

    def table_summary(self, table_id: int, rows: list[Any]) -> dict:
        """
        Summarize a table's items and ledger activity.

        rows are the table's current TableRow objects; quantities come from the
        rows (system of record), activity counts from the ledger.
        """
        tx = InventoryTransaction
        counts = dict(
            self.session.query(tx.item_id, func.count(tx.id))
            .filter(tx.table_id == table_id)
            .group_by(tx.item_id)
            .all()
        )

        items = []
        total_quantity = 0
        for row in rows:
            qty = (row.data or {}).get("qty")
            if isinstance(qty, (int, float)) and not isinstance(qty, bool):
                total_quantity += qty
            items.append({
                "itemId": row.id,
                "currentQuantity": qty,
                "transactionCount": int(counts.get(row.id, 0)),
            })

        return {
            "tableId": table_id,
            "totalItems": len(rows),
            "totalQuantity": _number(total_quantity),
            "totalTransactions": int(sum(counts.values())),
            "items": items,
        }


def _number(value) -> int | float:
    if value is None:
        return 0
    value = float(value)
    return int(value) if value.is_integer() else value
