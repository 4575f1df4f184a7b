# Overview: Service-layer operations for storefront sales; encapsulates business logic and database work.

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Optional

from sqlalchemy import func
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..access import UserContext, is_owner
from ..column_types.builtin import parse_number
from ..errors import (
    AppError,
    ConflictError,
    ForbiddenError,
    InsufficientStockError,
    InternalError,
    NotFoundError,
    ValidationError,
)
from ..models import Sale, TableRow, UserTable
from ..models.commerce import SALE_STATUSES
from .concurrency import lock_for_update, run_with_retry
from .document_service import next_document_number
from .ledger_service import day_bounds

logger = logging.getLogger(__name__)

"""
Sale Invariants (authoritative)

- A purchase never drives qty below zero; a shortage is rejected before any write.
- Sale record, qty decrement and `sale` ledger entry commit in one transaction.
- The item row is locked (FOR UPDATE where supported) and version-checked; a
  concurrent write raises StaleDataError and the whole purchase is retried
  from a fresh read.
- After a sale exists, only sale_status, payment_method and notes may change.
"""

UPDATABLE_SALE_FIELDS = {
    "sale_status": "sale_status",
    "saleStatus": "sale_status",
    "payment_method": "payment_method",
    "paymentMethod": "payment_method",
    "notes": "notes",
}


def payload_value(payload: dict, *names: str, default: Any = None) -> Any:
    for name in names:
        if name in payload and payload[name] is not None:
            return payload[name]
    return default


def as_number(value: Any) -> Optional[float]:
    try:
        return parse_number(value)
    except ValueError:
        return None


def positive_int(value: Any, label: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{label} must be a positive integer")
    try:
        number = parse_number(value)
    except ValueError:
        raise ValidationError(f"{label} must be a positive integer")
    if not isinstance(number, int) or number < 1:
        raise ValidationError(f"{label} must be a positive integer")
    return number


def required_id(payload: dict, *names: str) -> int:
    value = payload_value(payload, *names)
    if value is None:
        raise ValidationError(f"{names[0]} is required")
    return positive_int(value, names[0])


@dataclass(frozen=True)
class PurchaseRequest:
    table_id: int
    item_id: int
    customer_id: Optional[str] = None
    quantity_sold: int = 1
    payment_method: Optional[str] = None
    notes: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: dict) -> "PurchaseRequest":
        if not isinstance(payload, dict):
            raise ValidationError("Request body must be a JSON object")
        customer = payload_value(payload, "customer_id", "customerId")
        return cls(
            table_id=required_id(payload, "table_id", "tableId"),
            item_id=required_id(payload, "item_id", "itemId"),
            customer_id=str(customer) if customer is not None else None,
            quantity_sold=positive_int(payload_value(payload, "quantity_sold", "quantitySold", default=1), "quantity_sold"),
            payment_method=payload_value(payload, "payment_method", "paymentMethod"),
            notes=payload_value(payload, "notes"),
        )


class SaleEngine:
    def __init__(self, session, ledger, *, cache=None):
        self.session = session
        self.ledger = ledger
        self.cache = cache

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _sale_table(self, table_id: int, user: UserContext | None) -> UserTable:
        table = self.session.get(UserTable, table_id)
        if table is None:
            raise NotFoundError("Table not found")
        if table.table_type != "sale" or not (table.is_public or is_owner(user, table)):
            raise ForbiddenError("Table is not available for public sales")
        return table

    def _item(self, table: UserTable, item_id: int, *, lock: bool = False) -> TableRow:
        q = self.session.query(TableRow).filter(TableRow.id == item_id, TableRow.table_id == table.id)
        if lock:
            q = lock_for_update(q)
        row = q.first()
        if row is None:
            raise NotFoundError("Item not found")
        return row

    @staticmethod
    def _priced_stock(row: TableRow) -> tuple[float, float]:
        data = row.data or {}
        price = as_number(data.get("price"))
        if price is None or price <= 0:
            raise ForbiddenError("Item is not available for sale")
        qty = as_number(data.get("qty"))
        if qty is None or qty < 0:
            raise ValidationError("Item has invalid quantity")
        return price, qty

    # ------------------------------------------------------------------
    # Availability
    # ------------------------------------------------------------------

    def check_availability(self, table: UserTable, item_id: int, quantity: int = 1) -> dict:
        row = self._item(table, item_id)
        data = row.data or {}
        price = as_number(data.get("price"))
        qty = as_number(data.get("qty"))
        stock = qty if qty is not None and qty >= 0 else 0
        sellable = price is not None and price > 0
        return {
            "tableType": "sale",
            "itemId": row.id,
            "available": sellable and stock > 0,
            "currentStock": stock,
            "requestedQuantity": quantity,
            "canFulfill": sellable and stock >= quantity,
            "price": price,
        }

    # ------------------------------------------------------------------
    # Transition: buy
    # ------------------------------------------------------------------

    def buy(self, request: PurchaseRequest, user: UserContext) -> Sale:
        def _op() -> Sale:
            table = self._sale_table(request.table_id, user)
            row = self._item(table, request.item_id, lock=True)
            price, qty = self._priced_stock(row)

            if request.quantity_sold > qty:
                raise InsufficientStockError(qty, request.quantity_sold)

            try:
                return self._complete(table, row, price, qty, request, user)
            except (AppError, OperationalError, StaleDataError):
                raise
            except Exception as exc:
                self.session.rollback()
                logger.exception("Purchase of item %s in table %s failed", request.item_id, request.table_id)
                raise InternalError("Failed to process purchase") from exc

        try:
            sale = run_with_retry(_op, session=self.session)
        except StaleDataError:
            raise ConflictError("Item was modified by another request; please retry")

        if self.cache is not None:
            self.cache.delete_prefix("sales:")
        return sale

    def _complete(self, table, row, price, qty, request: PurchaseRequest, user: UserContext) -> Sale:
        previous = dict(row.data or {})
        sale_number = next_document_number(self.session, document_type="SALE", prefix="SALE")

        sale = Sale(
            sale_number=sale_number,
            table_id=table.id,
            table_name=table.name,
            item_id=row.id,
            item_snapshot=previous,
            customer_id=request.customer_id,
            quantity_sold=request.quantity_sold,
            unit_price=price,
            total_amount=round(price * request.quantity_sold, 2),
            sale_status="completed",
            payment_method=request.payment_method,
            notes=request.notes,
            created_by=user.actor,
        )
        self.session.add(sale)
        self.session.flush()

        remaining = qty - request.quantity_sold
        if isinstance(remaining, float) and remaining.is_integer():
            remaining = int(remaining)
        new_data = {**previous, "qty": remaining}
        row.data = new_data
        self.session.flush()

        self.ledger.record(
            table=table,
            item_id=row.id,
            transaction_type="sale",
            quantity_change=-request.quantity_sold,
            previous_data=previous,
            new_data=new_data,
            reference_id=sale.id,
            notes=f"Sale {sale_number}",
            created_by=user.actor,
        )
        self.session.commit()
        return sale

    # ------------------------------------------------------------------
    # Sale records
    # ------------------------------------------------------------------

    def get_sale(self, sale_id: int, user: UserContext) -> Sale:
        sale = self.session.get(Sale, sale_id)
        if sale is None:
            raise NotFoundError("Sale not found")
        self._ensure_sale_access(sale, user)
        return sale

    def _ensure_sale_access(self, sale: Sale, user: UserContext) -> None:
        if user.is_admin:
            return
        table = self.session.get(UserTable, sale.table_id)
        if table is None or not is_owner(user, table):
            raise ForbiddenError("You do not have access to this sale")

    def update_sale(self, sale_id: int, changes: dict, user: UserContext) -> Sale:
        if not isinstance(changes, dict):
            raise ValidationError("Request body must be a JSON object")
        disallowed = sorted(k for k in changes if k not in UPDATABLE_SALE_FIELDS)
        if disallowed:
            raise ValidationError(
                "Only sale_status, payment_method and notes can be updated",
                details=[f"{k} is read-only" for k in disallowed],
            )
        updates = {UPDATABLE_SALE_FIELDS[k]: v for k, v in changes.items()}
        if not updates:
            raise ValidationError("No update data provided")

        sale = self.get_sale(sale_id, user)
        if "sale_status" in updates and updates["sale_status"] not in SALE_STATUSES:
            raise ValidationError(f"sale_status must be one of: {', '.join(SALE_STATUSES)}")

        for attr, value in updates.items():
            setattr(sale, attr, value)
        self.session.commit()
        if self.cache is not None:
            self.cache.delete_prefix("sales:")
        return sale

    def _visible_sales(self, user: UserContext):
        q = self.session.query(Sale)
        if not user.is_admin:
            owned = self.session.query(UserTable.id).filter(UserTable.created_by == user.email)
            q = q.filter(Sale.table_id.in_(owned.scalar_subquery()))
        return q

    def list_sales(
        self,
        user: UserContext,
        *,
        table_id: int | None = None,
        customer_id: str | None = None,
        status: str | None = None,
        date_from: date | None = None,
        date_to: date | None = None,
        page: int = 1,
        limit: int = 100,
    ) -> dict:
        if status and status not in SALE_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(SALE_STATUSES)}")
        page = max(1, page)
        limit = max(1, min(limit, 500))

        q = self._visible_sales(user)
        if table_id is not None:
            q = q.filter(Sale.table_id == table_id)
        if customer_id:
            q = q.filter(Sale.customer_id == customer_id)
        if status:
            q = q.filter(Sale.sale_status == status)
        start, end = day_bounds(date_from, date_to)
        if start is not None:
            q = q.filter(Sale.created_at >= start)
        if end is not None:
            q = q.filter(Sale.created_at < end)

        total = q.count()
        rows = q.order_by(Sale.created_at.desc(), Sale.id.desc()).offset((page - 1) * limit).limit(limit).all()
        return {"items": [s.to_dict() for s in rows], "total": total, "page": page, "limit": limit}

    def sales_analytics(
        self,
        user: UserContext,
        *,
        date_from: date | None = None,
        date_to: date | None = None,
        table_id: int | None = None,
    ) -> dict:
        def _compute() -> dict:
            q = self._visible_sales(user)
            if table_id is not None:
                q = q.filter(Sale.table_id == table_id)
            start, end = day_bounds(date_from, date_to)
            if start is not None:
                q = q.filter(Sale.created_at >= start)
            if end is not None:
                q = q.filter(Sale.created_at < end)

            by_status = {s: {"count": 0, "revenue": 0.0, "quantity": 0} for s in SALE_STATUSES}
            for status, count, revenue, quantity in (
                q.with_entities(
                    Sale.sale_status,
                    func.count(Sale.id),
                    func.coalesce(func.sum(Sale.total_amount), 0),
                    func.coalesce(func.sum(Sale.quantity_sold), 0),
                )
                .group_by(Sale.sale_status)
                .all()
            ):
                by_status[status] = {"count": int(count), "revenue": round(float(revenue), 2), "quantity": int(quantity)}

            day = func.date(Sale.created_at)
            by_date = [
                {"date": str(d), "count": int(count), "revenue": round(float(revenue), 2)}
                for d, count, revenue in (
                    q.filter(Sale.sale_status == "completed")
                    .with_entities(day, func.count(Sale.id), func.coalesce(func.sum(Sale.total_amount), 0))
                    .group_by(day)
                    .order_by(day)
                    .all()
                )
            ]

            completed = by_status["completed"]
            return {
                "totalSales": sum(v["count"] for v in by_status.values()),
                "completedSales": completed["count"],
                "totalRevenue": completed["revenue"],
                "totalQuantitySold": completed["quantity"],
                "salesByStatus": by_status,
                "salesByDate": by_date,
            }

        if self.cache is None:
            return _compute()
        key = f"sales:analytics:{user.email}:{user.is_admin}:{date_from}:{date_to}:{table_id}"
        return self.cache.get_or_compute(key, _compute)
