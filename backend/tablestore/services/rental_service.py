# Overview: Service-layer operations for item rentals; encapsulates business logic and database work.

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..access import UserContext, is_owner
from ..errors import (
    AppError,
    ConflictError,
    ForbiddenError,
    InternalError,
    NotFoundError,
    ValidationError,
)
from ..models import Rental, TableRow, UserTable
from ..models.commerce import RENTAL_STATUSES
from ..time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
from .document_service import next_document_number
from .sales_service import as_number, payload_value, positive_int

logger = logging.getLogger(__name__)

"""
Rental Invariants (authoritative)

Item state lives on the row (used, available); rental status on the Rental.

    used=false, available=true   --rent-->     used=false, available=false, rental active
    used=false, available=false  --release-->  used=true,  available=false, rental released
    used=false, available=false  --cancel-->   used=false, available=true,  rental cancelled

- used=true is terminal: a released item can never be rented again.
- Each transition writes one ledger entry (rent / release / update) in the
  same transaction as the row and rental changes.
- Rows are locked and version-checked; transitions retry from a fresh read.
"""

RELEASED_MESSAGE = "Item released successfully. Item is now marked as used and cannot be rented again."


def _flag(data: dict, name: str, default: bool) -> bool:
    value = data.get(name, default)
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"true", "1", "yes", "on"}
    if isinstance(value, (int, float)):
        return value == 1
    return default


@dataclass(frozen=True)
class RentRequest:
    table_id: int
    item_id: int
    customer_id: Optional[str] = None
    notes: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: dict) -> "RentRequest":
        if not isinstance(payload, dict):
            raise ValidationError("Request body must be a JSON object")
        table_id = payload_value(payload, "tableId", "table_id")
        item_id = payload_value(payload, "itemId", "item_id")
        if table_id is None or item_id is None:
            raise ValidationError("tableId and itemId are required")
        customer = payload_value(payload, "customerId", "customer_id")
        return cls(
            table_id=positive_int(table_id, "tableId"),
            item_id=positive_int(item_id, "itemId"),
            customer_id=str(customer) if customer is not None else None,
            notes=payload_value(payload, "notes"),
        )


@dataclass(frozen=True)
class ReleaseRequest:
    rental_id: Optional[int] = None
    table_id: Optional[int] = None
    item_id: Optional[int] = None
    notes: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: dict) -> "ReleaseRequest":
        if not isinstance(payload, dict):
            raise ValidationError("Request body must be a JSON object")
        rental_id = payload_value(payload, "rental_id", "rentalId")
        table_id = payload_value(payload, "table_id", "tableId")
        item_id = payload_value(payload, "item_id", "itemId")
        if rental_id is None and (table_id is None or item_id is None):
            raise ValidationError("Either rentalId or both itemId and tableId are required")
        return cls(
            rental_id=positive_int(rental_id, "rental_id") if rental_id is not None else None,
            table_id=positive_int(table_id, "table_id") if table_id is not None else None,
            item_id=positive_int(item_id, "item_id") if item_id is not None else None,
            notes=payload_value(payload, "notes"),
        )


class RentalEngine:
    def __init__(self, session, ledger):
        self.session = session
        self.ledger = ledger

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _rent_table(self, table_id: int, user: UserContext | None) -> UserTable:
        table = self.session.get(UserTable, table_id)
        if table is None:
            raise NotFoundError("Table not found")
        if table.table_type != "rent":
            raise ForbiddenError("Table is not a rental table")
        if not (table.is_public or is_owner(user, table)):
            raise ForbiddenError("Table is not available for public rentals")
        return table

    def _item(self, table: UserTable, item_id: int, *, lock: bool = False) -> TableRow:
        q = self.session.query(TableRow).filter(TableRow.id == item_id, TableRow.table_id == table.id)
        if lock:
            q = lock_for_update(q)
        row = q.first()
        if row is None:
            raise NotFoundError("Item not found")
        return row

    def _active_rental(self, table_id: int, item_id: int) -> Optional[Rental]:
        return (
            self.session.query(Rental)
            .filter_by(table_id=table_id, item_id=item_id, rental_status="active")
            .order_by(Rental.id.desc())
            .first()
        )

    def check_availability(self, table: UserTable, item_id: int) -> dict:
        row = self._item(table, item_id)
        data = row.data or {}
        used = _flag(data, "used", False)
        available = _flag(data, "available", True)
        active = self._active_rental(table.id, row.id)
        price = as_number(data.get("price"))
        return {
            "tableType": "rent",
            "itemId": row.id,
            "available": available and not used and price is not None and price > 0,
            "used": used,
            "currentlyRented": active is not None,
            "rentalPrice": price,
            "fee": as_number(data.get("fee")),
            "rentalPeriod": table.rental_period,
            "activeRentalId": active.id if active else None,
        }

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _run(self, op, failure: str):
        def _guarded():
            try:
                return op()
            except (AppError, OperationalError, StaleDataError):
                raise
            except Exception as exc:
                self.session.rollback()
                logger.exception("%s", failure)
                raise InternalError(failure) from exc

        try:
            return run_with_retry(_guarded, session=self.session)
        except StaleDataError:
            raise ConflictError("Item was modified by another request; please retry")

    def rent(self, request: RentRequest, user: UserContext) -> Rental:
        def _op() -> Rental:
            table = self._rent_table(request.table_id, user)
            row = self._item(table, request.item_id, lock=True)
            data = dict(row.data or {})

            price = as_number(data.get("price"))
            if price is None or price <= 0:
                raise ForbiddenError("Item is not available for rent")
            if _flag(data, "used", False):
                raise ValidationError("Item has already been used and cannot be rented again")
            if not _flag(data, "available", True) or self._active_rental(table.id, row.id) is not None:
                raise ValidationError("Item is currently rented and not available")

            rental = Rental(
                rental_number=next_document_number(self.session, document_type="RENT", prefix="RENT"),
                table_id=table.id,
                table_name=table.name,
                item_id=row.id,
                item_snapshot=data,
                customer_id=request.customer_id,
                rental_price=price,
                fee=as_number(data.get("fee")),
                rental_period=table.rental_period,
                rental_status="active",
                notes=request.notes,
                rented_at=utcnow(),
                created_by=user.actor,
            )
            self.session.add(rental)
            self.session.flush()

            new_data = {**data, "used": False, "available": False}
            row.data = new_data
            self.session.flush()

            self.ledger.record(
                table=table,
                item_id=row.id,
                transaction_type="rent",
                previous_data=data,
                new_data=new_data,
                reference_id=rental.id,
                notes=f"Rental {rental.rental_number}",
                created_by=user.actor,
            )
            self.session.commit()
            return rental

        return self._run(_op, "Failed to process rental")

    def _rental_for_release(self, request: ReleaseRequest) -> Rental:
        if request.rental_id is not None:
            rental = self.session.get(Rental, request.rental_id)
            if rental is None:
                raise NotFoundError("Rental not found")
            if rental.rental_status != "active":
                raise ValidationError(f"Rental is already {rental.rental_status}")
            return rental

        rental = self._active_rental(request.table_id, request.item_id)
        if rental is None:
            raise ValidationError("No active rental found for this item")
        return rental

    def release(self, request: ReleaseRequest, user: UserContext) -> Rental:
        def _op() -> Rental:
            if request.rental_id is None:
                # Surface missing table/item as 404 before the rental lookup
                table = self._rent_table(request.table_id, user)
                self._item(table, request.item_id)

            rental = self._rental_for_release(request)
            table = self._rent_table(rental.table_id, user)
            row = self._item(table, rental.item_id, lock=True)
            data = dict(row.data or {})

            if _flag(data, "used", False):
                raise ValidationError("Item has already been released and marked as used")
            if _flag(data, "available", True):
                raise ValidationError("Item is not currently rented (it is available)")

            rental.rental_status = "released"
            rental.released_at = utcnow()
            if request.notes:
                rental.notes = request.notes

            new_data = {**data, "used": True, "available": False}
            row.data = new_data
            self.session.flush()

            self.ledger.record(
                table=table,
                item_id=row.id,
                transaction_type="release",
                previous_data=data,
                new_data=new_data,
                reference_id=rental.id,
                notes=f"Release of {rental.rental_number}",
                created_by=user.actor,
            )
            self.session.commit()
            return rental

        return self._run(_op, "Failed to release rental")

    def cancel(self, rental_id: int, user: UserContext) -> Rental:
        """Owner/admin undo of an active rental; the item was never used."""
        def _op() -> Rental:
            rental = self.session.get(Rental, rental_id)
            if rental is None:
                raise NotFoundError("Rental not found")
            table = self.session.get(UserTable, rental.table_id)
            if table is None or not is_owner(user, table):
                raise ForbiddenError("Only the table owner can cancel rentals")
            if rental.rental_status != "active":
                raise ValidationError(f"Rental is already {rental.rental_status}")

            row = self._item(table, rental.item_id, lock=True)
            data = dict(row.data or {})
            rental.rental_status = "cancelled"

            new_data = {**data, "available": True}
            row.data = new_data
            self.session.flush()

            self.ledger.record(
                table=table,
                item_id=row.id,
                transaction_type="update",
                previous_data=data,
                new_data=new_data,
                reference_id=rental.id,
                notes=f"Cancelled {rental.rental_number}",
                created_by=user.actor,
            )
            self.session.commit()
            return rental

        return self._run(_op, "Failed to cancel rental")

    def list_rentals(
        self,
        user: UserContext,
        *,
        table_id: int | None = None,
        customer_id: str | None = None,
        status: str | None = None,
        page: int = 1,
        limit: int = 100,
    ) -> dict:
        if status and status not in RENTAL_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(RENTAL_STATUSES)}")
        page = max(1, page)
        limit = max(1, min(limit, 500))

        q = self.session.query(Rental)
        if not user.is_admin:
            owned = self.session.query(UserTable.id).filter(UserTable.created_by == user.email)
            q = q.filter(Rental.table_id.in_(owned.scalar_subquery()))
        if table_id is not None:
            q = q.filter(Rental.table_id == table_id)
        if customer_id:
            q = q.filter(Rental.customer_id == customer_id)
        if status:
            q = q.filter(Rental.rental_status == status)

        total = q.count()
        rows = q.order_by(Rental.rented_at.desc(), Rental.id.desc()).offset((page - 1) * limit).limit(limit).all()
        return {"items": [r.to_dict() for r in rows], "total": total, "page": page, "limit": limit}
