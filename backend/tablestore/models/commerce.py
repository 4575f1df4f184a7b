from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


SALE_STATUSES = ("pending", "completed", "cancelled", "refunded")
RENTAL_STATUSES = ("active", "released", "cancelled")


class Sale(db.Model):
    """
    One storefront purchase of a sale-table item.

    AUDIT INTEGRITY: amounts, quantity and snapshots are written once.
    Only sale_status, payment_method and notes may change afterwards.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("sale_number", name="uq_sales_sale_number"),
        db.Index("ix_sales_table_item", "table_id", "item_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_number = db.Column(db.String(32), nullable=False)

    table_id = db.Column(db.Integer, nullable=False, index=True)
    table_name = db.Column(db.String(255), nullable=True)
    item_id = db.Column(db.Integer, nullable=False, index=True)
    item_snapshot = db.Column(db.JSON, nullable=True)

    customer_id = db.Column(db.String(255), nullable=True, index=True)
    quantity_sold = db.Column(db.Integer, nullable=False, default=1)
    unit_price = db.Column(db.Float, nullable=False)
    total_amount = db.Column(db.Float, nullable=False)

    sale_status = db.Column(db.String(16), nullable=False, default="completed", index=True)
    payment_method = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Sale id={self.id} number={self.sale_number} item_id={self.item_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_number": self.sale_number,
            "table_id": self.table_id,
            "table_name": self.table_name,
            "item_id": self.item_id,
            "item_snapshot": self.item_snapshot,
            "customer_id": self.customer_id,
            "quantity_sold": self.quantity_sold,
            "unit_price": self.unit_price,
            "total_amount": self.total_amount,
            "sale_status": self.sale_status,
            "payment_method": self.payment_method,
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Rental(db.Model):
    """
    One rental of a rent-table item.

    LIFECYCLE: active -> released (item becomes used, terminal)
               active -> cancelled (item becomes available again)
    """
    __tablename__ = "rentals"
    __table_args__ = (
        db.UniqueConstraint("rental_number", name="uq_rentals_rental_number"),
        db.Index("ix_rentals_table_item_status", "table_id", "item_id", "rental_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    rental_number = db.Column(db.String(32), nullable=False)

    table_id = db.Column(db.Integer, nullable=False, index=True)
    table_name = db.Column(db.String(255), nullable=True)
    item_id = db.Column(db.Integer, nullable=False, index=True)
    item_snapshot = db.Column(db.JSON, nullable=True)

    customer_id = db.Column(db.String(255), nullable=True, index=True)
    rental_price = db.Column(db.Float, nullable=True)
    fee = db.Column(db.Float, nullable=True)
    rental_period = db.Column(db.String(16), nullable=True)

    rental_status = db.Column(db.String(16), nullable=False, default="active", index=True)
    notes = db.Column(db.Text, nullable=True)

    rented_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    released_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_by = db.Column(db.String(255), nullable=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Rental id={self.id} number={self.rental_number} status={self.rental_status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "rental_number": self.rental_number,
            "table_id": self.table_id,
            "table_name": self.table_name,
            "item_id": self.item_id,
            "item_snapshot": self.item_snapshot,
            "customer_id": self.customer_id,
            "rental_price": self.rental_price,
            "fee": self.fee,
            "rental_period": self.rental_period,
            "rental_status": self.rental_status,
            "notes": self.notes,
            "rented_at": to_utc_z(self.rented_at),
            "released_at": to_utc_z(self.released_at),
            "created_by": self.created_by,
            "updated_at": to_utc_z(self.updated_at),
        }
