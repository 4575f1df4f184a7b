from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


TRANSACTION_TYPES = ("sale", "rent", "release", "add", "remove", "update", "adjust")


class InventoryTransaction(db.Model):
    """
    Append-only inventory ledger entry.

    INVARIANTS:
    - Rows are inserted, never updated or deleted.
    - table_name is a snapshot so history survives table renames/deletes;
      table_id and item_id are deliberately not foreign keys for the same reason.
    - previous_data/new_data hold the full item data before/after the change.
    """
    __tablename__ = "inventory_transactions"
    __table_args__ = (
        db.Index("ix_inventory_tx_table_item", "table_id", "item_id"),
        db.Index("ix_inventory_tx_type_created", "transaction_type", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    table_id = db.Column(db.Integer, nullable=False, index=True)
    table_name = db.Column(db.String(255), nullable=True)
    item_id = db.Column(db.Integer, nullable=False, index=True)

    transaction_type = db.Column(db.String(16), nullable=False, index=True)
    # Signed delta; null when the change is not a quantity change (rent/release)
    quantity_change = db.Column(db.Float, nullable=True)

    previous_data = db.Column(db.JSON, nullable=True)
    new_data = db.Column(db.JSON, nullable=True)

    # Sale.id or Rental.id depending on transaction_type
    reference_id = db.Column(db.Integer, nullable=True, index=True)
    notes = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.String(255), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        index=True,
    )

    def __repr__(self) -> str:
        return (
            f"<InventoryTransaction id={self.id} type={self.transaction_type} "
            f"table_id={self.table_id} item_id={self.item_id}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "table_id": self.table_id,
            "table_name": self.table_name,
            "item_id": self.item_id,
            "transaction_type": self.transaction_type,
            "quantity_change": self.quantity_change,
            "previous_data": self.previous_data,
            "new_data": self.new_data,
            "reference_id": self.reference_id,
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }
