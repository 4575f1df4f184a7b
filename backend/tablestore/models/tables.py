from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


TABLE_TYPES = ("default", "sale", "rent")
VISIBILITIES = ("private", "public", "shared")
RENTAL_PERIODS = ("hour", "day", "week", "month", "year")


class UserTable(db.Model):
    """
    User-defined table schema header.

    OWNERSHIP: created_by holds the creator's email (or token id). Only the
    creator or an admin may change schema, import, or remediate data.

    TABLE TYPES:
    - default: plain spreadsheet-like storage
    - sale: rows are items with protected price/qty columns
    - rent: rows are items with protected price/fee/used/available columns
    """
    __tablename__ = "user_tables"
    __table_args__ = (
        db.Index("ix_user_tables_created_by", "created_by"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.String(255), nullable=False)

    visibility = db.Column(db.String(16), nullable=False, default="private")
    table_type = db.Column(db.String(16), nullable=False, default="default", index=True)

    # Column name used as the item title on storefront pages
    product_id_column = db.Column(db.String(255), nullable=True)
    rental_period = db.Column(db.String(16), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    columns = db.relationship(
        "TableColumn",
        backref="table",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="TableColumn.position",
    )

    def __repr__(self) -> str:
        return f"<UserTable id={self.id} name={self.name!r} type={self.table_type}>"

    @property
    def is_public(self) -> bool:
        return self.visibility in ("public", "shared")

    def to_dict(self, *, include_columns: bool = False) -> dict:
        payload = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "created_by": self.created_by,
            "visibility": self.visibility,
            "table_type": self.table_type,
            "product_id_column": self.product_id_column,
            "rental_period": self.rental_period,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_columns:
            payload["columns"] = [c.to_dict() for c in self.columns]
        return payload


class TableColumn(db.Model):
    """
    Column definition for a user table.

    Column names are unique per table case-insensitively; name_key stores the
    casefolded name so the database enforces it too.
    """
    __tablename__ = "table_columns"
    __table_args__ = (
        db.UniqueConstraint("table_id", "name_key", name="uq_table_columns_table_name"),
        db.Index("ix_table_columns_table_position", "table_id", "position"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    table_id = db.Column(db.Integer, db.ForeignKey("user_tables.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    name_key = db.Column(db.String(255), nullable=False)
    type = db.Column(db.String(128), nullable=False, default="text")

    is_required = db.Column(db.Boolean, nullable=False, default=False)
    allow_duplicates = db.Column(db.Boolean, nullable=False, default=True)
    # Stored as text and coerced through the column's type contract when applied
    default_value = db.Column(db.Text, nullable=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<TableColumn id={self.id} table_id={self.table_id} name={self.name!r} type={self.type}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "table_id": self.table_id,
            "name": self.name,
            "type": self.type,
            "is_required": self.is_required,
            "allow_duplicates": self.allow_duplicates,
            "default_value": self.default_value,
            "position": self.position,
            "created_at": to_utc_z(self.created_at),
        }


class TableRow(db.Model):
    """
    One data row of a user table.

    data is a JSON object keyed by column name. It is always replaced as a
    whole (never mutated in place) so the ORM sees the change and the
    version_id optimistic lock is bumped.
    """
    __tablename__ = "table_rows"
    __table_args__ = (
        db.Index("ix_table_rows_table_created", "table_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    table_id = db.Column(db.Integer, db.ForeignKey("user_tables.id"), nullable=False, index=True)

    data = db.Column(db.JSON, nullable=False, default=dict)
    created_by = db.Column(db.String(255), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<TableRow id={self.id} table_id={self.table_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "table_id": self.table_id,
            "data": dict(self.data or {}),
            "created_by": self.created_by,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
