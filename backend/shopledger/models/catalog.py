from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Brand(db.Model):
    __tablename__ = "brands"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_brands_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "created_at": to_utc_z(self.created_at)}


class Category(db.Model):
    __tablename__ = "categories"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_categories_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "created_at": to_utc_z(self.created_at),
        }


class Product(db.Model):
    """
    Sellable item with a materialized stock counter.

    current_stock is only ever changed by the stock service: a compare-and-swap
    decrement on sale and an increment paired with a StockEntry on restock.
    The CHECK constraint is the last line of defence against overselling.

    No version_id here: stock moves are core UPDATE statements, not ORM
    flushes, so optimistic versioning would fight with them.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("current_stock >= 0", name="ck_products_current_stock_non_negative"),
        db.CheckConstraint("unit_price_cents >= 0", name="ck_products_unit_price_non_negative"),
        db.Index("ix_products_active_name", "is_active", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    brand_id = db.Column(db.Integer, db.ForeignKey("brands.id"), nullable=False, index=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)
    description = db.Column(db.Text, nullable=True)
    barcode = db.Column(db.String(64), nullable=True, index=True)

    # Authoritative storage in cents
    unit_price_cents = db.Column(db.Integer, nullable=False)

    current_stock = db.Column(db.Integer, nullable=False, default=0)
    low_stock_threshold = db.Column(db.Integer, nullable=False, default=10)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    brand = db.relationship("Brand", backref=db.backref("products", lazy=True))
    category = db.relationship("Category", backref=db.backref("products", lazy=True))

    @property
    def is_low_stock(self) -> bool:
        return self.current_stock <= self.low_stock_threshold

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "brand_id": self.brand_id,
            "brand": self.brand.name if self.brand else None,
            "category_id": self.category_id,
            "category": self.category.name if self.category else None,
            "description": self.description,
            "barcode": self.barcode,
            "unit_price_cents": self.unit_price_cents,
            "current_stock": self.current_stock,
            "low_stock_threshold": self.low_stock_threshold,
            "is_low_stock": self.is_low_stock,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }

    def to_public_dict(self) -> dict:
        """Storefront view: no stock thresholds or audit fields."""
        return {
            "id": self.id,
            "name": self.name,
            "brand": self.brand.name if self.brand else None,
            "category": self.category.name if self.category else None,
            "description": self.description,
            "unit_price_cents": self.unit_price_cents,
            "in_stock": self.current_stock > 0,
        }


class StockEntry(db.Model):
    """
    Append-only restock record.

    Invariant: current_stock == sum(quantity_added) - units on PAID bills.
    """
    __tablename__ = "stock_entries"
    __table_args__ = (
        db.CheckConstraint("quantity_added > 0", name="ck_stock_entries_quantity_positive"),
        db.Index("ix_stock_entries_product_date", "product_id", "entry_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity_added = db.Column(db.Integer, nullable=False)
    added_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    note = db.Column(db.String(255), nullable=True)
    entry_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("stock_entries", lazy=True))
    added_by = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "quantity_added": self.quantity_added,
            "added_by_user_id": self.added_by_user_id,
            "added_by": self.added_by.employee_id if self.added_by else None,
            "note": self.note,
            "entry_date": to_utc_z(self.entry_date),
        }
