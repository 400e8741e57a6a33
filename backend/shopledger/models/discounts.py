from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Discount(db.Model):
    """
    Global (store-wide) discount.

    At most one row is active at a time; setting a new one deactivates the
    previous rows in the same transaction. History is kept.
    """
    __tablename__ = "discounts"
    __table_args__ = (
        db.CheckConstraint("percentage_bps >= 0 AND percentage_bps <= 10000", name="ck_discounts_percentage_range"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False, default="Global Discount")
    percentage_bps = db.Column(db.Integer, nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    deactivated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "percentage_bps": self.percentage_bps,
            "is_active": self.is_active,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "deactivated_at": to_utc_z(self.deactivated_at) if self.deactivated_at else None,
        }


class DiscountRule(db.Model):
    """Tiered discount: applies when min_amount <= cart total < max_amount (max 0 = unbounded)."""
    __tablename__ = "discount_rules"
    __table_args__ = (
        db.CheckConstraint("percentage_bps >= 0 AND percentage_bps <= 10000", name="ck_discount_rules_percentage_range"),
        db.CheckConstraint("min_amount_cents >= 0", name="ck_discount_rules_min_non_negative"),
        db.CheckConstraint("max_amount_cents >= 0", name="ck_discount_rules_max_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    min_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    max_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    percentage_bps = db.Column(db.Integer, nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def matches(self, total_cents: int) -> bool:
        if total_cents < self.min_amount_cents:
            return False
        return self.max_amount_cents == 0 or total_cents < self.max_amount_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "min_amount_cents": self.min_amount_cents,
            "max_amount_cents": self.max_amount_cents,
            "percentage_bps": self.percentage_bps,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
