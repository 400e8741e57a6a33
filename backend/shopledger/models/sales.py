from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


BILL_STATUSES = ("PAID", "CANCELLED")


class Bill(db.Model):
    """
    Finalized sale.

    Written once by the billing service inside a single transaction together
    with its items and the stock decrements. The only later change is the
    PAID -> CANCELLED reversal.
    """
    __tablename__ = "bills"
    __table_args__ = (
        db.UniqueConstraint("bill_no", name="uq_bills_bill_no"),
        db.CheckConstraint("net_payable_cents >= 0", name="ck_bills_net_payable_non_negative"),
        db.Index("ix_bills_status_date", "status", "bill_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable bill number (e.g., "B-20240115-00042")
    bill_no = db.Column(db.String(64), nullable=False)
    order_no = db.Column(db.String(64), nullable=True, index=True)

    bill_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # All amounts in cents
    total_amount_cents = db.Column(db.Integer, nullable=False)
    discount_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    gst_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    net_payable_cents = db.Column(db.Integer, nullable=False)

    payment_mode = db.Column(db.String(16), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="PAID", index=True)

    # Cancellation audit trail
    cancelled_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancel_reason = db.Column(db.String(255), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("bills", lazy=True))
    user = db.relationship("User", foreign_keys=[user_id])
    cancelled_by = db.relationship("User", foreign_keys=[cancelled_by_user_id])
    items = db.relationship("BillItem", backref="bill", lazy=True, order_by="BillItem.id")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "bill_no": self.bill_no,
            "order_no": self.order_no,
            "bill_date": to_utc_z(self.bill_date),
            "customer_id": self.customer_id,
            "customer": self.customer.to_dict() if self.customer else None,
            "user_id": self.user_id,
            "biller": self.user.employee_id if self.user else None,
            "total_amount_cents": self.total_amount_cents,
            "discount_amount_cents": self.discount_amount_cents,
            "gst_amount_cents": self.gst_amount_cents,
            "net_payable_cents": self.net_payable_cents,
            "payment_mode": self.payment_mode,
            "status": self.status,
            "cancelled_by_user_id": self.cancelled_by_user_id,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "cancel_reason": self.cancel_reason,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class BillItem(db.Model):
    """Bill line. unit_price_cents and total_cents are frozen at sale time."""
    __tablename__ = "bill_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_bill_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    bill_id = db.Column(db.Integer, db.ForeignKey("bills.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_cents = db.Column(db.Integer, nullable=False)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "bill_id": self.bill_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_cents": self.total_cents,
        }
