from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


ORDER_STATUSES = ("PENDING", "COMPLETED", "CANCELLED")


class Customer(db.Model):
    """
    Customer identified by mobile number.

    discount_bps is the per-customer discount candidate (basis points).
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.UniqueConstraint("mobile", name="uq_customers_mobile"),
        db.CheckConstraint("discount_bps >= 0 AND discount_bps <= 10000", name="ck_customers_discount_range"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    mobile = db.Column(db.String(20), nullable=False, index=True)
    address = db.Column(db.Text, nullable=True)
    whatsapp_opt_in = db.Column(db.Boolean, nullable=False, default=True)
    discount_bps = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "mobile": self.mobile,
            "address": self.address,
            "whatsapp_opt_in": self.whatsapp_opt_in,
            "discount_bps": self.discount_bps,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class CustomerOrder(db.Model):
    """
    Provisional order placed through the public storefront.

    Orders never touch stock. A bill created against an order completes it.
    """
    __tablename__ = "customer_orders"
    __table_args__ = (
        db.UniqueConstraint("order_no", name="uq_customer_orders_order_no"),
        db.Index("ix_customer_orders_status_date", "status", "order_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_no = db.Column(db.String(64), nullable=False)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    order_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)
    total_estimated_cents = db.Column(db.Integer, nullable=False, default=0)
    bill_id = db.Column(db.Integer, db.ForeignKey("bills.id"), nullable=True, index=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("orders", lazy=True))
    items = db.relationship("OrderItem", backref="order", lazy=True, order_by="OrderItem.id")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "order_no": self.order_no,
            "customer_id": self.customer_id,
            "customer": self.customer.to_dict() if self.customer else None,
            "order_date": to_utc_z(self.order_date),
            "status": self.status,
            "total_estimated_cents": self.total_estimated_cents,
            "bill_id": self.bill_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class OrderItem(db.Model):
    __tablename__ = "order_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("customer_orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
        }
