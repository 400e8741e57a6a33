# Overview: Public order intake. Orders are provisional and never move stock.

from __future__ import annotations

from urllib.parse import quote

from flask import current_app

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import CustomerOrder, OrderItem, Product, ORDER_STATUSES
from ..validation import coerce_int, require_positive_int, require_quantity, require_text
from . import customer_service, sequence_service
from .concurrency import begin_write, flush_unique, lock_for_update, run_with_identifier_retry, run_write


# Allowed status transitions; everything else is a conflict
ORDER_TRANSITIONS = {
    "PENDING": {"COMPLETED", "CANCELLED"},
    "COMPLETED": set(),
    "CANCELLED": set(),
}

MAX_ORDER_LINES = 100


def _validate_items(items) -> list[tuple[int, int]]:
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list", details={"field": "items"})
    if len(items) > MAX_ORDER_LINES:
        raise ValidationError(f"An order may contain at most {MAX_ORDER_LINES} lines", details={"field": "items"})

    cleaned = []
    for index, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object", details={"item_index": index})
        try:
            cleaned.append((
                require_positive_int(raw.get("product_id"), "product_id"),
                require_quantity(raw.get("quantity")),
            ))
        except ValidationError as exc:
            exc.details["item_index"] = index
            raise
    return cleaned


def submit_order(customer_mobile, customer_name, items, address=None) -> CustomerOrder:
    """
    Record a storefront order for later fulfilment.

    The customer is found by mobile or created; name and address are
    refreshed when they differ. The estimated total uses current prices and
    is informational only: the bill that eventually completes the order
    prices the goods again.
    """
    mobile = customer_service.normalize_mobile(customer_mobile)
    name = require_text(customer_name, "customer_name", max_length=255)
    address = (str(address).strip() or None) if address else None
    cleaned = _validate_items(items)
    spec = sequence_service.order_sequence()

    def _op() -> CustomerOrder:
        begin_write()
        customer = customer_service.upsert_by_mobile(mobile, name, address)

        priced = []
        for index, (product_id, quantity) in enumerate(cleaned):
            product = db.session.get(Product, product_id)
            if product is None or not product.is_active:
                raise NotFoundError("Product not found", details={"product_id": product_id, "item_index": index})
            priced.append((product, quantity))

        order_no = sequence_service.next_identifier(spec)
        order = CustomerOrder(
            order_no=order_no,
            customer_id=customer.id,
            status="PENDING",
            total_estimated_cents=sum(p.unit_price_cents * q for p, q in priced),
        )
        db.session.add(order)
        flush_unique(spec.namespace, "order_no", identifier=order_no)

        for product, quantity in priced:
            db.session.add(OrderItem(order_id=order.id, product_id=product.id, quantity=quantity))

        db.session.commit()
        current_app.logger.info("Order received: %s customer=%s lines=%s", order.order_no, customer.id, len(priced))
        return order

    return run_with_identifier_retry(_op, on_collision=sequence_service.collision_handler(spec))


def whatsapp_link(order: CustomerOrder, phone: str | None = None) -> str:
    """
    wa.me link carrying an order confirmation message.

    Sent to the store's number when configured, otherwise to the customer.
    Bare 10-digit numbers get the 91 country code.
    """
    target = phone or current_app.config.get("COMPANY_PHONE") or order.customer.mobile
    digits = "".join(ch for ch in str(target) if ch.isdigit())
    if len(digits) == 10:
        digits = "91" + digits

    lines = [
        f"New order {order.order_no}",
        f"Customer: {order.customer.name} ({order.customer.mobile})",
    ]
    for item in order.items:
        lines.append(f"- {item.product.name} x {item.quantity}")
    lines.append(f"Estimated total: {order.total_estimated_cents / 100:.2f}")
    if order.customer.address:
        lines.append(f"Address: {order.customer.address}")

    return f"https://wa.me/{digits}?text={quote(chr(10).join(lines))}"


def list_orders(status: str | None = None) -> list[CustomerOrder]:
    query = db.session.query(CustomerOrder)
    if status:
        status = status.strip().upper()
        if status not in ORDER_STATUSES:
            raise ValidationError(f"status must be one of {', '.join(ORDER_STATUSES)}", details={"field": "status"})
        query = query.filter(CustomerOrder.status == status)
    return query.order_by(CustomerOrder.order_date.desc(), CustomerOrder.id.desc()).all()


def get_order(order_id: int) -> CustomerOrder:
    order = db.session.get(CustomerOrder, order_id)
    if order is None:
        raise NotFoundError("Order not found", details={"order_id": order_id})
    return order


def update_order_status(order_id, status) -> CustomerOrder:
    order_id = coerce_int(order_id, "order_id")
    new_status = str(status or "").strip().upper()
    if new_status not in ORDER_STATUSES:
        raise ValidationError(f"status must be one of {', '.join(ORDER_STATUSES)}", details={"field": "status"})

    def _op() -> CustomerOrder:
        begin_write()
        order = lock_for_update(db.session.query(CustomerOrder).filter_by(id=order_id)).first()
        if order is None:
            raise NotFoundError("Order not found", details={"order_id": order_id})
        if new_status not in ORDER_TRANSITIONS[order.status]:
            raise ConflictError(
                f"Cannot move order from {order.status} to {new_status}",
                details={"order_id": order_id, "status": order.status},
            )
        order.status = new_status
        db.session.commit()
        current_app.logger.info("Order %s -> %s", order.order_no, new_status)
        return order

    return run_write(_op)
