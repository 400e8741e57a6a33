# Overview: Sale transaction coordinator. One bill, its frozen lines and the matching
# stock decrements commit together or not at all.

from __future__ import annotations

from flask import current_app

from ..errors import ConflictError, InsufficientStockError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Bill, BillItem, Customer, CustomerOrder, Product
from ..time_utils import parse_iso_datetime, utcnow
from ..validation import (
    MAX_PRICE_CENTS,
    coerce_int,
    normalize_payment_mode,
    require_amount_cents,
    require_non_negative_int,
    require_positive_int,
    require_quantity,
)
from . import sequence_service, stock_service
from .concurrency import begin_write, flush_unique, lock_for_update, run_with_identifier_retry, run_write


def _validate_items(items) -> list[dict]:
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list", details={"field": "items"})

    cleaned = []
    for index, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object", details={"item_index": index})
        try:
            product_id = require_positive_int(raw.get("product_id"), "product_id")
            quantity = require_quantity(raw.get("quantity"))
            unit_price = raw.get("unit_price_cents")
            if unit_price is not None:
                unit_price = require_non_negative_int(unit_price, "unit_price_cents", maximum=MAX_PRICE_CENTS)
            line_total = raw.get("total_cents")
            if line_total is not None:
                line_total = require_amount_cents(line_total, "total_cents")
        except ValidationError as exc:
            exc.details["item_index"] = index
            raise
        cleaned.append({
            "product_id": product_id,
            "quantity": quantity,
            "unit_price_cents": unit_price,
            "total_cents": line_total,
        })
    return cleaned


def _validate_totals(totals) -> dict:
    if not isinstance(totals, dict):
        raise ValidationError("totals are required", details={"field": "totals"})
    total = require_amount_cents(totals.get("total_amount_cents"), "total_amount_cents")
    discount = require_amount_cents(totals.get("discount_amount_cents"), "discount_amount_cents", default=0)
    gst = require_amount_cents(totals.get("gst_amount_cents"), "gst_amount_cents", default=0)
    net = require_amount_cents(totals.get("net_payable_cents"), "net_payable_cents")

    if net != total - discount + gst:
        raise ValidationError(
            "net_payable_cents must equal total_amount_cents - discount_amount_cents + gst_amount_cents",
            details={"field": "net_payable_cents", "expected": total - discount + gst},
        )
    return {
        "total_amount_cents": total,
        "discount_amount_cents": discount,
        "gst_amount_cents": gst,
        "net_payable_cents": net,
    }


def _frozen_line(product: Product, item: dict, index: int, strict: bool) -> tuple[int, int]:
    """Price the line from the product as it is now. Returns (unit_price, line_total)."""
    quantity = item["quantity"]
    if strict:
        unit_price = product.unit_price_cents
        if item["unit_price_cents"] is not None and item["unit_price_cents"] != unit_price:
            raise ValidationError(
                "unit_price_cents does not match the current product price",
                details={"item_index": index, "product_id": product.id, "unit_price_cents": unit_price},
            )
        line_total = unit_price * quantity
        if item["total_cents"] is not None and item["total_cents"] != line_total:
            raise ValidationError(
                "total_cents does not match unit price x quantity",
                details={"item_index": index, "product_id": product.id, "total_cents": line_total},
            )
        return unit_price, line_total

    unit_price = item["unit_price_cents"] if item["unit_price_cents"] is not None else product.unit_price_cents
    line_total = item["total_cents"] if item["total_cents"] is not None else unit_price * quantity
    return unit_price, line_total


def create_bill(
    actor_id: int,
    items,
    payment_mode,
    totals,
    customer_id: int | None = None,
    order_id: int | None = None,
) -> Bill:
    """
    Record a sale.

    In one write transaction: allocate the bill number, insert the bill,
    deduct stock and write a frozen BillItem for every line (in request
    order), optionally complete the originating order, then commit. Any
    failure rolls all of it back, leaving stock and sequences untouched.
    A bill-number collision reruns the whole transaction after resyncing
    the counter.
    """
    cleaned_items = _validate_items(items)
    mode = normalize_payment_mode(payment_mode)
    amounts = _validate_totals(totals)
    if customer_id is not None:
        customer_id = coerce_int(customer_id, "customer_id")
    if order_id is not None:
        order_id = coerce_int(order_id, "order_id")
    strict = bool(current_app.config.get("STRICT_BILL_TOTALS", True))

    if strict and amounts["discount_amount_cents"] > amounts["total_amount_cents"]:
        raise ValidationError("discount_amount_cents cannot exceed total_amount_cents",
                              details={"field": "discount_amount_cents"})

    spec = sequence_service.bill_sequence()

    def _op() -> Bill:
        begin_write()

        if customer_id is not None and db.session.get(Customer, customer_id) is None:
            raise NotFoundError("Customer not found", details={"customer_id": customer_id})

        order = None
        if order_id is not None:
            order = lock_for_update(db.session.query(CustomerOrder).filter_by(id=order_id)).first()
            if order is None:
                raise NotFoundError("Order not found", details={"order_id": order_id})
            if order.status != "PENDING":
                raise ConflictError("Order is not pending", details={"order_id": order_id, "status": order.status})

        bill_no = sequence_service.next_identifier(spec)
        bill = Bill(
            bill_no=bill_no,
            order_no=order.order_no if order else None,
            bill_date=utcnow(),
            customer_id=customer_id,
            user_id=actor_id,
            payment_mode=mode,
            status="PAID",
            **amounts,
        )
        db.session.add(bill)
        flush_unique(spec.namespace, "bill_no", identifier=bill_no)

        lines_total = 0
        for index, item in enumerate(cleaned_items):
            product = lock_for_update(db.session.query(Product).filter_by(id=item["product_id"])).first()
            if product is None or not product.is_active:
                raise NotFoundError(
                    "Product not found",
                    details={"product_id": item["product_id"], "item_index": index},
                )

            unit_price, line_total = _frozen_line(product, item, index, strict)

            try:
                stock_service.deduct(product.id, item["quantity"])
            except InsufficientStockError as exc:
                raise InsufficientStockError(
                    product.id, exc.requested, exc.available, product_name=product.name, item_index=index
                ) from exc

            db.session.add(BillItem(
                bill_id=bill.id,
                product_id=product.id,
                quantity=item["quantity"],
                unit_price_cents=unit_price,
                total_cents=line_total,
            ))
            lines_total += line_total

        if strict and lines_total != amounts["total_amount_cents"]:
            raise ValidationError(
                "total_amount_cents does not match the sum of line totals",
                details={"field": "total_amount_cents", "expected": lines_total},
            )

        if order is not None:
            order.status = "COMPLETED"
            order.bill_id = bill.id

        db.session.commit()
        current_app.logger.info(
            "Bill committed: %s lines=%s net=%s by user=%s", bill.bill_no, len(cleaned_items),
            amounts["net_payable_cents"], actor_id,
        )
        return bill

    return run_with_identifier_retry(_op, on_collision=sequence_service.collision_handler(spec))


def cancel_bill(bill_id: int, actor_id: int, reason: str | None = None) -> Bill:
    """
    Reverse a PAID bill: restore every line's stock and mark it CANCELLED.

    The bill and its items are kept as written; only the status and the
    cancellation audit fields change.
    """
    reason = (str(reason).strip()[:255] or None) if reason else None

    def _op() -> Bill:
        begin_write()
        bill = lock_for_update(db.session.query(Bill).filter_by(id=bill_id)).first()
        if bill is None:
            raise NotFoundError("Bill not found", details={"bill_id": bill_id})
        if bill.status == "CANCELLED":
            raise ConflictError("Bill is already cancelled", details={"bill_id": bill_id})

        for item in bill.items:
            stock_service.restore(item.product_id, item.quantity)

        bill.status = "CANCELLED"
        bill.cancelled_by_user_id = actor_id
        bill.cancelled_at = utcnow()
        bill.cancel_reason = reason
        db.session.commit()
        current_app.logger.info("Bill cancelled: %s by user=%s", bill.bill_no, actor_id)
        return bill

    return run_write(_op)


def get_bill(bill_id: int) -> Bill:
    bill = db.session.get(Bill, bill_id)
    if bill is None:
        raise NotFoundError("Bill not found", details={"bill_id": bill_id})
    return bill


def list_bills(
    *,
    page: int = 1,
    limit: int = 20,
    status: str | None = None,
    customer_id: int | None = None,
    date_from: str | None = None,
    date_to: str | None = None,
) -> dict:
    """Newest first. Dates are ISO-8601; naive values are treated as UTC."""
    query = db.session.query(Bill)
    if status:
        query = query.filter(Bill.status == status.strip().upper())
    if customer_id is not None:
        query = query.filter(Bill.customer_id == customer_id)
    try:
        start = parse_iso_datetime(date_from)
        end = parse_iso_datetime(date_to)
    except ValueError:
        raise ValidationError("date_from/date_to must be ISO-8601 datetimes")
    if start:
        query = query.filter(Bill.bill_date >= start)
    if end:
        query = query.filter(Bill.bill_date <= end)

    limit = min(max(limit or 20, 1), 100)
    page = max(page or 1, 1)
    total = query.count()
    bills = (
        query.order_by(Bill.bill_date.desc(), Bill.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "items": bills,
        "count": len(bills),
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": (total + limit - 1) // limit if total else 1,
        },
    }


def next_bill_no_preview() -> str:
    """The bill number the next sale would receive. Not reserved."""
    return sequence_service.peek_next_identifier(sequence_service.bill_sequence())
