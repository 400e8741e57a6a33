# Overview: Flask API routes for the billing counter; parses input and returns JSON responses.

# backend/shopledger/routes/billing.py
"""
Billing counter routes (biller, manager, admin).
"""

from flask import Blueprint, request, g

from ..services import billing_service, customer_service, discount_service, order_service
from ..decorators import require_auth, require_role, BILLING_ROLES, MANAGER_ROLES


billing_bp = Blueprint("billing", __name__, url_prefix="/api/v1/billing")

TOTAL_FIELDS = ("total_amount_cents", "discount_amount_cents", "gst_amount_cents", "net_payable_cents")


@billing_bp.post("/bills")
@require_auth
@require_role(*BILLING_ROLES)
def create_bill_route():
    """
    Body:
    {
      "items": [{"product_id": 1, "quantity": 2}, ...],
      "payment_mode": "CASH" | "ONLINE" | "CARD",
      "total_amount_cents": ..., "discount_amount_cents": ...,
      "gst_amount_cents": ..., "net_payable_cents": ...,
      "customer_id": optional, "order_id": optional
    }
    """
    payload = request.get_json(silent=True) or {}
    totals = payload.get("totals") if isinstance(payload.get("totals"), dict) else {
        key: payload.get(key) for key in TOTAL_FIELDS
    }
    bill = billing_service.create_bill(
        g.current_user.id,
        payload.get("items"),
        payload.get("payment_mode"),
        totals,
        customer_id=payload.get("customer_id"),
        order_id=payload.get("order_id"),
    )
    return {"bill": bill.to_dict()}, 201


@billing_bp.get("/bills")
@require_auth
@require_role(*BILLING_ROLES)
def list_bills_route():
    result = billing_service.list_bills(
        page=request.args.get("page", 1, type=int),
        limit=request.args.get("limit", 20, type=int),
        status=request.args.get("status"),
        customer_id=request.args.get("customer_id", type=int),
        date_from=request.args.get("date_from"),
        date_to=request.args.get("date_to"),
    )
    return {
        "items": [b.to_dict(include_items=False) for b in result["items"]],
        "count": result["count"],
        "pagination": result["pagination"],
    }


@billing_bp.get("/bills/<int:bill_id>")
@require_auth
@require_role(*BILLING_ROLES)
def get_bill_route(bill_id: int):
    return {"bill": billing_service.get_bill(bill_id).to_dict()}


@billing_bp.post("/bills/<int:bill_id>/cancel")
@require_auth
@require_role(*MANAGER_ROLES)
def cancel_bill_route(bill_id: int):
    payload = request.get_json(silent=True) or {}
    bill = billing_service.cancel_bill(bill_id, g.current_user.id, payload.get("reason"))
    return {"bill": bill.to_dict()}


@billing_bp.get("/next-bill-no")
@require_auth
@require_role(*BILLING_ROLES)
def next_bill_no_route():
    return {"bill_no": billing_service.next_bill_no_preview()}


@billing_bp.post("/customers")
@require_auth
@require_role(*BILLING_ROLES)
def create_customer_route():
    payload = request.get_json(silent=True) or {}
    # Counter staff cannot grant discounts while registering a customer
    payload.pop("discount_bps", None)
    customer = customer_service.create_customer(payload)
    return {"customer": customer.to_dict()}, 201


@billing_bp.get("/customers")
@require_auth
@require_role(*BILLING_ROLES)
def search_customers_route():
    customers = customer_service.search_customers(request.args.get("q"))
    return {"items": [c.to_dict() for c in customers], "count": len(customers)}


@billing_bp.get("/discount")
@require_auth
@require_role(*BILLING_ROLES)
def active_discount_route():
    active = discount_service.get_active_discount()
    return {
        "discount": active.to_dict() if active else None,
        "percentage_bps": active.percentage_bps if active else 0,
    }


@billing_bp.get("/discount-rules")
@require_auth
@require_role(*BILLING_ROLES)
def discount_rules_route():
    rules = discount_service.list_rules(active_only=True)
    return {"items": [r.to_dict() for r in rules], "count": len(rules)}


@billing_bp.get("/discounts/resolve")
@require_auth
@require_role(*BILLING_ROLES)
def resolve_discounts_route():
    """Query params: total_cents (required), customer_id (optional)."""
    candidates = discount_service.resolve(
        request.args.get("customer_id", type=int),
        request.args.get("total_cents"),
    )
    return candidates.to_dict()


@billing_bp.get("/orders")
@require_auth
@require_role(*BILLING_ROLES)
def list_orders_route():
    orders = order_service.list_orders(request.args.get("status"))
    return {"items": [o.to_dict() for o in orders], "count": len(orders)}


@billing_bp.put("/orders/<int:order_id>/status")
@require_auth
@require_role(*BILLING_ROLES)
def update_order_status_route(order_id: int):
    payload = request.get_json(silent=True) or {}
    order = order_service.update_order_status(order_id, payload.get("status"))
    return {"order": order.to_dict()}
