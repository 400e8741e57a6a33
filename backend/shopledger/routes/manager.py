# Overview: Flask API routes for manager operations; parses input and returns JSON responses.

# backend/shopledger/routes/manager.py
"""
Manager routes: orders, discounts and customer discount levels.
"""

from flask import Blueprint, request, g

from ..services import customer_service, discount_service, order_service
from ..decorators import require_auth, require_role, MANAGER_ROLES


manager_bp = Blueprint("manager", __name__, url_prefix="/api/v1/manager")


@manager_bp.get("/orders")
@require_auth
@require_role(*MANAGER_ROLES)
def list_orders_route():
    orders = order_service.list_orders(request.args.get("status"))
    return {"items": [o.to_dict() for o in orders], "count": len(orders)}


@manager_bp.get("/orders/<int:order_id>")
@require_auth
@require_role(*MANAGER_ROLES)
def get_order_route(order_id: int):
    return {"order": order_service.get_order(order_id).to_dict()}


@manager_bp.put("/orders/<int:order_id>/status")
@require_auth
@require_role(*MANAGER_ROLES)
def update_order_status_route(order_id: int):
    payload = request.get_json(silent=True) or {}
    order = order_service.update_order_status(order_id, payload.get("status"))
    return {"order": order.to_dict()}


@manager_bp.get("/settings/discount")
@require_auth
@require_role(*MANAGER_ROLES)
def get_global_discount_route():
    active = discount_service.get_active_discount()
    return {"discount": active.to_dict() if active else None}


@manager_bp.post("/settings/discount")
@require_auth
@require_role(*MANAGER_ROLES)
def set_global_discount_route():
    payload = request.get_json(silent=True) or {}
    discount = discount_service.set_global_discount(
        payload.get("percentage_bps"),
        g.current_user.id,
        name=payload.get("name"),
    )
    return {"discount": discount.to_dict()}, 201


@manager_bp.get("/discount-rules")
@require_auth
@require_role(*MANAGER_ROLES)
def list_rules_route():
    active_only = request.args.get("active_only", "false").lower() == "true"
    rules = discount_service.list_rules(active_only=active_only)
    return {"items": [r.to_dict() for r in rules], "count": len(rules)}


@manager_bp.post("/discount-rules")
@require_auth
@require_role(*MANAGER_ROLES)
def create_rule_route():
    payload = request.get_json(silent=True) or {}
    rule = discount_service.create_rule(payload)
    return {"rule": rule.to_dict()}, 201


@manager_bp.put("/discount-rules/<int:rule_id>")
@require_auth
@require_role(*MANAGER_ROLES)
def update_rule_route(rule_id: int):
    payload = request.get_json(silent=True) or {}
    rule = discount_service.update_rule(rule_id, payload)
    return {"rule": rule.to_dict()}


@manager_bp.delete("/discount-rules/<int:rule_id>")
@require_auth
@require_role(*MANAGER_ROLES)
def delete_rule_route(rule_id: int):
    discount_service.delete_rule(rule_id)
    return {"message": "Rule deleted"}


@manager_bp.get("/customers")
@require_auth
@require_role(*MANAGER_ROLES)
def list_customers_route():
    customers = customer_service.search_customers(
        request.args.get("q"),
        limit=request.args.get("limit", type=int),
    )
    return {"items": [c.to_dict() for c in customers], "count": len(customers)}


@manager_bp.put("/customers/<int:customer_id>/discount")
@require_auth
@require_role(*MANAGER_ROLES)
def update_customer_discount_route(customer_id: int):
    payload = request.get_json(silent=True) or {}
    customer = customer_service.update_customer_discount(customer_id, payload.get("discount_bps"))
    return {"customer": customer.to_dict()}
