# Overview: Flask API routes for catalogue and stock operations; parses input and returns JSON responses.

# backend/shopledger/routes/inventory.py
"""
Catalogue and stock routes.

Reads are open to every employee; writes need the inventory, manager or
admin role.
"""

from flask import Blueprint, request, g

from ..services import stock_service
from ..decorators import require_auth, require_role, ANY_EMPLOYEE, STOCK_ROLES


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/v1/inventory")


def _serialize_page(result: dict) -> dict:
    data = {"items": [p.to_dict() for p in result["items"]], "count": result["count"]}
    if "pagination" in result:
        data["pagination"] = result["pagination"]
    return data


@inventory_bp.get("/products")
@require_auth
@require_role(*ANY_EMPLOYEE)
def list_products_route():
    """
    Query params:
    - q: name / brand substring or exact barcode
    - brand_id, category_id: filters
    - include_inactive: "true" to include deactivated products
    - page, per_page: optional pagination (per_page max 100)
    """
    result = stock_service.list_products(
        include_inactive=request.args.get("include_inactive", "false").lower() == "true",
        q=request.args.get("q"),
        brand_id=request.args.get("brand_id", type=int),
        category_id=request.args.get("category_id", type=int),
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )
    return _serialize_page(result)


@inventory_bp.get("/products/<int:product_id>")
@require_auth
@require_role(*ANY_EMPLOYEE)
def get_product_route(product_id: int):
    return {"product": stock_service.get_product(product_id).to_dict()}


@inventory_bp.post("/products")
@require_auth
@require_role(*STOCK_ROLES)
def create_product_route():
    payload = request.get_json(silent=True) or {}
    product = stock_service.create_product(payload, actor_id=g.current_user.id)
    return {"product": product.to_dict()}, 201


@inventory_bp.put("/products/<int:product_id>")
@require_auth
@require_role(*STOCK_ROLES)
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}
    product = stock_service.update_product(product_id, payload)
    return {"product": product.to_dict()}


@inventory_bp.delete("/products/<int:product_id>")
@require_auth
@require_role(*STOCK_ROLES)
def deactivate_product_route(product_id: int):
    product = stock_service.deactivate_product(product_id)
    return {"product": product.to_dict()}


@inventory_bp.post("/stock")
@require_auth
@require_role(*STOCK_ROLES)
def add_stock_route():
    payload = request.get_json(silent=True) or {}
    product_id = payload.get("product_id")
    if not isinstance(product_id, int) or isinstance(product_id, bool):
        return {"error": "product_id must be an integer"}, 400
    entry = stock_service.replenish(
        product_id,
        payload.get("quantity"),
        actor_id=g.current_user.id,
        note=payload.get("note"),
    )
    product = stock_service.get_product(product_id)
    return {"entry": entry.to_dict(), "product": product.to_dict()}, 201


@inventory_bp.get("/products/<int:product_id>/stock-entries")
@require_auth
@require_role(*STOCK_ROLES)
def stock_entries_route(product_id: int):
    entries = stock_service.list_stock_entries(product_id)
    return {"items": [e.to_dict() for e in entries], "count": len(entries)}


@inventory_bp.get("/products/<int:product_id>/reconcile")
@require_auth
@require_role(*STOCK_ROLES)
def reconcile_route(product_id: int):
    return stock_service.reconcile(product_id)


@inventory_bp.get("/alerts")
@require_auth
@require_role(*STOCK_ROLES)
def low_stock_route():
    products = stock_service.list_low_stock()
    return {"items": [p.to_dict() for p in products], "count": len(products)}


@inventory_bp.get("/brands")
@require_auth
@require_role(*ANY_EMPLOYEE)
def list_brands_route():
    brands = stock_service.list_brands()
    return {"items": [b.to_dict() for b in brands], "count": len(brands)}


@inventory_bp.get("/categories")
@require_auth
@require_role(*ANY_EMPLOYEE)
def list_categories_route():
    categories = stock_service.list_categories()
    return {"items": [c.to_dict() for c in categories], "count": len(categories)}


@inventory_bp.post("/categories")
@require_auth
@require_role(*STOCK_ROLES)
def create_category_route():
    payload = request.get_json(silent=True) or {}
    category = stock_service.create_category(payload.get("name"), payload.get("description"))
    return {"category": category.to_dict()}, 201
