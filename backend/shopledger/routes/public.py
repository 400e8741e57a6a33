# Overview: Flask API routes for the public storefront; parses input and returns JSON responses.

# backend/shopledger/routes/public.py
"""
Unauthenticated storefront routes: shop info, catalogue and order intake.
"""

from flask import Blueprint, request, current_app

from ..services import order_service, stock_service


public_bp = Blueprint("public", __name__, url_prefix="/api/v1/public")


@public_bp.get("/config")
def config_route():
    cfg = current_app.config
    return {
        "company_name": cfg.get("COMPANY_NAME"),
        "company_address": cfg.get("COMPANY_ADDRESS"),
        "company_phone": cfg.get("COMPANY_PHONE"),
        "company_logo": cfg.get("COMPANY_LOGO"),
    }


@public_bp.get("/products")
def products_route():
    result = stock_service.list_products(
        q=request.args.get("q"),
        category_id=request.args.get("category_id", type=int),
    )
    return {"items": [p.to_public_dict() for p in result["items"]], "count": result["count"]}


@public_bp.post("/orders")
def submit_order_route():
    """
    Body: {"customer_name", "customer_mobile", "address"?, "items": [{"product_id", "quantity"}]}

    Returns the order and a WhatsApp link carrying the confirmation message.
    """
    payload = request.get_json(silent=True) or {}
    order = order_service.submit_order(
        payload.get("customer_mobile"),
        payload.get("customer_name"),
        payload.get("items"),
        address=payload.get("address"),
    )
    return {
        "order_no": order.order_no,
        "order": order.to_dict(),
        "whatsapp_url": order_service.whatsapp_link(order),
    }, 201
