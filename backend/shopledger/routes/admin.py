# Overview: Flask API routes for employee administration; parses input and returns JSON responses.

# backend/shopledger/routes/admin.py
"""
Employee administration (admin only).
"""

from flask import Blueprint, request, g

from ..services import employee_service
from ..decorators import require_auth, require_role, ADMIN_ROLES


admin_bp = Blueprint("admin", __name__, url_prefix="/api/v1/admin")


@admin_bp.get("/employees")
@require_auth
@require_role(*ADMIN_ROLES)
def list_employees_route():
    include_inactive = request.args.get("include_inactive", "true").lower() != "false"
    employees = employee_service.list_employees(
        include_inactive=include_inactive,
        role_name=request.args.get("role"),
    )
    return {"items": [e.to_dict() for e in employees], "count": len(employees)}


@admin_bp.post("/employees")
@require_auth
@require_role(*ADMIN_ROLES)
def create_employee_route():
    payload = request.get_json(silent=True) or {}
    user = employee_service.create_employee(
        payload.get("username"),
        payload.get("password"),
        payload.get("role"),
        payload.get("mobile"),
    )
    return {"user": user.to_dict()}, 201


@admin_bp.get("/employees/<int:user_id>")
@require_auth
@require_role(*ADMIN_ROLES)
def get_employee_route(user_id: int):
    return {"user": employee_service.get_employee(user_id).to_dict()}


@admin_bp.put("/employees/<int:user_id>")
@require_auth
@require_role(*ADMIN_ROLES)
def update_employee_route(user_id: int):
    payload = request.get_json(silent=True) or {}
    user = employee_service.update_employee(user_id, payload)
    return {"user": user.to_dict()}


@admin_bp.put("/employees/<int:user_id>/role")
@require_auth
@require_role(*ADMIN_ROLES)
def set_role_route(user_id: int):
    payload = request.get_json(silent=True) or {}
    user = employee_service.set_role(user_id, payload.get("role"), actor_id=g.current_user.id)
    return {"user": user.to_dict()}


@admin_bp.put("/employees/<int:user_id>/status")
@require_auth
@require_role(*ADMIN_ROLES)
def set_status_route(user_id: int):
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload.get("is_active"), bool):
        return {"error": "is_active must be true or false"}, 400
    user = employee_service.set_status(
        user_id,
        payload["is_active"],
        reason=payload.get("reason"),
        actor_id=g.current_user.id,
    )
    return {"user": user.to_dict()}


@admin_bp.put("/employees/<int:user_id>/password")
@require_auth
@require_role(*ADMIN_ROLES)
def reset_password_route(user_id: int):
    payload = request.get_json(silent=True) or {}
    employee_service.reset_password(user_id, payload.get("new_password"))
    return {"message": "Password reset"}


@admin_bp.get("/login-history")
@require_auth
@require_role(*ADMIN_ROLES)
def login_history_route():
    entries = employee_service.login_history(
        user_id=request.args.get("user_id", type=int),
        limit=request.args.get("limit", 50, type=int),
    )
    return {"items": [e.to_dict() for e in entries], "count": len(entries)}
