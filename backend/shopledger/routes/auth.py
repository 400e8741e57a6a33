# Overview: Flask API routes for employee sessions; parses input and returns JSON responses.

# backend/shopledger/routes/auth.py
"""
Employee login, logout and self-service password change.
"""

from flask import Blueprint, request, g

from ..services import employee_service
from ..decorators import require_auth


auth_bp = Blueprint("auth", __name__, url_prefix="/api/v1/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate with employee_id + password.

    Returns the employee and a bearer token for the Authorization header.
    """
    payload = request.get_json(silent=True) or {}
    user, token = employee_service.authenticate(
        payload.get("employee_id"),
        payload.get("password"),
        ip_address=request.remote_addr,
        user_agent=request.headers.get("User-Agent"),
    )
    return {"token": token, "user": user.to_dict()}


@auth_bp.post("/logout")
@require_auth
def logout_route():
    employee_service.logout(g.token)
    return {"message": "Logged out"}


@auth_bp.get("/me")
@require_auth
def me_route():
    return {"user": g.current_user.to_dict()}


@auth_bp.put("/password")
@require_auth
def change_password_route():
    payload = request.get_json(silent=True) or {}
    employee_service.change_password(
        g.current_user.id,
        payload.get("current_password"),
        payload.get("new_password"),
    )
    return {"message": "Password updated"}
