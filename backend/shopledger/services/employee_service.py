# Overview: Employee accounts, roles, login and login history.

"""
Employee Service

Every bill, stock entry and discount change is attributed to an employee.
Employees log in with their employee id (e.g. BIL003), which is allocated
from the role's identifier sequence.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor from BCRYPT_ROUNDS, default 12)
- Minimum 8 characters with upper, lower, digit and special character
- Session tokens managed separately (see session_service.py)
"""

import re

import bcrypt
from flask import current_app

from ..errors import AuthenticationError, ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import LoginHistory, Role, User, ROLE_NAMES
from ..time_utils import utcnow
from ..validation import require_text
from . import sequence_service, session_service
from .concurrency import begin_write, flush_unique, lock_for_update, run_with_identifier_retry, run_write


ROLE_DESCRIPTIONS = {
    "admin": "Full access, employee management",
    "manager": "Orders, discounts, customers, bill cancellation",
    "inventory": "Products and stock",
    "biller": "Billing counter",
}


def validate_password_strength(password: str) -> None:
    """
    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character (!@#$%^&*(),.'":{}|<>)
    """
    if not isinstance(password, str) or len(password) < 8:
        raise ValidationError("Password must be at least 8 characters long", details={"field": "password"})

    if not re.search(r'[A-Z]', password):
        raise ValidationError("Password must contain at least one uppercase letter", details={"field": "password"})

    if not re.search(r'[a-z]', password):
        raise ValidationError("Password must contain at least one lowercase letter", details={"field": "password"})

    if not re.search(r'\d', password):
        raise ValidationError("Password must contain at least one digit", details={"field": "password"})

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise ValidationError("Password must contain at least one special character", details={"field": "password"})


def hash_password(password: str) -> str:
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=int(current_app.config.get("BCRYPT_ROUNDS", 12)))
    return bcrypt.hashpw(password.encode('utf-8'), salt).decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe via bcrypt.checkpw; malformed hashes never verify."""
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def ensure_roles() -> dict[str, Role]:
    """Create any missing fixed roles. Idempotent."""
    existing = {role.name: role for role in db.session.query(Role).all()}
    for name in ROLE_NAMES:
        if name not in existing:
            role = Role(name=name, description=ROLE_DESCRIPTIONS.get(name))
            db.session.add(role)
            existing[name] = role
    db.session.commit()
    return existing


def get_role(role_name) -> Role:
    name = str(role_name or "").strip().lower()
    if name not in ROLE_NAMES:
        raise ValidationError(f"role must be one of {', '.join(ROLE_NAMES)}", details={"field": "role"})
    role = db.session.query(Role).filter_by(name=name).first()
    if role is None:
        role = ensure_roles()[name]
    return role


def get_employee(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("Employee not found", details={"user_id": user_id})
    return user


def create_employee(username, password, role_name, mobile=None, *, employee_id: str | None = None) -> User:
    """
    Create an employee; the employee id comes from the role's sequence
    (ADM001, MGR002, ...) unless one is given explicitly (bootstrap admin).
    """
    username = require_text(username, "username", max_length=100)
    mobile = (str(mobile).strip()[:20] or None) if mobile else None
    role = get_role(role_name)
    password_hash = hash_password(password)
    spec = sequence_service.employee_sequence(role.name)

    def _op() -> User:
        begin_write()
        if employee_id:
            if db.session.query(User.id).filter_by(employee_id=employee_id).first():
                raise ConflictError("Employee id already exists", details={"employee_id": employee_id})
            new_id = employee_id
        else:
            new_id = sequence_service.next_identifier(spec)
        user = User(
            employee_id=new_id,
            username=username,
            mobile=mobile,
            password_hash=password_hash,
            role_id=role.id,
            is_active=True,
        )
        db.session.add(user)
        flush_unique(spec.namespace, "employee_id", identifier=new_id)
        db.session.commit()
        current_app.logger.info("Employee created: %s (%s)", new_id, role.name)
        return user

    return run_with_identifier_retry(_op, on_collision=sequence_service.collision_handler(spec))


def authenticate(employee_id, password, ip_address: str | None = None, user_agent: str | None = None):
    """
    Verify credentials, record the login and issue a session token.

    Returns (user, plaintext_token). Unknown ids, wrong passwords and
    inactive accounts all fail the same way.
    """
    employee_id = str(employee_id or "").strip().upper()
    if not employee_id or not password:
        raise AuthenticationError("employee_id and password are required")

    user = db.session.query(User).filter_by(employee_id=employee_id).first()
    if user is None or not verify_password(password, user.password_hash):
        current_app.logger.warning("Failed login for %s from %s", employee_id, ip_address)
        raise AuthenticationError("Invalid credentials")
    if not user.is_active:
        raise AuthenticationError("Account is inactive")

    now = utcnow()
    user.last_login_at = now
    db.session.add(LoginHistory(user_id=user.id, login_at=now, ip_address=ip_address))
    _session, token = session_service.create_session(
        user.id, user_agent=user_agent, ip_address=ip_address, commit=False
    )
    db.session.commit()
    return user, token


def logout(token: str) -> bool:
    session = session_service.revoke_session(token)
    if session is None:
        return False
    entry = (
        db.session.query(LoginHistory)
        .filter(LoginHistory.user_id == session.user_id, LoginHistory.logout_at.is_(None))
        .order_by(LoginHistory.login_at.desc(), LoginHistory.id.desc())
        .first()
    )
    if entry is not None:
        entry.logout_at = utcnow()
        db.session.commit()
    return True


def change_password(user_id: int, current_password, new_password) -> User:
    user = get_employee(user_id)
    if not verify_password(current_password, user.password_hash):
        raise AuthenticationError("Current password is incorrect")
    user.password_hash = hash_password(new_password)
    db.session.commit()
    return user


def reset_password(user_id: int, new_password) -> User:
    """Admin reset; existing sessions of the employee are revoked."""
    password_hash = hash_password(new_password)

    def _op() -> User:
        begin_write()
        user = lock_for_update(db.session.query(User).filter_by(id=user_id)).first()
        if user is None:
            raise NotFoundError("Employee not found", details={"user_id": user_id})
        user.password_hash = password_hash
        session_service.revoke_all_user_sessions(user.id, "Password reset", commit=False)
        db.session.commit()
        return user

    return run_write(_op)


def update_employee(user_id: int, payload: dict) -> User:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    unknown = set(payload) - {"username", "mobile"}
    if unknown:
        raise ValidationError(f"Field not allowed: {sorted(unknown)[0]}", details={"field": sorted(unknown)[0]})

    def _op() -> User:
        begin_write()
        user = lock_for_update(db.session.query(User).filter_by(id=user_id)).first()
        if user is None:
            raise NotFoundError("Employee not found", details={"user_id": user_id})
        if "username" in payload:
            user.username = require_text(payload["username"], "username", max_length=100)
        if "mobile" in payload:
            user.mobile = (str(payload["mobile"]).strip()[:20] or None) if payload["mobile"] else None
        db.session.commit()
        return user

    return run_write(_op)


def set_role(user_id: int, role_name, actor_id: int | None = None) -> User:
    """Change an employee's role. The employee id is an identity and does not change."""
    role = get_role(role_name)

    def _op() -> User:
        begin_write()
        user = lock_for_update(db.session.query(User).filter_by(id=user_id)).first()
        if user is None:
            raise NotFoundError("Employee not found", details={"user_id": user_id})
        if actor_id == user.id and role.name != "admin":
            raise ConflictError("You cannot remove your own admin role")
        user.role_id = role.id
        db.session.commit()
        return user

    return run_write(_op)


def set_status(user_id: int, is_active: bool, reason: str | None = None, actor_id: int | None = None) -> User:
    """Activate or deactivate; deactivation revokes every open session."""
    def _op() -> User:
        begin_write()
        user = lock_for_update(db.session.query(User).filter_by(id=user_id)).first()
        if user is None:
            raise NotFoundError("Employee not found", details={"user_id": user_id})
        if actor_id == user.id and not is_active:
            raise ConflictError("You cannot deactivate your own account")
        user.is_active = bool(is_active)
        if is_active:
            user.inactive_reason = None
        else:
            user.inactive_reason = (str(reason).strip()[:255] or None) if reason else None
            session_service.revoke_all_user_sessions(user.id, "Employee deactivated", commit=False)
        db.session.commit()
        current_app.logger.info("Employee %s active=%s", user.employee_id, user.is_active)
        return user

    return run_write(_op)


def list_employees(include_inactive: bool = True, role_name: str | None = None) -> list[User]:
    query = db.session.query(User)
    if not include_inactive:
        query = query.filter(User.is_active.is_(True))
    if role_name:
        query = query.join(Role, User.role_id == Role.id).filter(Role.name == str(role_name).strip().lower())
    return query.order_by(User.employee_id.asc()).all()


def login_history(user_id: int | None = None, limit: int = 50) -> list[LoginHistory]:
    query = db.session.query(LoginHistory)
    if user_id is not None:
        query = query.filter(LoginHistory.user_id == user_id)
    limit = min(max(limit or 50, 1), 500)
    return query.order_by(LoginHistory.login_at.desc(), LoginHistory.id.desc()).limit(limit).all()
