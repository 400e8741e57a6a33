from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


ROLE_NAMES = ("admin", "manager", "inventory", "biller")


class Role(db.Model):
    """
    Fixed role catalogue: admin, manager, inventory, biller.

    The role name also selects the employee-id prefix (ADM/MGR/INV/BIL).
    """
    __tablename__ = "roles"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_roles_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(32), nullable=False)
    description = db.Column(db.String(255), nullable=True)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "description": self.description}


class User(db.Model):
    """
    Employee accounts.

    employee_id is the human-readable login key (e.g. ADM001) allocated by
    the sequence service; username is a display name.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.UniqueConstraint("employee_id", name="uq_users_employee_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.String(32), nullable=False, index=True)
    username = db.Column(db.String(100), nullable=False)
    mobile = db.Column(db.String(20), nullable=True)

    # Bcrypt hashed password
    password_hash = db.Column(db.String(255), nullable=False)

    role_id = db.Column(db.Integer, db.ForeignKey("roles.id"), nullable=False, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    inactive_reason = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    role = db.relationship("Role", backref=db.backref("users", lazy=True))

    @property
    def role_name(self) -> str | None:
        return self.role.name if self.role else None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "employee_id": self.employee_id,
            "username": self.username,
            "mobile": self.mobile,
            "role": self.role_name,
            "is_active": self.is_active,
            "inactive_reason": self.inactive_reason,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "last_login_at": to_utc_z(self.last_login_at) if self.last_login_at else None,
        }


class SessionToken(db.Model):
    """
    Bearer session tokens.

    SECURITY NOTES:
    - Tokens stored hashed in database (SHA-256)
    - Absolute and idle timeouts come from config
    - Revocable on logout or deactivation
    """
    __tablename__ = "session_tokens"
    __table_args__ = (
        db.Index("ix_session_tokens_user_active", "user_id", "is_revoked"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # Token hash (never store plaintext tokens!)
    token_hash = db.Column(db.String(255), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    is_revoked = db.Column(db.Boolean, nullable=False, default=False, index=True)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    revoked_reason = db.Column(db.String(255), nullable=True)

    ip_address = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)

    user = db.relationship("User", backref=db.backref("session_tokens", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
            "last_used_at": to_utc_z(self.last_used_at),
            "expires_at": to_utc_z(self.expires_at),
            "is_revoked": self.is_revoked,
            "revoked_at": to_utc_z(self.revoked_at) if self.revoked_at else None,
            "revoked_reason": self.revoked_reason,
        }


class LoginHistory(db.Model):
    __tablename__ = "login_history"
    __table_args__ = (
        db.Index("ix_login_history_user_login", "user_id", "login_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    login_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    logout_at = db.Column(db.DateTime(timezone=True), nullable=True)
    ip_address = db.Column(db.String(64), nullable=True)

    user = db.relationship("User", backref=db.backref("login_history", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "employee_id": self.user.employee_id if self.user else None,
            "login_at": to_utc_z(self.login_at),
            "logout_at": to_utc_z(self.logout_at) if self.logout_at else None,
            "ip_address": self.ip_address,
        }
