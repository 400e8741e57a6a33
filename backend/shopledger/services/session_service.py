# Overview: Bearer session tokens for employees.

"""
Session Token Management Service

Tokens are cryptographically secure, hashed in the database, and time-limited.

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage (fast, one-way)
- Absolute timeout (SESSION_ABSOLUTE_TIMEOUT_HOURS, default 24)
- Idle timeout (SESSION_IDLE_TIMEOUT_HOURS, default 2)
- Revocable on logout, password change or deactivation
"""

import secrets
import hashlib
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import SessionToken, User
from ..time_utils import utcnow


@dataclass
class SessionContext:
    user: User
    session: SessionToken


def _absolute_timeout() -> timedelta:
    return timedelta(hours=current_app.config.get("SESSION_ABSOLUTE_TIMEOUT_HOURS", 24))


def _idle_timeout() -> timedelta:
    return timedelta(hours=current_app.config.get("SESSION_IDLE_TIMEOUT_HOURS", 2))


def generate_token() -> str:
    """64-character hex string (32 bytes of entropy). Never stored."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """
    Hash token for database storage using SHA-256.

    Tokens are already high-entropy (unlike passwords), so a fast hash is enough.
    """
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def create_session(
    user_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None,
    *,
    commit: bool = True,
) -> tuple[SessionToken, str]:
    """
    Returns (session_record, plaintext_token).
    Client receives plaintext_token, database stores only the hash.
    """
    plaintext_token = generate_token()
    now = utcnow()

    session = SessionToken(
        user_id=user_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + _absolute_timeout(),
        user_agent=(user_agent or "")[:255] or None,
        ip_address=ip_address,
        is_revoked=False,
    )
    db.session.add(session)
    if commit:
        db.session.commit()
    return session, plaintext_token


def _revoke(session: SessionToken, reason: str) -> None:
    session.is_revoked = True
    session.revoked_at = utcnow()
    session.revoked_reason = reason


def validate_session(token: str) -> SessionContext | None:
    """
    Validate session token and return SessionContext if valid.

    Returns None if the token is unknown, expired, idle too long or revoked,
    or if the employee has been deactivated. Touches last_used_at.
    """
    if not token:
        return None
    now = utcnow()

    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()
    if not session:
        return None

    if session.expires_at < now:
        return None

    if now - session.last_used_at > _idle_timeout():
        _revoke(session, "Idle timeout")
        db.session.commit()
        return None

    user = session.user
    if not user or not user.is_active:
        _revoke(session, "Employee deactivated")
        db.session.commit()
        return None

    session.last_used_at = now
    db.session.commit()
    return SessionContext(user=user, session=session)


def revoke_session(token: str, reason: str = "User logout") -> SessionToken | None:
    """Returns the revoked session, or None if the token was not active."""
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()
    if not session:
        return None

    _revoke(session, reason)
    db.session.commit()
    return session


def revoke_all_user_sessions(user_id: int, reason: str = "Revoke all sessions", *, commit: bool = True) -> int:
    """
    Revoke all active sessions for a user.

    Returns count of sessions revoked.
    """
    sessions = db.session.query(SessionToken).filter_by(user_id=user_id, is_revoked=False).all()
    for session in sessions:
        _revoke(session, reason)
    if commit:
        db.session.commit()
    return len(sessions)
