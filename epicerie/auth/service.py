import logging
import secrets
from datetime import timedelta
from functools import wraps
from typing import Dict, Any, Optional

from quart import g, request

from .passwords import hash_password, verify_password
from ..common.config import settings
from ..common.database import (
    admin_to_dict,
    delete_session,
    fetch_admin_by_username,
    fetch_session_admin_id,
    insert_admin,
    insert_session,
)
from ..common.db import utcnow, isoformat
from ..common.errors import AuthError, ValidationError

_logger = logging.getLogger(__name__)

# Absent and expired sessions are reported identically
INVALID_SESSION = "Invalid session"


async def create_admin(username: str, email: str, password: str) -> int:
    if not username or not password:
        raise ValidationError("Username and password required")
    admin_id = await insert_admin(username, email, hash_password(password))
    _logger.info("Admin created | admin_id=%s username=%s", admin_id, username)
    return admin_id


async def issue(username: str, password: str, ttl: Optional[timedelta] = None) -> Dict[str, Any]:
    """Log an admin in and hand back a fresh bearer session."""
    admin = await fetch_admin_by_username(username)
    if admin is None or not verify_password(admin.password_hash, password):
        _logger.info("Login rejected | username=%s", username)
        raise AuthError("Invalid credentials")

    if ttl is None:
        ttl = timedelta(hours=settings.SESSION_TTL_HOURS)
    token = secrets.token_urlsafe(32)
    expires_at = utcnow() + ttl
    await insert_session(token, admin.id, expires_at)
    _logger.info("Session issued | admin_id=%s expires_at=%s", admin.id, expires_at)

    data = admin_to_dict(admin)
    data.update({"session_token": token, "expires_at": isoformat(expires_at)})
    return data


async def validate(token: Optional[str]) -> int:
    if not token:
        raise AuthError(INVALID_SESSION)
    admin_id = await fetch_session_admin_id(token, utcnow())
    if admin_id is None:
        raise AuthError(INVALID_SESSION)
    return admin_id


async def revoke(token: str) -> None:
    await delete_session(token)
    _logger.info("Session revoked")


def bearer_token() -> Optional[str]:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def require_admin(func):
    """Reject the request with 401 unless it carries a live admin session."""

    @wraps(func)
    async def wrapper(*args, **kwargs):
        token = bearer_token()
        if token is None:
            raise AuthError("Unauthorized")
        g.admin_id = await validate(token)
        return await func(*args, **kwargs)

    return wrapper
