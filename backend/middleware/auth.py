"""
Admin session helpers.

A successful login issues an HS256 JWT (type=admin) that travels in the
HTTP-only admin-auth-token cookie. API clients may send the same token as
Authorization: Bearer <jwt>; the cookie wins when both are present.
"""
import logging
from datetime import datetime, timezone, timedelta
from typing import Optional

import jwt
from fastapi import Depends, Header, Request

from config import settings
from domain.errors import ConfigurationError, UnauthorizedError

logger = logging.getLogger(__name__)

SESSION_TOKEN_TYPE = "admin"


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _parse_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    token = parts[1].strip()
    return token or None


def _require_secret() -> str:
    if not settings.jwt_secret:
        raise ConfigurationError("Server auth misconfigured (JWT secret missing).")
    return settings.jwt_secret


def issue_session_token(*, user_id: int, email: str) -> str:
    now = _now_utc()
    exp = now.replace(microsecond=0) + timedelta(minutes=settings.jwt_expires_minutes)
    payload = {
        "iss": settings.jwt_issuer,
        "sub": str(user_id),
        "email": email,
        "type": SESSION_TOKEN_TYPE,
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
    }
    return jwt.encode(payload, _require_secret(), algorithm="HS256")


def decode_session_token(token: str) -> Optional[dict]:
    """
    Verify a session token.

    Returns:
        {userId, email} for a valid admin token, None otherwise
    """
    try:
        payload = jwt.decode(
            token,
            _require_secret(),
            algorithms=["HS256"],
            issuer=settings.jwt_issuer,
            options={"require": ["exp", "iat", "iss", "sub"]},
        )
    except jwt.ExpiredSignatureError:
        logger.info("Admin session token expired")
        return None
    except jwt.InvalidTokenError:
        return None

    if payload.get("type") != SESSION_TOKEN_TYPE:
        return None
    try:
        user_id = int(payload["sub"])
    except (TypeError, ValueError):
        return None
    return {"userId": user_id, "email": payload.get("email")}


async def get_session_user(
    request: Request,
    authorization: Optional[str] = Header(None, alias="Authorization"),
) -> Optional[dict]:
    """Best-effort: the session if one is presented and valid, else None."""
    token = request.cookies.get(settings.auth_cookie_name) or _parse_bearer_token(authorization)
    if not token:
        return None
    return decode_session_token(token)


async def require_admin_session(session: Optional[dict] = Depends(get_session_user)) -> dict:
    if session is None:
        raise UnauthorizedError("Authentication required")
    return session
