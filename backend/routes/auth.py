"""
Admin auth endpoints — email/password login with a cookie session.

Flow:
  1) POST /api/auth/login   -> verifies bcrypt hash, sets admin-auth-token cookie
  2) GET  /api/auth/me      -> current admin (cookie or Bearer token)
  3) POST /api/auth/logout  -> clears the cookie
"""
import logging

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from domain.errors import UnauthorizedError
from domain.responses import success_response
from middleware.auth import issue_session_token, require_admin_session
from models import AdminUserOut, LoginRequest
from services import auth_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/auth", tags=["auth"])


def _user_out(user) -> dict:
    return AdminUserOut.model_validate(user).model_dump(mode="json", by_alias=True)


@router.post("/login")
async def login(
    request: LoginRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
):
    user = await auth_service.authenticate_admin(db, request.email, request.password)
    token = issue_session_token(user_id=user.id, email=user.email)

    response.set_cookie(
        key=settings.auth_cookie_name,
        value=token,
        max_age=settings.jwt_expires_minutes * 60,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
        path="/",
    )
    return success_response({"user": _user_out(user)})


@router.get("/me")
async def me(
    session: dict = Depends(require_admin_session),
    db: AsyncSession = Depends(get_db),
):
    user = await auth_service.get_admin_user(db, session["userId"])
    if user is None or not user.is_active:
        raise UnauthorizedError("User not found or inactive")
    return success_response({"user": _user_out(user)})


@router.post("/logout")
async def logout(response: Response):
    response.delete_cookie(key=settings.auth_cookie_name, path="/")
    return success_response({"loggedOut": True})
