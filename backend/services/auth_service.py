"""
Admin account service — bcrypt credentials for the admin panel.
"""
import logging
from datetime import datetime
from typing import Optional

import bcrypt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import AdminUser
from domain.errors import ConflictError, UnauthorizedError, ValidationError
from utils.validators import normalize_email

logger = logging.getLogger(__name__)

BCRYPT_ROUNDS = 10


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Stored value is not a bcrypt hash
        return False


async def get_admin_by_email(db: AsyncSession, email: str) -> Optional[AdminUser]:
    q = await db.execute(select(AdminUser).where(AdminUser.email == normalize_email(email)))
    return q.scalar_one_or_none()


async def get_admin_user(db: AsyncSession, user_id: int) -> Optional[AdminUser]:
    return await db.get(AdminUser, user_id)


async def authenticate_admin(db: AsyncSession, email: Optional[str], password: Optional[str]) -> AdminUser:
    """
    Check credentials and stamp last_login_at.

    Unknown email and wrong password produce the same error.

    Raises:
        ValidationError: email or password missing
        UnauthorizedError: bad credentials or inactive account
    """
    if not email or not password:
        raise ValidationError("Email and password are required")

    user = await get_admin_by_email(db, email)
    if user is None or not verify_password(password, user.password_hash):
        logger.warning(f"Failed admin login for {normalize_email(email)}")
        raise UnauthorizedError("Invalid email or password")
    if not user.is_active:
        raise UnauthorizedError("Account is inactive")

    user.last_login_at = datetime.utcnow()
    await db.commit()
    await db.refresh(user)
    logger.info(f"Admin login: {user.email}")
    return user


async def create_admin_user(
    db: AsyncSession,
    *,
    email: str,
    password: str,
    name: Optional[str] = None,
) -> AdminUser:
    """
    Raises:
        ValidationError: email or password missing
        ConflictError: an admin with this email already exists
    """
    if not email or not password:
        raise ValidationError("Email and password are required")
    if await get_admin_by_email(db, email) is not None:
        raise ConflictError(f"Admin user already exists: {normalize_email(email)}")

    user = AdminUser(
        email=normalize_email(email),
        password_hash=hash_password(password),
        name=name,
        is_active=True,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    logger.info(f"Admin user created: {user.email}")
    return user
