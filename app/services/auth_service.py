"""
Authentication Service

Account lifecycle for managers and client users:
- Registration (managers only, clients are created by their manager)
- Password login with Argon2 rehash on parameter changes
- Refresh token exchange
- Profile and password updates
- Client user accounts managed by a manager
"""

from datetime import datetime, timezone
from typing import Any, Optional

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import AppError, AuthenticationFailedError, NotFoundError
from app.core.security import (
    check_needs_rehash,
    create_token_pair,
    hash_password,
    verify_password,
    verify_token,
)
from app.models import Client, User

logger = structlog.get_logger()

PROFILE_FIELDS = ("name", "phone", "company", "avatar_url")


def serialize_user(user: User) -> dict[str, Any]:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "role": user.role,
        "avatar_url": user.avatar_url,
        "phone": user.phone,
        "company": user.company,
        "manager_id": user.manager_id,
        "is_active": user.is_active,
        "last_login_at": user.last_login_at.isoformat() if user.last_login_at else None,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


def issue_tokens(user: User) -> dict[str, Any]:
    """Token pair plus the user, as returned by register, login and refresh."""
    access_token, refresh_token = create_token_pair(user.id, user.email, user.role)
    return {
        "access_token": access_token,
        "refresh_token": refresh_token,
        "token_type": "bearer",
        "expires_in": settings.jwt_access_token_expire_minutes * 60,
        "user": serialize_user(user),
    }


async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    result = await db.execute(select(User).where(func.lower(User.email) == email.lower()))
    return result.scalar_one_or_none()


async def register_manager(
    db: AsyncSession,
    email: str,
    password: str,
    name: str,
    phone: Optional[str] = None,
    company: Optional[str] = None,
) -> User:
    """Create a manager account; e-mails are unique across all users."""
    if await get_user_by_email(db, email) is not None:
        raise AppError("Email already registered")

    user = User(
        email=email.lower(),
        password_hash=hash_password(password),
        name=name,
        role="manager",
        phone=phone,
        company=company,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)

    logger.info("user_registered", user_id=user.id, role=user.role)
    return user


async def authenticate(db: AsyncSession, email: str, password: str) -> User:
    """
    Check credentials and record the login.

    Raises:
        AuthenticationFailedError: Unknown e-mail, wrong password or
            deactivated account
    """
    user = await get_user_by_email(db, email)
    if user is None or not verify_password(password, user.password_hash):
        logger.warning("login_failed", email=email)
        raise AuthenticationFailedError("Invalid credentials")
    if not user.is_active:
        logger.warning("login_inactive_user", user_id=user.id)
        raise AuthenticationFailedError("User is deactivated")

    if check_needs_rehash(user.password_hash):
        user.password_hash = hash_password(password)
    user.last_login_at = datetime.now(timezone.utc)
    await db.commit()
    await db.refresh(user)

    logger.info("login_success", user_id=user.id)
    return user


async def refresh_session(db: AsyncSession, refresh_token: str) -> User:
    token_data = verify_token(refresh_token, token_type="refresh")
    if token_data is None:
        raise AuthenticationFailedError("Invalid or expired refresh token")

    user = await db.get(User, token_data.user_id)
    if user is None or not user.is_active:
        raise AuthenticationFailedError("Invalid or expired refresh token")
    return user


async def update_profile(db: AsyncSession, user: User, **fields) -> User:
    for field, value in fields.items():
        if field in PROFILE_FIELDS and value is not None:
            setattr(user, field, value)
    await db.commit()
    await db.refresh(user)
    return user


async def change_password(
    db: AsyncSession, user: User, current_password: str, new_password: str
) -> None:
    if not verify_password(current_password, user.password_hash):
        raise AppError("Current password is incorrect")

    user.password_hash = hash_password(new_password)
    await db.commit()
    logger.info("password_changed", user_id=user.id)


# =============================================================================
# Client users (managed by a manager)
# =============================================================================

async def list_client_users(db: AsyncSession, manager: User) -> list[User]:
    result = await db.execute(
        select(User)
        .where(User.manager_id == manager.id, User.role == "client")
        .order_by(User.name)
    )
    return list(result.scalars().all())


async def get_client_user(db: AsyncSession, manager: User, user_id: str) -> User:
    result = await db.execute(
        select(User).where(
            User.id == user_id, User.manager_id == manager.id, User.role == "client"
        )
    )
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFoundError("User not found")
    return user


async def create_client_user(
    db: AsyncSession,
    manager: User,
    email: str,
    password: str,
    name: str,
    phone: Optional[str] = None,
    company: Optional[str] = None,
    google_ads_customer_id: Optional[str] = None,
) -> User:
    if await get_user_by_email(db, email) is not None:
        raise AppError("Email already registered")

    email = email.lower()
    client = (
        await db.execute(select(Client).where(func.lower(Client.email) == email))
    ).scalar_one_or_none()
    if client is not None and client.manager_id != manager.id:
        raise AppError("Email belongs to a client of another manager")

    user = User(
        email=email,
        password_hash=hash_password(password),
        name=name,
        role="client",
        phone=phone,
        company=company,
        manager_id=manager.id,
        google_ads_customer_id=google_ads_customer_id,
    )
    db.add(user)
    if client is not None and client.user_id is None:
        await db.flush()
        client.user_id = user.id
    await db.commit()
    await db.refresh(user)

    logger.info("client_user_created", user_id=user.id, manager_id=manager.id)
    return user


async def update_client_user(db: AsyncSession, user: User, **fields) -> User:
    for field in (*PROFILE_FIELDS, "google_ads_customer_id", "is_active"):
        if fields.get(field) is not None:
            setattr(user, field, fields[field])
    if fields.get("password"):
        user.password_hash = hash_password(fields["password"])
    await db.commit()
    await db.refresh(user)
    return user


async def deactivate_client_user(db: AsyncSession, user: User) -> User:
    user.is_active = False
    await db.commit()
    await db.refresh(user)
    logger.info("client_user_deactivated", user_id=user.id)
    return user
