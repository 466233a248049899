"""
Authentication API endpoints.

Implements:
- Manager registration
- Login and token refresh
- Current user profile
- Password change
"""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Request, status
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.database import get_db
from app.middleware.auth import get_current_user
from app.middleware.security import get_client_ip, limiter
from app.models import User
from app.services import auth_service

logger = structlog.get_logger()

router = APIRouter()


# =============================================================================
# Request/Response Schemas
# =============================================================================

class RegisterRequest(BaseModel):
    """Manager registration request."""
    email: EmailStr
    password: str = Field(min_length=6, max_length=128)
    name: str = Field(min_length=1, max_length=255)
    phone: Optional[str] = Field(default=None, max_length=50)
    company: Optional[str] = Field(default=None, max_length=255)


class LoginRequest(BaseModel):
    """User login request."""
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    """Token pair returned by register, login and refresh."""
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    user: dict


class RefreshRequest(BaseModel):
    """Token refresh request."""
    refresh_token: str


class ProfileUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    phone: Optional[str] = Field(default=None, max_length=50)
    company: Optional[str] = Field(default=None, max_length=255)
    avatar_url: Optional[str] = Field(default=None, max_length=500)


class PasswordChangeRequest(BaseModel):
    current_password: str
    new_password: str = Field(min_length=6, max_length=128)


# =============================================================================
# Authentication Endpoints
# =============================================================================

@router.post(
    "/register",
    response_model=TokenResponse,
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit(settings.rate_limit_auth)
async def register(
    request: Request,
    data: RegisterRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    Register a new manager account.

    Client users are created by their manager through the clients API.
    """
    logger.info(
        "user_registration_attempt",
        email=data.email,
        client_ip=get_client_ip(request),
    )
    user = await auth_service.register_manager(
        db,
        email=data.email,
        password=data.password,
        name=data.name,
        phone=data.phone,
        company=data.company,
    )
    return auth_service.issue_tokens(user)


@router.post("/login", response_model=TokenResponse)
@limiter.limit(settings.rate_limit_auth)
async def login(
    request: Request,
    data: LoginRequest,
    db: AsyncSession = Depends(get_db),
):
    """Authenticate with e-mail and password and return tokens."""
    logger.info("login_attempt", email=data.email, client_ip=get_client_ip(request))
    user = await auth_service.authenticate(db, data.email, data.password)
    return auth_service.issue_tokens(user)


@router.post("/refresh", response_model=TokenResponse)
@limiter.limit(settings.rate_limit_auth)
async def refresh_token(
    request: Request,
    data: RefreshRequest,
    db: AsyncSession = Depends(get_db),
):
    """Exchange a refresh token for a new token pair."""
    user = await auth_service.refresh_session(db, data.refresh_token)
    return auth_service.issue_tokens(user)


# =============================================================================
# Current User
# =============================================================================

@router.get("/me")
async def get_me(current_user: User = Depends(get_current_user)):
    return auth_service.serialize_user(current_user)


@router.put("/profile")
async def update_profile(
    data: ProfileUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    user = await auth_service.update_profile(
        db, current_user, **data.model_dump(exclude_unset=True)
    )
    return auth_service.serialize_user(user)


@router.put("/password")
async def change_password(
    data: PasswordChangeRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await auth_service.change_password(
        db, current_user, data.current_password, data.new_password
    )
    return {"message": "Password updated successfully"}
