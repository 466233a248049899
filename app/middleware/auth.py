"""
Authentication middleware and dependencies.

Provides FastAPI dependencies for:
- Getting the current authenticated user from a Bearer JWT
- Role-based access control (manager / client)
- Request context for the change history
"""

from dataclasses import dataclass
from typing import Optional

import structlog
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.exceptions import AuthenticationFailedError, PermissionDeniedError
from app.core.security import verify_token
from app.middleware.security import get_client_ip
from app.models import User

logger = structlog.get_logger()

# Bearer token security scheme
security = HTTPBearer(auto_error=False)


async def get_user_from_token(db: AsyncSession, token: str) -> Optional[User]:
    """Resolve an access token to an active user, or None."""
    token_data = verify_token(token, token_type="access")
    if token_data is None:
        return None

    user = await db.get(User, token_data.user_id)
    if user is None or not user.is_active:
        return None
    return user


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Get the current authenticated user from the JWT token."""
    if credentials is None:
        raise AuthenticationFailedError("Authentication token not provided")

    token_data = verify_token(credentials.credentials, token_type="access")
    if token_data is None:
        raise AuthenticationFailedError("Invalid or expired token")

    user = await db.get(User, token_data.user_id)
    if user is None:
        raise AuthenticationFailedError("User not found")
    if not user.is_active:
        logger.warning("inactive_user_request", user_id=user.id)
        raise AuthenticationFailedError("User is deactivated")

    return user


async def require_manager(
    current_user: User = Depends(get_current_user),
) -> User:
    """Require the manager role."""
    if not current_user.is_manager:
        raise PermissionDeniedError("Manager access required")
    return current_user


@dataclass
class RequestContext:
    """Caller details recorded with history entries."""
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


def get_request_context(request: Request) -> RequestContext:
    return RequestContext(
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("User-Agent"),
    )
