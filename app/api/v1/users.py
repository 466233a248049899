"""
Users API endpoints.

Client user accounts managed by a manager. Newer integrations should create
clients through /clients, which links the login to a Client record.
"""

from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.middleware.auth import require_manager
from app.models import User
from app.services import auth_service

router = APIRouter()


# =============================================================================
# Request/Response Schemas
# =============================================================================

class CreateClientUserRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6, max_length=128)
    name: str = Field(min_length=1, max_length=255)
    phone: Optional[str] = Field(default=None, max_length=50)
    company: Optional[str] = Field(default=None, max_length=255)
    google_ads_customer_id: Optional[str] = Field(default=None, max_length=20)


class UpdateClientUserRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    phone: Optional[str] = Field(default=None, max_length=50)
    company: Optional[str] = Field(default=None, max_length=255)
    avatar_url: Optional[str] = Field(default=None, max_length=500)
    google_ads_customer_id: Optional[str] = Field(default=None, max_length=20)
    is_active: Optional[bool] = None
    password: Optional[str] = Field(default=None, min_length=6, max_length=128)


# =============================================================================
# Endpoints
# =============================================================================

@router.get("")
async def list_users(
    manager: User = Depends(require_manager),
    db: AsyncSession = Depends(get_db),
):
    users = await auth_service.list_client_users(db, manager)
    return {"users": [auth_service.serialize_user(u) for u in users], "total": len(users)}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_user(
    data: CreateClientUserRequest,
    manager: User = Depends(require_manager),
    db: AsyncSession = Depends(get_db),
):
    user = await auth_service.create_client_user(db, manager, **data.model_dump())
    return auth_service.serialize_user(user)


@router.get("/{user_id}")
async def get_user(
    user_id: str,
    manager: User = Depends(require_manager),
    db: AsyncSession = Depends(get_db),
):
    user = await auth_service.get_client_user(db, manager, user_id)
    return auth_service.serialize_user(user)


@router.put("/{user_id}")
async def update_user(
    user_id: str,
    data: UpdateClientUserRequest,
    manager: User = Depends(require_manager),
    db: AsyncSession = Depends(get_db),
):
    user = await auth_service.get_client_user(db, manager, user_id)
    user = await auth_service.update_client_user(db, user, **data.model_dump(exclude_unset=True))
    return auth_service.serialize_user(user)


@router.delete("/{user_id}")
async def deactivate_user(
    user_id: str,
    manager: User = Depends(require_manager),
    db: AsyncSession = Depends(get_db),
):
    user = await auth_service.get_client_user(db, manager, user_id)
    await auth_service.deactivate_client_user(db, user)
    return {"message": "User deactivated successfully"}
