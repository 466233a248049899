"""
Client Management API endpoints.

Implements:
- Client CRUD for managers (soft delete)
- Search and pagination
- 30 day performance statistics
"""

import math
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from pydantic import BaseModel, EmailStr, Field, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.middleware.auth import RequestContext, get_request_context, require_manager
from app.middleware.security import limiter
from app.models import User
from app.services import client_service

router = APIRouter()


# =============================================================================
# Request/Response Schemas
# =============================================================================

class ClientCreate(BaseModel):
    """Client creation schema. A password also creates the client's login."""
    name: str = Field(min_length=1, max_length=255)
    email: EmailStr
    phone: Optional[str] = Field(default=None, max_length=50)
    company: Optional[str] = Field(default=None, max_length=255)
    google_ads_customer_id: Optional[str] = Field(default=None, max_length=20)
    password: Optional[str] = Field(default=None, min_length=6, max_length=128)


class ClientUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(default=None, max_length=50)
    company: Optional[str] = Field(default=None, max_length=255)
    google_ads_customer_id: Optional[str] = Field(default=None, max_length=20)
    is_active: Optional[bool] = None

    @field_validator("name", "email", "is_active")
    @classmethod
    def reject_null(cls, v):
        if v is None:
            raise ValueError("field cannot be null")
        return v


# =============================================================================
# Endpoints
# =============================================================================

@router.get("")
async def list_clients(
    search: Optional[str] = Query(default=None, max_length=100),
    is_active: Optional[bool] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    manager: User = Depends(require_manager),
    db: AsyncSession = Depends(get_db),
):
    items, total = await client_service.list_clients(
        db, manager, search=search, is_active=is_active, page=page, limit=limit
    )
    return {
        "items": [
            client_service.serialize_client(item["client"], item["campaigns_count"])
            for item in items
        ],
        "total": total,
        "page": page,
        "pages": math.ceil(total / limit) if total else 0,
    }


@router.post("", status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
async def create_client(
    request: Request,
    data: ClientCreate,
    manager: User = Depends(require_manager),
    context: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    client = await client_service.create_client(
        db,
        manager,
        ip_address=context.ip_address,
        user_agent=context.user_agent,
        **data.model_dump(),
    )
    return client_service.serialize_client(client, campaigns_count=0)


@router.get("/{client_id}")
async def get_client(
    client_id: str,
    manager: User = Depends(require_manager),
    db: AsyncSession = Depends(get_db),
):
    client = await client_service.get_client(db, manager, client_id)
    return client_service.serialize_client(client)


@router.put("/{client_id}")
async def update_client(
    client_id: str,
    data: ClientUpdate,
    manager: User = Depends(require_manager),
    context: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    client = await client_service.get_client(db, manager, client_id)
    client = await client_service.update_client(
        db,
        manager,
        client,
        ip_address=context.ip_address,
        user_agent=context.user_agent,
        **data.model_dump(exclude_unset=True),
    )
    return client_service.serialize_client(client)


@router.delete("/{client_id}")
async def delete_client(
    client_id: str,
    manager: User = Depends(require_manager),
    context: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    client = await client_service.get_client(db, manager, client_id)
    await client_service.deactivate_client(
        db, manager, client, ip_address=context.ip_address, user_agent=context.user_agent
    )
    return {"message": "Client deactivated successfully"}


@router.get("/{client_id}/stats")
async def get_client_stats(
    client_id: str,
    days: int = Query(default=30, ge=1, le=365),
    manager: User = Depends(require_manager),
    db: AsyncSession = Depends(get_db),
):
    client = await client_service.get_client(db, manager, client_id)
    return await client_service.get_client_stats(db, client, days=days)
