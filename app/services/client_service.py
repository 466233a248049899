"""
Client Service

Manager-scoped management of advertiser clients:
- CRUD with search and pagination
- Optional login account for the client
- 30 day performance statistics
"""

from datetime import date, timedelta
from typing import Any, Optional

import structlog
from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AppError, NotFoundError
from app.core.security import hash_password
from app.models import (
    Alert,
    Campaign,
    CampaignMetric,
    Client,
    HistoryActions,
    HistoryEntities,
    User,
)
from app.services import history_service

logger = structlog.get_logger()

CLIENT_TRACKED_FIELDS = ("name", "email", "phone", "company", "is_active")


def client_scope_condition(user: User):
    """Condition selecting the Client rows a user may see."""
    if user.is_manager:
        return Client.manager_id == user.id
    return Client.linked_to(user)


async def get_client_for_user(db: AsyncSession, user: User) -> Optional[Client]:
    """Client record linked to a client login."""
    result = await db.execute(
        select(Client).where(client_scope_condition(user)).order_by(Client.created_at)
    )
    return result.scalars().first()


async def list_clients(
    db: AsyncSession,
    manager: User,
    search: Optional[str] = None,
    is_active: Optional[bool] = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[dict[str, Any]], int]:
    """
    List the manager's clients with their campaign count.

    Returns:
        Tuple of (client rows, total count)
    """
    conditions = [Client.manager_id == manager.id]
    if search:
        pattern = f"%{search.lower()}%"
        conditions.append(
            or_(
                func.lower(Client.name).like(pattern),
                func.lower(Client.email).like(pattern),
                func.lower(Client.company).like(pattern),
            )
        )
    if is_active is not None:
        conditions.append(Client.is_active == is_active)

    total = (
        await db.execute(select(func.count(Client.id)).where(and_(*conditions)))
    ).scalar() or 0

    campaigns_count = (
        select(func.count(Campaign.id))
        .where(Campaign.client_id == Client.id)
        .correlate(Client)
        .scalar_subquery()
    )
    result = await db.execute(
        select(Client, campaigns_count.label("campaigns_count"))
        .where(and_(*conditions))
        .order_by(Client.name)
        .limit(limit)
        .offset((page - 1) * limit)
    )

    items = [
        {"client": client, "campaigns_count": count or 0}
        for client, count in result.all()
    ]
    return items, total


async def get_client(db: AsyncSession, manager: User, client_id: str) -> Client:
    result = await db.execute(
        select(Client).where(Client.id == client_id, Client.manager_id == manager.id)
    )
    client = result.scalar_one_or_none()
    if client is None:
        raise NotFoundError("Client not found")
    return client


async def _email_taken(db: AsyncSession, email: str, exclude_id: Optional[str] = None) -> bool:
    query = select(Client.id).where(func.lower(Client.email) == email.lower())
    if exclude_id:
        query = query.where(Client.id != exclude_id)
    return (await db.execute(query)).first() is not None


async def create_client(
    db: AsyncSession,
    manager: User,
    name: str,
    email: str,
    phone: Optional[str] = None,
    company: Optional[str] = None,
    google_ads_customer_id: Optional[str] = None,
    password: Optional[str] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> Client:
    """
    Create a client for the manager.

    When a password is given a client login with the same e-mail is created
    and linked to the record.
    """
    if await _email_taken(db, email):
        raise AppError("A client with this email already exists")

    client = Client(
        manager_id=manager.id,
        name=name,
        email=email.lower(),
        phone=phone,
        company=company,
        google_ads_customer_id=google_ads_customer_id,
    )

    if password:
        existing_user = await db.execute(
            select(User.id).where(func.lower(User.email) == email.lower())
        )
        if existing_user.first() is not None:
            raise AppError("A user with this email already exists")
        login = User(
            email=email.lower(),
            password_hash=hash_password(password),
            name=name,
            role="client",
            phone=phone,
            company=company,
            manager_id=manager.id,
        )
        db.add(login)
        await db.flush()
        client.user_id = login.id

    db.add(client)
    await db.flush()

    await history_service.log_change(
        db,
        action=HistoryActions.CREATE,
        entity_type=HistoryEntities.CLIENT,
        user_id=manager.id,
        entity_id=client.id,
        entity_name=client.name,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    await db.commit()

    logger.info("client_created", client_id=client.id, manager_id=manager.id)
    return client


async def update_client(
    db: AsyncSession,
    manager: User,
    client: Client,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    **kwargs,
) -> Client:
    """Update a client, checking e-mail uniqueness."""
    if kwargs.get("email"):
        kwargs["email"] = kwargs["email"].lower()
        if kwargs["email"] != client.email and await _email_taken(db, kwargs["email"], client.id):
            raise AppError("A client with this email already exists")

    old_values = {field: getattr(client, field) for field in CLIENT_TRACKED_FIELDS}
    for field, value in kwargs.items():
        if hasattr(client, field):
            setattr(client, field, value)

    changes = history_service.detect_changes(
        old_values, {f: getattr(client, f) for f in CLIENT_TRACKED_FIELDS}
    )
    if changes:
        await history_service.log_change(
            db,
            action=HistoryActions.UPDATE,
            entity_type=HistoryEntities.CLIENT,
            user_id=manager.id,
            entity_id=client.id,
            entity_name=client.name,
            changes=changes,
            ip_address=ip_address,
            user_agent=user_agent,
        )

    await db.commit()
    await db.refresh(client)
    return client


async def deactivate_client(
    db: AsyncSession,
    manager: User,
    client: Client,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> Client:
    """Soft delete: the client and its login are deactivated, campaigns stay."""
    client.is_active = False
    if client.user_id:
        login = await db.get(User, client.user_id)
        if login is not None:
            login.is_active = False

    await history_service.log_change(
        db,
        action=HistoryActions.DELETE,
        entity_type=HistoryEntities.CLIENT,
        user_id=manager.id,
        entity_id=client.id,
        entity_name=client.name,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    await db.commit()

    logger.info("client_deactivated", client_id=client.id, manager_id=manager.id)
    return client


async def get_client_stats(db: AsyncSession, client: Client, days: int = 30) -> dict[str, Any]:
    """Aggregate performance of the client's campaigns over the last days."""
    since = date.today() - timedelta(days=days)

    totals = (
        await db.execute(
            select(
                func.coalesce(func.sum(CampaignMetric.impressions), 0),
                func.coalesce(func.sum(CampaignMetric.clicks), 0),
                func.coalesce(func.sum(CampaignMetric.cost), 0.0),
                func.coalesce(func.sum(CampaignMetric.conversions), 0.0),
                func.coalesce(func.sum(CampaignMetric.conversion_value), 0.0),
            )
            .join(Campaign, Campaign.id == CampaignMetric.campaign_id)
            .where(Campaign.client_id == client.id, CampaignMetric.date >= since)
        )
    ).one()
    impressions, clicks, cost, conversions, conversion_value = totals

    status_counts = await db.execute(
        select(Campaign.status, func.count(Campaign.id))
        .where(Campaign.client_id == client.id)
        .group_by(Campaign.status)
    )
    by_status = {status: count for status, count in status_counts.all()}

    unread_alerts = (
        await db.execute(
            select(func.count(Alert.id))
            .join(Campaign, Campaign.id == Alert.campaign_id)
            .where(Campaign.client_id == client.id, Alert.is_read.is_(False))
        )
    ).scalar() or 0

    derived = CampaignMetric.calculate_derived_metrics(
        int(impressions), int(clicks), float(cost), float(conversions), float(conversion_value)
    )

    return {
        "client_id": client.id,
        "period_days": days,
        "campaigns": {
            "total": sum(by_status.values()),
            "active": by_status.get("ENABLED", 0),
            "by_status": by_status,
        },
        "metrics": {
            "impressions": int(impressions),
            "clicks": int(clicks),
            "cost": round(float(cost), 2),
            "conversions": round(float(conversions), 2),
            "conversion_value": round(float(conversion_value), 2),
            **derived,
        },
        "unread_alerts": unread_alerts,
    }


def serialize_client(client: Client, campaigns_count: Optional[int] = None) -> dict[str, Any]:
    data = {
        "id": client.id,
        "manager_id": client.manager_id,
        "user_id": client.user_id,
        "name": client.name,
        "email": client.email,
        "phone": client.phone,
        "company": client.company,
        "google_ads_customer_id": client.google_ads_customer_id,
        "google_ads_connected": client.has_google_ads,
        "is_active": client.is_active,
        "created_at": client.created_at.isoformat() if client.created_at else None,
        "updated_at": client.updated_at.isoformat() if client.updated_at else None,
    }
    if campaigns_count is not None:
        data["campaigns_count"] = campaigns_count
    return data
