"""
Change history model.

Append-only audit trail of what managers and clients changed in campaigns,
budgets, targets and recommendations. Rows are never updated or deleted by
the application.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from sqlalchemy import DateTime, ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base, JSONType


class HistoryActions:
    """Constants for change history actions."""

    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    STATUS_CHANGE = "STATUS_CHANGE"
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    SYNC = "SYNC"

    ALL = (CREATE, UPDATE, DELETE, STATUS_CHANGE, APPROVE, REJECT, SYNC)


class HistoryEntities:
    """Constants for the kind of entity a history row refers to."""

    CAMPAIGN = "CAMPAIGN"
    ASSET_GROUP = "ASSET_GROUP"
    BUDGET = "BUDGET"
    TARGET = "TARGET"
    RECOMMENDATION = "RECOMMENDATION"
    USER = "USER"
    CLIENT = "CLIENT"
    ALERT = "ALERT"

    ALL = (CAMPAIGN, ASSET_GROUP, BUDGET, TARGET, RECOMMENDATION, USER, CLIENT, ALERT)


class ChangeTypes:
    """Business classification of a change."""

    BUDGET_CHANGE = "BUDGET_CHANGE"
    TARGET_ROAS_CHANGE = "TARGET_ROAS_CHANGE"
    TARGET_CPA_CHANGE = "TARGET_CPA_CHANGE"
    STATUS_CHANGE = "STATUS_CHANGE"
    ASSET_ADDED = "ASSET_ADDED"
    ASSET_REMOVED = "ASSET_REMOVED"
    ASSET_MODIFIED = "ASSET_MODIFIED"
    ASSET_GROUP_CREATED = "ASSET_GROUP_CREATED"
    ASSET_GROUP_MODIFIED = "ASSET_GROUP_MODIFIED"
    BIDDING_STRATEGY_CHANGE = "BIDDING_STRATEGY_CHANGE"
    AUDIENCE_CHANGE = "AUDIENCE_CHANGE"
    OTHER = "OTHER"

    ALL = (
        BUDGET_CHANGE,
        TARGET_ROAS_CHANGE,
        TARGET_CPA_CHANGE,
        STATUS_CHANGE,
        ASSET_ADDED,
        ASSET_REMOVED,
        ASSET_MODIFIED,
        ASSET_GROUP_CREATED,
        ASSET_GROUP_MODIFIED,
        BIDDING_STRATEGY_CHANGE,
        AUDIENCE_CHANGE,
        OTHER,
    )


# Human readable labels for tracked fields
FIELD_LABELS = {
    "name": "Nome",
    "status": "Status",
    "budget_daily": "Orçamento diário",
    "budget_total": "Orçamento total",
    "target_roas": "ROAS alvo",
    "target_cpa": "CPA alvo",
    "bidding_strategy": "Estratégia de lance",
    "start_date": "Data de início",
    "end_date": "Data de término",
    "final_url": "URL final",
    "headlines": "Títulos",
    "descriptions": "Descrições",
    "images": "Imagens",
    "email": "E-mail",
    "phone": "Telefone",
    "company": "Empresa",
    "is_active": "Ativo",
}

ACTION_LABELS = {
    HistoryActions.CREATE: "criou",
    HistoryActions.UPDATE: "atualizou",
    HistoryActions.DELETE: "removeu",
    HistoryActions.STATUS_CHANGE: "alterou o status de",
    HistoryActions.APPROVE: "aplicou",
    HistoryActions.REJECT: "rejeitou",
    HistoryActions.SYNC: "sincronizou",
}

ENTITY_LABELS = {
    HistoryEntities.CAMPAIGN: "campanha",
    HistoryEntities.ASSET_GROUP: "grupo de recursos",
    HistoryEntities.BUDGET: "orçamento",
    HistoryEntities.TARGET: "meta",
    HistoryEntities.RECOMMENDATION: "recomendação",
    HistoryEntities.USER: "usuário",
    HistoryEntities.CLIENT: "cliente",
    HistoryEntities.ALERT: "alerta",
}


class ChangeHistory(Base):
    """
    Change history entry.

    Keeps the field level diff in `changes` and a readable sentence in
    `description`.
    """

    __tablename__ = "change_history"

    id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
    )

    # Context
    campaign_id: Mapped[Optional[str]] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("campaigns.id", ondelete="SET NULL"),
        nullable=True,
    )
    user_id: Mapped[Optional[str]] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Action details
    action: Mapped[str] = mapped_column(String(20), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(30), nullable=False)
    entity_id: Mapped[Optional[str]] = mapped_column(String(50))
    entity_name: Mapped[Optional[str]] = mapped_column(String(255))
    change_type: Mapped[str] = mapped_column(
        String(30), default=ChangeTypes.OTHER, nullable=False
    )

    # Change tracking
    field: Mapped[Optional[str]] = mapped_column(String(50))
    old_value: Mapped[Optional[str]] = mapped_column(Text)
    new_value: Mapped[Optional[str]] = mapped_column(Text)
    changes: Mapped[list] = mapped_column(JSONType, default=list)
    description: Mapped[Optional[str]] = mapped_column(Text)
    extra_data: Mapped[dict] = mapped_column(JSONType, default=dict)

    # Request context
    ip_address: Mapped[Optional[str]] = mapped_column(String(45))
    user_agent: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_change_history_campaign_id", "campaign_id"),
        Index("ix_change_history_user_id", "user_id"),
        Index("ix_change_history_entity", "entity_type", "entity_id"),
        Index("ix_change_history_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<ChangeHistory {self.action} {self.entity_type} by {self.user_id}>"
