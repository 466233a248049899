"""
Alert model.

Alerts are produced by the daily rule evaluation over campaign metrics and
delivered to the manager by socket push, e-mail and chat.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base, JSONType


class AlertTypes:
    """Constants for alert types."""

    ROAS_DROP = "ROAS_DROP"
    CPA_INCREASE = "CPA_INCREASE"
    BUDGET_LOSS = "BUDGET_LOSS"
    RANKING_LOSS = "RANKING_LOSS"
    CTR_DECLINE = "CTR_DECLINE"
    BURN_RATE = "BURN_RATE"

    ALL = (ROAS_DROP, CPA_INCREASE, BUDGET_LOSS, RANKING_LOSS, CTR_DECLINE, BURN_RATE)


class AlertPriority:
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    ALL = (LOW, MEDIUM, HIGH, CRITICAL)


class AlertStatus:
    ACTIVE = "ACTIVE"
    ACKNOWLEDGED = "ACKNOWLEDGED"
    RESOLVED = "RESOLVED"
    DISMISSED = "DISMISSED"

    ALL = (ACTIVE, ACKNOWLEDGED, RESOLVED, DISMISSED)
    CLOSED = (RESOLVED, DISMISSED)


# Sort rank used when listing alerts (higher first)
PRIORITY_RANK = {
    AlertPriority.LOW: 1,
    AlertPriority.MEDIUM: 2,
    AlertPriority.HIGH: 3,
    AlertPriority.CRITICAL: 4,
}

ALERT_TYPE_LABELS = {
    AlertTypes.ROAS_DROP: "Queda de ROAS",
    AlertTypes.CPA_INCREASE: "CPA acima da meta",
    AlertTypes.BUDGET_LOSS: "Perda de impressões por orçamento",
    AlertTypes.RANKING_LOSS: "Perda de impressões por ranking",
    AlertTypes.CTR_DECLINE: "Queda contínua de CTR",
    AlertTypes.BURN_RATE: "Consumo acelerado de orçamento",
}


class Alert(Base):
    """
    Threshold alert raised for a campaign.

    Addressed to the manager of the campaign's client.
    """

    __tablename__ = "alerts"

    id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    campaign_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("campaigns.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    # Classification
    alert_type: Mapped[str] = mapped_column(String(30), nullable=False)
    priority: Mapped[str] = mapped_column(
        String(10), default=AlertPriority.MEDIUM, nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(15), default=AlertStatus.ACTIVE, nullable=False
    )

    # Content
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    metric_name: Mapped[Optional[str]] = mapped_column(String(50))
    current_value: Mapped[Optional[float]] = mapped_column(Float)
    threshold_value: Mapped[Optional[float]] = mapped_column(Float)
    previous_value: Mapped[Optional[float]] = mapped_column(Float)
    data: Mapped[dict] = mapped_column(JSONType, default=dict)

    # Delivery state
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    email_sent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    chat_sent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    campaign: Mapped["Campaign"] = relationship("Campaign", back_populates="alerts")

    __table_args__ = (
        Index("ix_alerts_user_status", "user_id", "status"),
        Index("ix_alerts_campaign_type", "campaign_id", "alert_type"),
        Index("ix_alerts_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Alert {self.alert_type} {self.priority} campaign={self.campaign_id}>"

    @property
    def is_closed(self) -> bool:
        return self.status in AlertStatus.CLOSED
