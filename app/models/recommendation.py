"""
AI recommendation model.

Recommendations come out of the campaign diagnosis and follow a single
decision: PENDING is either applied or rejected.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base, JSONType


RECOMMENDATION_STATUS_TRANSITIONS = {
    "PENDING": ["APPLIED", "REJECTED"],
    "APPLIED": [],
    "REJECTED": [],
}


class Recommendation(Base):
    """Optimization suggestion for a campaign."""

    __tablename__ = "recommendations"

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

    type: Mapped[str] = mapped_column(String(50), default="OPTIMIZATION", nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(50))
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    priority: Mapped[int] = mapped_column(Integer, default=3, nullable=False)  # 1 = highest
    impact_score: Mapped[Optional[int]] = mapped_column(Integer)  # 1-10
    data: Mapped[dict] = mapped_column(JSONType, default=dict)

    # Lifecycle
    status: Mapped[str] = mapped_column(String(15), default="PENDING", nullable=False)
    applied_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    applied_by_id: Mapped[Optional[str]] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    rejected_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    rejected_reason: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    campaign: Mapped["Campaign"] = relationship("Campaign", back_populates="recommendations")

    __table_args__ = (
        Index("ix_recommendations_campaign_status", "campaign_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<Recommendation {self.title!r} ({self.status})>"

    def can_transition_to(self, new_status: str) -> bool:
        """Check if the recommendation can move to the given status."""
        return new_status in RECOMMENDATION_STATUS_TRANSITIONS.get(self.status, [])
