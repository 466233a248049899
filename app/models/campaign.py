"""
Campaign and asset group models.

A Campaign mirrors a Google Ads Performance Max campaign by its external id.
Asset groups hold the creative bundles the campaign serves.
"""

from datetime import date, datetime, timezone
from typing import Optional
from uuid import uuid4

from sqlalchemy import (
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base, JSONType


CAMPAIGN_STATUSES = ("ENABLED", "PAUSED", "REMOVED")

# Fields whose changes are written to the change history
CAMPAIGN_TRACKED_FIELDS = (
    "name",
    "status",
    "budget_daily",
    "budget_total",
    "target_roas",
    "target_cpa",
    "bidding_strategy",
    "start_date",
    "end_date",
    "final_url",
)


class Campaign(Base):
    """
    Performance Max campaign owned by a client.

    Metrics, asset groups, alerts and recommendations are deleted with it.
    """

    __tablename__ = "campaigns"

    # Primary key
    id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
    )

    # Ownership
    client_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=False,
    )
    created_by_id: Mapped[Optional[str]] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Google Ads reference
    google_campaign_id: Mapped[str] = mapped_column(
        String(50), unique=True, nullable=False
    )

    # Campaign details
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="ENABLED", nullable=False)

    # Budget and bidding
    budget_daily: Mapped[Optional[float]] = mapped_column(Numeric(12, 2, asdecimal=False))
    budget_total: Mapped[Optional[float]] = mapped_column(Numeric(12, 2, asdecimal=False))
    target_roas: Mapped[Optional[float]] = mapped_column(Numeric(8, 2, asdecimal=False))
    target_cpa: Mapped[Optional[float]] = mapped_column(Numeric(12, 2, asdecimal=False))
    bidding_strategy: Mapped[Optional[str]] = mapped_column(String(50))

    # Schedule
    start_date: Mapped[Optional[date]] = mapped_column(Date)
    end_date: Mapped[Optional[date]] = mapped_column(Date)
    final_url: Mapped[Optional[str]] = mapped_column(String(2000))

    last_sync_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    client: Mapped["Client"] = relationship("Client", back_populates="campaigns")
    metrics: Mapped[list["CampaignMetric"]] = relationship(
        "CampaignMetric", back_populates="campaign", cascade="all, delete-orphan"
    )
    asset_groups: Mapped[list["AssetGroup"]] = relationship(
        "AssetGroup", back_populates="campaign", cascade="all, delete-orphan"
    )
    search_terms: Mapped[list["SearchTerm"]] = relationship(
        "SearchTerm", back_populates="campaign", cascade="all, delete-orphan"
    )
    listing_groups: Mapped[list["ListingGroup"]] = relationship(
        "ListingGroup", back_populates="campaign", cascade="all, delete-orphan"
    )
    alerts: Mapped[list["Alert"]] = relationship(
        "Alert", back_populates="campaign", cascade="all, delete-orphan"
    )
    recommendations: Mapped[list["Recommendation"]] = relationship(
        "Recommendation", back_populates="campaign", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_campaigns_client_id", "client_id"),
        Index("ix_campaigns_status", "status"),
    )

    def __repr__(self) -> str:
        return f"<Campaign {self.name} ({self.google_campaign_id})>"

    @property
    def monthly_budget(self) -> float:
        """Daily budget projected over an average month."""
        return float(self.budget_daily or 0) * 30.4


class AssetGroup(Base):
    """
    Creative bundle of a Performance Max campaign.

    Text and media assets are kept as JSON lists.
    """

    __tablename__ = "asset_groups"

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
    google_asset_group_id: Mapped[Optional[str]] = mapped_column(String(50))

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="ENABLED", nullable=False)
    final_url: Mapped[Optional[str]] = mapped_column(String(2000))
    path1: Mapped[Optional[str]] = mapped_column(String(15))
    path2: Mapped[Optional[str]] = mapped_column(String(15))

    # Assets
    headlines: Mapped[list] = mapped_column(JSONType, default=list)
    long_headlines: Mapped[list] = mapped_column(JSONType, default=list)
    descriptions: Mapped[list] = mapped_column(JSONType, default=list)
    images: Mapped[list] = mapped_column(JSONType, default=list)
    logos: Mapped[list] = mapped_column(JSONType, default=list)
    videos: Mapped[list] = mapped_column(JSONType, default=list)
    ad_strength: Mapped[Optional[str]] = mapped_column(String(20))
    notes: Mapped[Optional[str]] = mapped_column(Text)

    # Aggregated performance
    impressions: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    clicks: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    cost: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    conversions: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    conversion_value: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    campaign: Mapped["Campaign"] = relationship("Campaign", back_populates="asset_groups")

    __table_args__ = (
        Index("ix_asset_groups_campaign_id", "campaign_id"),
    )

    def __repr__(self) -> str:
        return f"<AssetGroup {self.name} ({self.id})>"
