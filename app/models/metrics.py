"""
Campaign performance models.

One CampaignMetric row per campaign per day, plus the search term and
listing group breakdowns pulled from Google Ads (or simulated when the
campaign has no linked account).
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
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base


class CampaignMetric(Base):
    """
    Daily metrics for a campaign.

    Raw counters come from the platform; CTR, CPC, CPA and ROAS are derived
    on write through calculate_derived_metrics.
    """

    __tablename__ = "campaign_metrics"

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
    date: Mapped[date] = mapped_column(Date, nullable=False)

    # Performance metrics
    impressions: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    clicks: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    cost: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    conversions: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    conversion_value: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)

    # Derived metrics
    ctr: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    cpc: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    cpa: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    roas: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)

    # Impression share (fractions 0-1, as reported by Google Ads)
    search_impression_share: Mapped[Optional[float]] = mapped_column(Float)
    search_budget_lost_is: Mapped[Optional[float]] = mapped_column(Float)
    search_rank_lost_is: Mapped[Optional[float]] = mapped_column(Float)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    campaign: Mapped["Campaign"] = relationship("Campaign", back_populates="metrics")

    __table_args__ = (
        UniqueConstraint("campaign_id", "date", name="uq_campaign_metrics_campaign_date"),
        Index("ix_campaign_metrics_date", "date"),
    )

    def __repr__(self) -> str:
        return f"<CampaignMetric campaign={self.campaign_id} date={self.date}>"

    @classmethod
    def calculate_derived_metrics(
        cls,
        impressions: int,
        clicks: int,
        cost: float,
        conversions: float,
        conversion_value: float,
    ) -> dict:
        """Calculate derived metrics from raw values."""
        ctr = (clicks / impressions * 100) if impressions > 0 else 0.0
        cpc = (cost / clicks) if clicks > 0 else 0.0
        cpa = (cost / conversions) if conversions > 0 else 0.0
        roas = (conversion_value / cost) if cost > 0 else 0.0

        return {
            "ctr": round(ctr, 4),
            "cpc": round(cpc, 4),
            "cpa": round(cpa, 2),
            "roas": round(roas, 4),
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "campaign_id": self.campaign_id,
            "date": self.date.isoformat(),
            "impressions": self.impressions,
            "clicks": self.clicks,
            "cost": self.cost,
            "conversions": self.conversions,
            "conversion_value": self.conversion_value,
            "ctr": self.ctr,
            "cpc": self.cpc,
            "cpa": self.cpa,
            "roas": self.roas,
            "search_impression_share": self.search_impression_share,
            "search_budget_lost_is": self.search_budget_lost_is,
            "search_rank_lost_is": self.search_rank_lost_is,
        }


class SearchTerm(Base):
    """Search query that triggered the campaign's ads on a given day."""

    __tablename__ = "search_terms"

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
    date: Mapped[date] = mapped_column(Date, nullable=False)
    search_term: Mapped[str] = mapped_column(String(500), nullable=False)
    match_type: Mapped[Optional[str]] = mapped_column(String(30))
    status: Mapped[Optional[str]] = mapped_column(String(30))

    impressions: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    clicks: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    cost: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    conversions: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    conversion_value: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    campaign: Mapped["Campaign"] = relationship("Campaign", back_populates="search_terms")

    __table_args__ = (
        Index("ix_search_terms_campaign_date", "campaign_id", "date"),
    )

    def __repr__(self) -> str:
        return f"<SearchTerm {self.search_term!r} campaign={self.campaign_id}>"


class ListingGroup(Base):
    """Product partition of a shopping-enabled asset group."""

    __tablename__ = "listing_groups"

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
    asset_group_id: Mapped[Optional[str]] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("asset_groups.id", ondelete="SET NULL"),
        nullable=True,
    )
    google_listing_group_id: Mapped[Optional[str]] = mapped_column(String(50))
    dimension: Mapped[Optional[str]] = mapped_column(String(50))  # brand, category, product_type...
    value: Mapped[Optional[str]] = mapped_column(String(255))
    parent_id: Mapped[Optional[str]] = mapped_column(String(50))

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

    campaign: Mapped["Campaign"] = relationship("Campaign", back_populates="listing_groups")

    __table_args__ = (
        Index("ix_listing_groups_campaign_id", "campaign_id"),
    )

    def __repr__(self) -> str:
        return f"<ListingGroup {self.dimension}={self.value} campaign={self.campaign_id}>"
