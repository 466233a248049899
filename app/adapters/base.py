"""
Base Ad Platform Adapter

Abstract base class defining the read interface AdsOptimizer needs from an
ad platform: accounts, Performance Max campaigns, metrics and the asset,
listing group and search term breakdowns.

Design principles:
- Async-first for non-blocking operations
- Platform errors converted to a small AdapterError hierarchy
- Monetary values in account currency units (not micros)
"""

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any, Optional

import structlog

logger = structlog.get_logger()


# =============================================================================
# Data Types
# =============================================================================

@dataclass
class AdAccountInfo:
    """Platform ad account information."""
    account_id: str
    account_name: str
    currency: str
    timezone: str
    status: str
    is_manager: bool = False


@dataclass
class CampaignInfo:
    """Performance Max campaign settings."""
    campaign_id: str
    name: str
    status: str
    bidding_strategy: Optional[str] = None
    budget_daily: Optional[float] = None
    target_roas: Optional[float] = None
    target_cpa: Optional[float] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None


@dataclass
class MetricsRow:
    """Performance counters for a campaign, optionally for a single day."""
    campaign_id: str
    date: Optional[date] = None
    impressions: int = 0
    clicks: int = 0
    cost: float = 0.0
    conversions: float = 0.0
    conversion_value: float = 0.0

    @property
    def ctr(self) -> float:
        """Click-through rate (%)."""
        return (self.clicks / self.impressions * 100) if self.impressions > 0 else 0.0

    @property
    def cpc(self) -> float:
        """Cost per click."""
        return self.cost / self.clicks if self.clicks > 0 else 0.0

    @property
    def cpa(self) -> float:
        """Cost per acquisition."""
        return self.cost / self.conversions if self.conversions > 0 else 0.0

    @property
    def roas(self) -> float:
        """Return on ad spend."""
        return self.conversion_value / self.cost if self.cost > 0 else 0.0

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["date"] = self.date.isoformat() if self.date else None
        data.update(ctr=self.ctr, cpc=self.cpc, cpa=self.cpa, roas=self.roas)
        return data


@dataclass
class ImpressionShareMetrics:
    """Impression share breakdown, as fractions between 0 and 1."""
    campaign_id: str
    search_impression_share: Optional[float] = None
    search_budget_lost_impression_share: Optional[float] = None
    search_rank_lost_impression_share: Optional[float] = None
    top_impression_percentage: Optional[float] = None
    absolute_top_impression_percentage: Optional[float] = None
    content_impression_share: Optional[float] = None
    content_budget_lost_impression_share: Optional[float] = None
    content_rank_lost_impression_share: Optional[float] = None


@dataclass
class AssetGroupInfo:
    """Asset group of a Performance Max campaign."""
    asset_group_id: str
    campaign_id: str
    name: str
    status: str
    final_urls: list[str] = field(default_factory=list)
    path1: Optional[str] = None
    path2: Optional[str] = None
    ad_strength: Optional[str] = None
    metrics: Optional[MetricsRow] = None


@dataclass
class AssetInfo:
    """Single asset linked to an asset group."""
    asset_id: str
    asset_group_id: str
    field_type: str  # HEADLINE, LONG_HEADLINE, DESCRIPTION, MARKETING_IMAGE...
    status: str
    performance_label: Optional[str] = None
    text: Optional[str] = None
    image_url: Optional[str] = None
    youtube_video_id: Optional[str] = None


@dataclass
class ListingGroupInfo:
    """Listing group filter (product partition) of an asset group."""
    listing_group_id: str
    asset_group_id: str
    type: str
    dimension: Optional[str] = None
    value: Optional[str] = None
    parent_id: Optional[str] = None


@dataclass
class SearchTermInfo:
    """Search query that triggered the campaign's ads."""
    search_term: str
    status: Optional[str]
    impressions: int = 0
    clicks: int = 0
    cost: float = 0.0
    conversions: float = 0.0
    conversion_value: float = 0.0


# =============================================================================
# Error Types
# =============================================================================

class AdapterError(Exception):
    """Base exception for adapter errors."""
    def __init__(self, message: str, platform: str, details: dict = None):
        self.message = message
        self.platform = platform
        self.details = details or {}
        super().__init__(message)


class AuthenticationError(AdapterError):
    """OAuth token is invalid or expired."""
    pass


class RateLimitError(AdapterError):
    """Platform rate limit exceeded."""
    def __init__(self, message: str, platform: str, retry_after: int = 60):
        super().__init__(message, platform)
        self.retry_after = retry_after


class ValidationError(AdapterError):
    """Request validation failed."""
    pass


class PlatformError(AdapterError):
    """Platform-specific error."""
    pass


class NotConfiguredError(AdapterError):
    """Platform credentials are missing from the settings."""
    pass


# =============================================================================
# Base Adapter
# =============================================================================

class BaseAdPlatformAdapter(ABC):
    """
    Abstract base class for ad platform adapters.

    Every call takes the customer's OAuth refresh token and account id, the
    adapter itself holds no per-customer state.
    """

    def __init__(self, platform: str):
        self.platform = platform
        self.logger = logger.bind(platform=platform)

    # =========================================================================
    # Authentication
    # =========================================================================

    @abstractmethod
    async def validate_credentials(self, refresh_token: str) -> bool:
        """
        Validate that credentials are still valid.

        Returns:
            True if the platform accepted the token
        """
        pass

    # =========================================================================
    # Account Operations
    # =========================================================================

    @abstractmethod
    async def list_accounts(self, refresh_token: str) -> list[AdAccountInfo]:
        """List all ad accounts the token can access."""
        pass

    # =========================================================================
    # Campaign Operations
    # =========================================================================

    @abstractmethod
    async def list_pmax_campaigns(
        self, refresh_token: str, account_id: str
    ) -> list[CampaignInfo]:
        """List the account's Performance Max campaigns."""
        pass

    @abstractmethod
    async def list_asset_groups(
        self,
        refresh_token: str,
        account_id: str,
        campaign_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> list[AssetGroupInfo]:
        """List a campaign's asset groups, with metrics when a range is given."""
        pass

    @abstractmethod
    async def list_asset_group_assets(
        self, refresh_token: str, account_id: str, asset_group_id: str
    ) -> list[AssetInfo]:
        """List the assets linked to an asset group."""
        pass

    @abstractmethod
    async def list_listing_groups(
        self, refresh_token: str, account_id: str, asset_group_id: str
    ) -> list[ListingGroupInfo]:
        """List the listing group filters of an asset group."""
        pass

    @abstractmethod
    async def list_search_terms(
        self,
        refresh_token: str,
        account_id: str,
        campaign_id: str,
        start_date: date,
        end_date: date,
        limit: int = 100,
    ) -> list[SearchTermInfo]:
        """Search terms of a campaign ordered by clicks."""
        pass

    # =========================================================================
    # Metrics Operations
    # =========================================================================

    @abstractmethod
    async def get_campaign_metrics(
        self,
        refresh_token: str,
        account_id: str,
        campaign_id: str,
        start_date: date,
        end_date: date,
    ) -> MetricsRow:
        """Aggregated metrics of a campaign over a date range."""
        pass

    @abstractmethod
    async def get_daily_metrics(
        self,
        refresh_token: str,
        account_id: str,
        campaign_id: str,
        start_date: date,
        end_date: date,
    ) -> list[MetricsRow]:
        """Metrics of a campaign segmented by day."""
        pass

    @abstractmethod
    async def get_impression_share(
        self,
        refresh_token: str,
        account_id: str,
        campaign_id: str,
        start_date: date,
        end_date: date,
    ) -> ImpressionShareMetrics:
        """Impression share and lost impression share of a campaign."""
        pass

    # =========================================================================
    # Utility Methods
    # =========================================================================

    def _log_operation(self, operation: str, **kwargs):
        """Log an adapter operation."""
        self.logger.info(f"adapter_{operation}", **kwargs)

    def _log_error(self, operation: str, error: Exception, **kwargs):
        """Log an adapter error."""
        self.logger.error(
            f"adapter_{operation}_error",
            error=str(error),
            error_type=type(error).__name__,
            **kwargs,
        )
