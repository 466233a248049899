"""
Ad Platform Adapters

Each adapter implements the BaseAdPlatformAdapter interface.
"""

from app.adapters.base import (
    AdAccountInfo,
    AdapterError,
    AssetGroupInfo,
    AssetInfo,
    AuthenticationError,
    BaseAdPlatformAdapter,
    CampaignInfo,
    ImpressionShareMetrics,
    ListingGroupInfo,
    MetricsRow,
    NotConfiguredError,
    PlatformError,
    RateLimitError,
    SearchTermInfo,
    ValidationError,
)
from app.adapters.google_ads import GoogleAdsAdapter, google_ads_adapter


def get_adapter() -> BaseAdPlatformAdapter:
    """Adapter used for campaign data (Google Ads)."""
    return google_ads_adapter


__all__ = [
    "get_adapter",
    # Base types
    "BaseAdPlatformAdapter",
    "AdAccountInfo",
    "AssetGroupInfo",
    "AssetInfo",
    "CampaignInfo",
    "ImpressionShareMetrics",
    "ListingGroupInfo",
    "MetricsRow",
    "SearchTermInfo",
    # Errors
    "AdapterError",
    "AuthenticationError",
    "NotConfiguredError",
    "PlatformError",
    "RateLimitError",
    "ValidationError",
    # Adapters
    "GoogleAdsAdapter",
]
