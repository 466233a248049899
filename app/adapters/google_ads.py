"""
Google Ads API Adapter

Implements the BaseAdPlatformAdapter interface for Google Ads Performance
Max campaigns. Uses the google-ads Python library and GAQL queries.

API Documentation: https://developers.google.com/google-ads/api/docs/start
"""

import asyncio
from datetime import date
from typing import Any, Optional

import structlog
from google.ads.googleads.client import GoogleAdsClient
from google.ads.googleads.errors import GoogleAdsException

from app.adapters.base import (
    AdAccountInfo,
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
from app.config import settings

logger = structlog.get_logger()

MICROS = 1_000_000


def micros_to_units(value: Optional[int]) -> Optional[float]:
    if not value:
        return None
    return value / MICROS


def normalize_customer_id(customer_id: str) -> str:
    """Google Ads expects customer ids without dashes."""
    return str(customer_id).replace("-", "").strip()


class GoogleAdsAdapter(BaseAdPlatformAdapter):
    """
    Google Ads API adapter.

    Read-only access to Performance Max campaigns, their asset groups,
    listing groups, search terms and metrics.
    """

    def __init__(self):
        super().__init__(platform="google")
        self.developer_token = settings.google_ads_developer_token

    def _create_client(self, refresh_token: str) -> GoogleAdsClient:
        """
        Create a Google Ads client with the provided credentials.

        Args:
            refresh_token: OAuth refresh token

        Returns:
            Configured GoogleAdsClient
        """
        if not settings.google_ads_configured:
            raise NotConfiguredError(
                message="Google Ads API credentials are not configured",
                platform="google",
            )

        credentials = {
            "developer_token": self.developer_token,
            "client_id": settings.google_ads_client_id,
            "client_secret": settings.google_ads_client_secret,
            "refresh_token": refresh_token,
            "use_proto_plus": True,
        }
        if settings.google_ads_login_customer_id:
            credentials["login_customer_id"] = normalize_customer_id(
                settings.google_ads_login_customer_id
            )

        return GoogleAdsClient.load_from_dict(credentials)

    def _handle_google_error(self, error: GoogleAdsException, operation: str):
        """
        Convert Google Ads errors to adapter errors.

        Raises:
            Appropriate adapter error
        """
        self._log_error(operation, error)

        for error_detail in error.failure.errors:
            error_code = error_detail.error_code

            if "authentication_error" in error_code or "authorization_error" in error_code:
                raise AuthenticationError(
                    message="Google Ads authentication failed",
                    platform="google",
                    details={"error": str(error_detail.message)},
                )

            if "quota_error" in error_code:
                raise RateLimitError(
                    message="Google Ads rate limit exceeded",
                    platform="google",
                    retry_after=60,
                )

            if "request_error" in error_code or "query_error" in error_code:
                raise ValidationError(
                    message=f"Invalid request: {error_detail.message}",
                    platform="google",
                )

        raise PlatformError(
            message=f"Google Ads error: {error.failure.errors[0].message}",
            platform="google",
            details={"request_id": error.request_id},
        )

    async def _search(
        self, refresh_token: str, customer_id: str, query: str, operation: str
    ) -> list[Any]:
        """Run a GAQL query off the event loop and return all rows."""
        client = self._create_client(refresh_token)
        ga_service = client.get_service("GoogleAdsService")
        customer_id = normalize_customer_id(customer_id)

        def run() -> list[Any]:
            return list(ga_service.search(customer_id=customer_id, query=query))

        try:
            return await asyncio.to_thread(run)
        except GoogleAdsException as e:
            self._handle_google_error(e, operation)

    # =========================================================================
    # Authentication
    # =========================================================================

    async def validate_credentials(self, refresh_token: str) -> bool:
        """Validate credentials by listing the accessible customers."""
        try:
            client = self._create_client(refresh_token)
            customer_service = client.get_service("CustomerService")
            await asyncio.to_thread(customer_service.list_accessible_customers)
            return True
        except GoogleAdsException as e:
            self._log_error("validate_credentials", e)
            return False

    # =========================================================================
    # Account Operations
    # =========================================================================

    async def list_accounts(self, refresh_token: str) -> list[AdAccountInfo]:
        """List all accessible Google Ads accounts."""
        self._log_operation("list_accounts")

        client = self._create_client(refresh_token)
        customer_service = client.get_service("CustomerService")
        try:
            response = await asyncio.to_thread(customer_service.list_accessible_customers)
        except GoogleAdsException as e:
            self._handle_google_error(e, "list_accounts")

        accounts = []
        for resource_name in response.resource_names:
            customer_id = resource_name.split("/")[-1]
            query = f"""
                SELECT
                    customer.id,
                    customer.descriptive_name,
                    customer.currency_code,
                    customer.time_zone,
                    customer.status,
                    customer.manager
                FROM customer
                WHERE customer.id = {customer_id}
            """
            try:
                rows = await self._search(refresh_token, customer_id, query, "get_account")
            except (AuthenticationError, PlatformError, ValidationError) as e:
                self.logger.warning(
                    "failed_to_get_account_details",
                    customer_id=customer_id,
                    error=e.message,
                )
                continue

            for row in rows:
                customer = row.customer
                accounts.append(
                    AdAccountInfo(
                        account_id=str(customer.id),
                        account_name=customer.descriptive_name or f"Account {customer.id}",
                        currency=customer.currency_code,
                        timezone=customer.time_zone,
                        status=customer.status.name,
                        is_manager=bool(customer.manager),
                    )
                )

        return accounts

    # =========================================================================
    # Campaign Operations
    # =========================================================================

    async def list_pmax_campaigns(
        self, refresh_token: str, account_id: str
    ) -> list[CampaignInfo]:
        """List Performance Max campaigns of an account."""
        self._log_operation("list_pmax_campaigns", account_id=account_id)

        query = """
            SELECT
                campaign.id,
                campaign.name,
                campaign.status,
                campaign.bidding_strategy_type,
                campaign.start_date,
                campaign.end_date,
                campaign.maximize_conversion_value.target_roas,
                campaign.maximize_conversions.target_cpa_micros,
                campaign_budget.amount_micros
            FROM campaign
            WHERE campaign.advertising_channel_type = 'PERFORMANCE_MAX'
            AND campaign.status != 'REMOVED'
            ORDER BY campaign.name
        """
        rows = await self._search(refresh_token, account_id, query, "list_pmax_campaigns")

        campaigns = []
        for row in rows:
            campaign = row.campaign
            campaigns.append(
                CampaignInfo(
                    campaign_id=str(campaign.id),
                    name=campaign.name,
                    status=campaign.status.name,
                    bidding_strategy=campaign.bidding_strategy_type.name,
                    budget_daily=micros_to_units(row.campaign_budget.amount_micros),
                    target_roas=campaign.maximize_conversion_value.target_roas or None,
                    target_cpa=micros_to_units(
                        campaign.maximize_conversions.target_cpa_micros
                    ),
                    start_date=self._parse_google_date(campaign.start_date),
                    end_date=self._parse_google_date(campaign.end_date),
                )
            )
        return campaigns

    async def list_asset_groups(
        self,
        refresh_token: str,
        account_id: str,
        campaign_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> list[AssetGroupInfo]:
        """List the asset groups of a campaign."""
        self._log_operation("list_asset_groups", account_id=account_id, campaign_id=campaign_id)

        customer_id = normalize_customer_id(account_id)
        with_metrics = start_date is not None and end_date is not None
        metrics_fields = """,
                metrics.impressions,
                metrics.clicks,
                metrics.cost_micros,
                metrics.conversions,
                metrics.conversions_value""" if with_metrics else ""
        date_filter = (
            f"AND segments.date BETWEEN '{start_date}' AND '{end_date}'" if with_metrics else ""
        )

        query = f"""
            SELECT
                asset_group.id,
                asset_group.name,
                asset_group.status,
                asset_group.final_urls,
                asset_group.path1,
                asset_group.path2,
                asset_group.ad_strength{metrics_fields}
            FROM asset_group
            WHERE asset_group.campaign = 'customers/{customer_id}/campaigns/{campaign_id}'
            {date_filter}
        """
        rows = await self._search(refresh_token, account_id, query, "list_asset_groups")

        groups = []
        for row in rows:
            group = row.asset_group
            groups.append(
                AssetGroupInfo(
                    asset_group_id=str(group.id),
                    campaign_id=str(campaign_id),
                    name=group.name,
                    status=group.status.name,
                    final_urls=list(group.final_urls),
                    path1=group.path1 or None,
                    path2=group.path2 or None,
                    ad_strength=group.ad_strength.name,
                    metrics=self._metrics_from_row(campaign_id, row) if with_metrics else None,
                )
            )
        return groups

    async def list_asset_group_assets(
        self, refresh_token: str, account_id: str, asset_group_id: str
    ) -> list[AssetInfo]:
        """List the assets linked to an asset group."""
        self._log_operation(
            "list_asset_group_assets", account_id=account_id, asset_group_id=asset_group_id
        )

        customer_id = normalize_customer_id(account_id)
        query = f"""
            SELECT
                asset_group_asset.field_type,
                asset_group_asset.status,
                asset_group_asset.performance_label,
                asset.id,
                asset.type,
                asset.text_asset.text,
                asset.image_asset.full_size.url,
                asset.youtube_video_asset.youtube_video_id
            FROM asset_group_asset
            WHERE asset_group_asset.asset_group = 'customers/{customer_id}/assetGroups/{asset_group_id}'
        """
        rows = await self._search(refresh_token, account_id, query, "list_asset_group_assets")

        return [
            AssetInfo(
                asset_id=str(row.asset.id),
                asset_group_id=str(asset_group_id),
                field_type=row.asset_group_asset.field_type.name,
                status=row.asset_group_asset.status.name,
                performance_label=row.asset_group_asset.performance_label.name,
                text=row.asset.text_asset.text or None,
                image_url=row.asset.image_asset.full_size.url or None,
                youtube_video_id=row.asset.youtube_video_asset.youtube_video_id or None,
            )
            for row in rows
        ]

    async def list_listing_groups(
        self, refresh_token: str, account_id: str, asset_group_id: str
    ) -> list[ListingGroupInfo]:
        """List the listing group filters of an asset group."""
        self._log_operation(
            "list_listing_groups", account_id=account_id, asset_group_id=asset_group_id
        )

        customer_id = normalize_customer_id(account_id)
        query = f"""
            SELECT
                asset_group_listing_group_filter.id,
                asset_group_listing_group_filter.type,
                asset_group_listing_group_filter.case_value.product_brand.value,
                asset_group_listing_group_filter.case_value.product_type.value,
                asset_group_listing_group_filter.case_value.product_item_id.value,
                asset_group_listing_group_filter.parent_listing_group_filter
            FROM asset_group_listing_group_filter
            WHERE asset_group_listing_group_filter.asset_group = 'customers/{customer_id}/assetGroups/{asset_group_id}'
        """
        rows = await self._search(refresh_token, account_id, query, "list_listing_groups")

        groups = []
        for row in rows:
            listing = row.asset_group_listing_group_filter
            dimension, value = self._listing_dimension(listing.case_value)
            parent = listing.parent_listing_group_filter
            groups.append(
                ListingGroupInfo(
                    listing_group_id=str(listing.id),
                    asset_group_id=str(asset_group_id),
                    type=listing.type_.name,
                    dimension=dimension,
                    value=value,
                    parent_id=parent.split("~")[-1] if parent else None,
                )
            )
        return groups

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
        self._log_operation("list_search_terms", account_id=account_id, campaign_id=campaign_id)

        query = f"""
            SELECT
                search_term_view.search_term,
                search_term_view.status,
                metrics.impressions,
                metrics.clicks,
                metrics.cost_micros,
                metrics.conversions,
                metrics.conversions_value
            FROM search_term_view
            WHERE campaign.id = {campaign_id}
            AND segments.date BETWEEN '{start_date}' AND '{end_date}'
            ORDER BY metrics.clicks DESC
            LIMIT {int(limit)}
        """
        rows = await self._search(refresh_token, account_id, query, "list_search_terms")

        return [
            SearchTermInfo(
                search_term=row.search_term_view.search_term,
                status=row.search_term_view.status.name,
                impressions=row.metrics.impressions,
                clicks=row.metrics.clicks,
                cost=row.metrics.cost_micros / MICROS,
                conversions=row.metrics.conversions,
                conversion_value=row.metrics.conversions_value,
            )
            for row in rows
        ]

    # =========================================================================
    # Metrics Operations
    # =========================================================================

    async def get_campaign_metrics(
        self,
        refresh_token: str,
        account_id: str,
        campaign_id: str,
        start_date: date,
        end_date: date,
    ) -> MetricsRow:
        """Aggregated metrics of a campaign over a date range."""
        daily = await self.get_daily_metrics(
            refresh_token, account_id, campaign_id, start_date, end_date
        )
        total = MetricsRow(campaign_id=str(campaign_id))
        for row in daily:
            total.impressions += row.impressions
            total.clicks += row.clicks
            total.cost += row.cost
            total.conversions += row.conversions
            total.conversion_value += row.conversion_value
        return total

    async def get_daily_metrics(
        self,
        refresh_token: str,
        account_id: str,
        campaign_id: str,
        start_date: date,
        end_date: date,
    ) -> list[MetricsRow]:
        """Daily metrics of a campaign."""
        self._log_operation(
            "get_daily_metrics",
            account_id=account_id,
            campaign_id=campaign_id,
            start_date=str(start_date),
            end_date=str(end_date),
        )

        query = f"""
            SELECT
                segments.date,
                metrics.impressions,
                metrics.clicks,
                metrics.cost_micros,
                metrics.conversions,
                metrics.conversions_value
            FROM campaign
            WHERE campaign.id = {campaign_id}
            AND segments.date BETWEEN '{start_date}' AND '{end_date}'
            ORDER BY segments.date
        """
        rows = await self._search(refresh_token, account_id, query, "get_daily_metrics")

        return [
            self._metrics_from_row(campaign_id, row, day=date.fromisoformat(row.segments.date))
            for row in rows
        ]

    async def get_impression_share(
        self,
        refresh_token: str,
        account_id: str,
        campaign_id: str,
        start_date: date,
        end_date: date,
    ) -> ImpressionShareMetrics:
        """Impression share and lost impression share of a campaign."""
        self._log_operation("get_impression_share", account_id=account_id, campaign_id=campaign_id)

        query = f"""
            SELECT
                metrics.search_impression_share,
                metrics.search_budget_lost_impression_share,
                metrics.search_rank_lost_impression_share,
                metrics.top_impression_percentage,
                metrics.absolute_top_impression_percentage,
                metrics.content_impression_share,
                metrics.content_budget_lost_impression_share,
                metrics.content_rank_lost_impression_share
            FROM campaign
            WHERE campaign.id = {campaign_id}
            AND segments.date BETWEEN '{start_date}' AND '{end_date}'
        """
        rows = await self._search(refresh_token, account_id, query, "get_impression_share")

        if not rows:
            return ImpressionShareMetrics(campaign_id=str(campaign_id))

        m = rows[0].metrics
        return ImpressionShareMetrics(
            campaign_id=str(campaign_id),
            search_impression_share=m.search_impression_share or None,
            search_budget_lost_impression_share=m.search_budget_lost_impression_share or None,
            search_rank_lost_impression_share=m.search_rank_lost_impression_share or None,
            top_impression_percentage=m.top_impression_percentage or None,
            absolute_top_impression_percentage=m.absolute_top_impression_percentage or None,
            content_impression_share=m.content_impression_share or None,
            content_budget_lost_impression_share=m.content_budget_lost_impression_share or None,
            content_rank_lost_impression_share=m.content_rank_lost_impression_share or None,
        )

    # =========================================================================
    # Helper Methods
    # =========================================================================

    def _metrics_from_row(
        self, campaign_id: str, row: Any, day: Optional[date] = None
    ) -> MetricsRow:
        return MetricsRow(
            campaign_id=str(campaign_id),
            date=day,
            impressions=row.metrics.impressions,
            clicks=row.metrics.clicks,
            cost=row.metrics.cost_micros / MICROS,
            conversions=row.metrics.conversions,
            conversion_value=row.metrics.conversions_value,
        )

    def _listing_dimension(self, case_value: Any) -> tuple[Optional[str], Optional[str]]:
        """Return (dimension, value) of a listing group case value."""
        for dimension in ("product_brand", "product_type", "product_item_id"):
            value = getattr(case_value, dimension).value
            if value:
                return dimension, value
        return None, None

    def _parse_google_date(self, date_str: str) -> Optional[date]:
        """Parse a Google Ads date string (YYYY-MM-DD)."""
        if not date_str or date_str == "0000-00-00":
            return None
        try:
            return date.fromisoformat(date_str[:10])
        except ValueError:
            return None


google_ads_adapter = GoogleAdsAdapter()
