"""
SQLAlchemy Models

All database models are imported here for easy access and Alembic discovery.
"""

from app.models.user import User, Client, USER_ROLES
from app.models.campaign import (
    Campaign,
    AssetGroup,
    CAMPAIGN_STATUSES,
    CAMPAIGN_TRACKED_FIELDS,
)
from app.models.metrics import CampaignMetric, SearchTerm, ListingGroup
from app.models.alert import (
    Alert,
    AlertTypes,
    AlertPriority,
    AlertStatus,
    ALERT_TYPE_LABELS,
    PRIORITY_RANK,
)
from app.models.recommendation import (
    Recommendation,
    RECOMMENDATION_STATUS_TRANSITIONS,
)
from app.models.chat import (
    ChatConversation,
    ChatMessage,
    MESSAGE_TYPES,
    USER_MESSAGE_TYPES,
)
from app.models.history import (
    ChangeHistory,
    HistoryActions,
    HistoryEntities,
    ChangeTypes,
    FIELD_LABELS,
)

__all__ = [
    "User",
    "Client",
    "USER_ROLES",
    "Campaign",
    "AssetGroup",
    "CAMPAIGN_STATUSES",
    "CAMPAIGN_TRACKED_FIELDS",
    "CampaignMetric",
    "SearchTerm",
    "ListingGroup",
    "Alert",
    "AlertTypes",
    "AlertPriority",
    "AlertStatus",
    "ALERT_TYPE_LABELS",
    "PRIORITY_RANK",
    "Recommendation",
    "RECOMMENDATION_STATUS_TRANSITIONS",
    "ChatConversation",
    "ChatMessage",
    "MESSAGE_TYPES",
    "USER_MESSAGE_TYPES",
    "ChangeHistory",
    "HistoryActions",
    "HistoryEntities",
    "ChangeTypes",
    "FIELD_LABELS",
]
