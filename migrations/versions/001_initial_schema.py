"""Initial schema

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19

Creates:
- users and clients
- campaigns and asset_groups
- campaign_metrics, search_terms and listing_groups
- alerts and recommendations
- chat_conversations and chat_messages
- change_history
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001_initial'
down_revision = None
branch_labels = None
depends_on = None


def _uuid(name: str, **kwargs) -> sa.Column:
    return sa.Column(name, postgresql.UUID(as_uuid=False), **kwargs)


def _timestamps(updated: bool = True) -> list[sa.Column]:
    columns = [sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now())]
    if updated:
        columns.append(
            sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now())
        )
    return columns


def _performance() -> list[sa.Column]:
    return [
        sa.Column('impressions', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('clicks', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('cost', sa.Float(), nullable=False, server_default='0'),
        sa.Column('conversions', sa.Float(), nullable=False, server_default='0'),
        sa.Column('conversion_value', sa.Float(), nullable=False, server_default='0'),
    ]


def upgrade() -> None:
    # Users
    op.create_table(
        'users',
        _uuid('id', nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('role', sa.String(20), nullable=False, server_default='manager'),
        sa.Column('avatar_url', sa.String(500), nullable=True),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('company', sa.String(255), nullable=True),
        _uuid('manager_id', nullable=True),
        sa.Column('google_ads_customer_id', sa.String(20), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['manager_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
    )
    op.create_index('ix_users_role', 'users', ['role'])
    op.create_index('ix_users_manager_id', 'users', ['manager_id'])

    # Clients
    op.create_table(
        'clients',
        _uuid('id', nullable=False),
        _uuid('manager_id', nullable=False),
        _uuid('user_id', nullable=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('company', sa.String(255), nullable=True),
        sa.Column('google_ads_customer_id', sa.String(20), nullable=True),
        sa.Column('google_ads_refresh_token', sa.LargeBinary(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['manager_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
    )
    op.create_index('ix_clients_manager_id', 'clients', ['manager_id'])
    op.create_index('ix_clients_user_id', 'clients', ['user_id'])

    # Campaigns
    op.create_table(
        'campaigns',
        _uuid('id', nullable=False),
        _uuid('client_id', nullable=False),
        _uuid('created_by_id', nullable=True),
        sa.Column('google_campaign_id', sa.String(50), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='ENABLED'),
        sa.Column('budget_daily', sa.Numeric(12, 2), nullable=True),
        sa.Column('budget_total', sa.Numeric(12, 2), nullable=True),
        sa.Column('target_roas', sa.Numeric(8, 2), nullable=True),
        sa.Column('target_cpa', sa.Numeric(12, 2), nullable=True),
        sa.Column('bidding_strategy', sa.String(50), nullable=True),
        sa.Column('start_date', sa.Date(), nullable=True),
        sa.Column('end_date', sa.Date(), nullable=True),
        sa.Column('final_url', sa.String(2000), nullable=True),
        sa.Column('last_sync_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['created_by_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('google_campaign_id'),
    )
    op.create_index('ix_campaigns_client_id', 'campaigns', ['client_id'])
    op.create_index('ix_campaigns_status', 'campaigns', ['status'])

    # Asset groups
    op.create_table(
        'asset_groups',
        _uuid('id', nullable=False),
        _uuid('campaign_id', nullable=False),
        sa.Column('google_asset_group_id', sa.String(50), nullable=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='ENABLED'),
        sa.Column('final_url', sa.String(2000), nullable=True),
        sa.Column('path1', sa.String(15), nullable=True),
        sa.Column('path2', sa.String(15), nullable=True),
        sa.Column('headlines', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('long_headlines', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('descriptions', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('images', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('logos', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('videos', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('ad_strength', sa.String(20), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_performance(),
        *_timestamps(),
        sa.ForeignKeyConstraint(['campaign_id'], ['campaigns.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_asset_groups_campaign_id', 'asset_groups', ['campaign_id'])

    # Daily campaign metrics
    op.create_table(
        'campaign_metrics',
        _uuid('id', nullable=False),
        _uuid('campaign_id', nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        *_performance(),
        sa.Column('ctr', sa.Float(), nullable=False, server_default='0'),
        sa.Column('cpc', sa.Float(), nullable=False, server_default='0'),
        sa.Column('cpa', sa.Float(), nullable=False, server_default='0'),
        sa.Column('roas', sa.Float(), nullable=False, server_default='0'),
        sa.Column('search_impression_share', sa.Float(), nullable=True),
        sa.Column('search_budget_lost_is', sa.Float(), nullable=True),
        sa.Column('search_rank_lost_is', sa.Float(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['campaign_id'], ['campaigns.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('campaign_id', 'date', name='uq_campaign_metrics_campaign_date'),
    )
    op.create_index('ix_campaign_metrics_date', 'campaign_metrics', ['date'])

    # Search terms
    op.create_table(
        'search_terms',
        _uuid('id', nullable=False),
        _uuid('campaign_id', nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('search_term', sa.String(500), nullable=False),
        sa.Column('match_type', sa.String(30), nullable=True),
        sa.Column('status', sa.String(30), nullable=True),
        *_performance(),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(['campaign_id'], ['campaigns.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_search_terms_campaign_date', 'search_terms', ['campaign_id', 'date'])

    # Listing groups
    op.create_table(
        'listing_groups',
        _uuid('id', nullable=False),
        _uuid('campaign_id', nullable=False),
        _uuid('asset_group_id', nullable=True),
        sa.Column('google_listing_group_id', sa.String(50), nullable=True),
        sa.Column('dimension', sa.String(50), nullable=True),
        sa.Column('value', sa.String(255), nullable=True),
        sa.Column('parent_id', sa.String(50), nullable=True),
        *_performance(),
        *_timestamps(),
        sa.ForeignKeyConstraint(['campaign_id'], ['campaigns.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['asset_group_id'], ['asset_groups.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_listing_groups_campaign_id', 'listing_groups', ['campaign_id'])

    # Alerts
    op.create_table(
        'alerts',
        _uuid('id', nullable=False),
        _uuid('campaign_id', nullable=False),
        _uuid('user_id', nullable=False),
        sa.Column('alert_type', sa.String(30), nullable=False),
        sa.Column('priority', sa.String(10), nullable=False, server_default='MEDIUM'),
        sa.Column('status', sa.String(15), nullable=False, server_default='ACTIVE'),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('metric_name', sa.String(50), nullable=True),
        sa.Column('current_value', sa.Float(), nullable=True),
        sa.Column('threshold_value', sa.Float(), nullable=True),
        sa.Column('previous_value', sa.Float(), nullable=True),
        sa.Column('data', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('email_sent', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('chat_sent', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['campaign_id'], ['campaigns.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_alerts_user_status', 'alerts', ['user_id', 'status'])
    op.create_index('ix_alerts_campaign_type', 'alerts', ['campaign_id', 'alert_type'])
    op.create_index('ix_alerts_created_at', 'alerts', ['created_at'])

    # AI recommendations
    op.create_table(
        'recommendations',
        _uuid('id', nullable=False),
        _uuid('campaign_id', nullable=False),
        sa.Column('type', sa.String(50), nullable=False, server_default='OPTIMIZATION'),
        sa.Column('category', sa.String(50), nullable=True),
        sa.Column('title', sa.String(500), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('priority', sa.Integer(), nullable=False, server_default='3'),
        sa.Column('impact_score', sa.Integer(), nullable=True),
        sa.Column('data', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('status', sa.String(15), nullable=False, server_default='PENDING'),
        sa.Column('applied_at', sa.DateTime(timezone=True), nullable=True),
        _uuid('applied_by_id', nullable=True),
        sa.Column('rejected_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejected_reason', sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['campaign_id'], ['campaigns.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['applied_by_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'ix_recommendations_campaign_status', 'recommendations', ['campaign_id', 'status']
    )

    # Chat
    op.create_table(
        'chat_conversations',
        _uuid('id', nullable=False),
        _uuid('manager_id', nullable=False),
        _uuid('client_id', nullable=False),
        sa.Column('last_message_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['manager_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('manager_id', 'client_id', name='uq_chat_conversations_pair'),
    )
    op.create_index(
        'ix_chat_conversations_last_message_at', 'chat_conversations', ['last_message_at']
    )

    op.create_table(
        'chat_messages',
        _uuid('id', nullable=False),
        _uuid('conversation_id', nullable=False),
        _uuid('sender_id', nullable=False),
        sa.Column('content', sa.Text(), nullable=True),
        sa.Column('message_type', sa.String(10), nullable=False, server_default='TEXT'),
        sa.Column('attachment_url', sa.String(1000), nullable=True),
        sa.Column('attachment_name', sa.String(255), nullable=True),
        sa.Column('data', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(['conversation_id'], ['chat_conversations.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['sender_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'ix_chat_messages_conversation_created', 'chat_messages', ['conversation_id', 'created_at']
    )
    op.create_index('ix_chat_messages_unread', 'chat_messages', ['conversation_id', 'is_read'])

    # Change history (append-only)
    op.create_table(
        'change_history',
        _uuid('id', nullable=False),
        _uuid('campaign_id', nullable=True),
        _uuid('user_id', nullable=True),
        sa.Column('action', sa.String(20), nullable=False),
        sa.Column('entity_type', sa.String(30), nullable=False),
        sa.Column('entity_id', sa.String(50), nullable=True),
        sa.Column('entity_name', sa.String(255), nullable=True),
        sa.Column('change_type', sa.String(30), nullable=False, server_default='OTHER'),
        sa.Column('field', sa.String(50), nullable=True),
        sa.Column('old_value', sa.Text(), nullable=True),
        sa.Column('new_value', sa.Text(), nullable=True),
        sa.Column('changes', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('extra_data', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('ip_address', sa.String(45), nullable=True),
        sa.Column('user_agent', sa.Text(), nullable=True),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(['campaign_id'], ['campaigns.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_change_history_campaign_id', 'change_history', ['campaign_id'])
    op.create_index('ix_change_history_user_id', 'change_history', ['user_id'])
    op.create_index('ix_change_history_entity', 'change_history', ['entity_type', 'entity_id'])
    op.create_index('ix_change_history_created_at', 'change_history', ['created_at'])


def downgrade() -> None:
    op.drop_table('change_history')
    op.drop_table('chat_messages')
    op.drop_table('chat_conversations')
    op.drop_table('recommendations')
    op.drop_table('alerts')
    op.drop_table('listing_groups')
    op.drop_table('search_terms')
    op.drop_table('campaign_metrics')
    op.drop_table('asset_groups')
    op.drop_table('campaigns')
    op.drop_table('clients')
    op.drop_table('users')
