"""create_newsletter_schema

Revision ID: 4e7a1c9b2d10
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '4e7a1c9b2d10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# SQLAlchemy stores enum member names
EVENT_TYPES = (
    'PAGEVIEW', 'PAGE_VIEW', 'FORM_INTERACTION', 'CONTENT_INTERACTION',
    'SUBSCRIPTION', 'FORM_SUBMIT', 'CLICK', 'SCROLL', 'CUSTOM',
)


def upgrade() -> None:
    """Create subscribers, campaigns, clients, event and error tables."""
    op.create_table('subscribers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('first_name', sa.String(length=100), nullable=True),
        sa.Column('last_name', sa.String(length=100), nullable=True),
        sa.Column('subscribed', sa.Boolean(), nullable=False),
        sa.Column('source', sa.String(length=50), nullable=True),
        sa.Column('demographic', sa.JSON(), nullable=True),
        sa.Column('location', sa.JSON(), nullable=True),
        sa.Column('psychographic', sa.JSON(), nullable=True),
        sa.Column('behavioral', sa.JSON(), nullable=True),
        sa.Column('lifecycle', sa.JSON(), nullable=True),
        sa.Column('purchase_history', sa.JSON(), nullable=True),
        sa.Column('email_engagement', sa.JSON(), nullable=True),
        sa.Column('tracking_data', sa.JSON(), nullable=True),
        sa.Column('anonymous_id', sa.String(length=100), nullable=True),
        sa.Column('unsubscribe_token', sa.String(length=64), nullable=True),
        sa.Column('unsubscribed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('welcome_email_sent', sa.Boolean(), nullable=True),
        sa.Column('welcome_email_sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_active', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_subscribers_id'), 'subscribers', ['id'], unique=False)
    op.create_index(op.f('ix_subscribers_email'), 'subscribers', ['email'], unique=True)
    op.create_index(op.f('ix_subscribers_anonymous_id'), 'subscribers', ['anonymous_id'], unique=False)
    op.create_index(op.f('ix_subscribers_unsubscribe_token'), 'subscribers', ['unsubscribe_token'], unique=True)
    op.create_index(op.f('ix_subscribers_created_at'), 'subscribers', ['created_at'], unique=False)

    op.create_table('campaigns',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('subject', sa.String(length=255), nullable=False),
        sa.Column('content', sa.Text(), nullable=True),
        sa.Column('status', sa.Enum('DRAFT', 'SCHEDULED', 'SENT', name='campaignstatus'), nullable=False),
        sa.Column('recipients', sa.JSON(), nullable=True),
        sa.Column('scheduled_for', sa.DateTime(timezone=True), nullable=True),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_send_attempt_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_campaigns_id'), 'campaigns', ['id'], unique=False)
    op.create_index(op.f('ix_campaigns_status'), 'campaigns', ['status'], unique=False)
    op.create_index(op.f('ix_campaigns_created_at'), 'campaigns', ['created_at'], unique=False)

    op.create_table('clients',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('client_id', sa.String(length=50), nullable=False),
        sa.Column('api_key', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('domain', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('owner', sa.String(length=255), nullable=True),
        sa.Column('status', sa.Enum('ACTIVE', 'INACTIVE', 'SUSPENDED', name='clientstatus'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('api_key')
    )
    op.create_index(op.f('ix_clients_id'), 'clients', ['id'], unique=False)
    op.create_index(op.f('ix_clients_client_id'), 'clients', ['client_id'], unique=True)

    op.create_table('anonymous_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('anonymous_id', sa.String(length=100), nullable=True),
        sa.Column('client_id', sa.String(length=50), nullable=True),
        sa.Column('event_type', sa.String(length=50), nullable=False),
        sa.Column('page_url', sa.String(length=2000), nullable=True),
        sa.Column('user_agent', sa.String(length=500), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.Column('data', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_anonymous_events_id'), 'anonymous_events', ['id'], unique=False)
    op.create_index(op.f('ix_anonymous_events_anonymous_id'), 'anonymous_events', ['anonymous_id'], unique=False)
    op.create_index(op.f('ix_anonymous_events_client_id'), 'anonymous_events', ['client_id'], unique=False)
    op.create_index(op.f('ix_anonymous_events_event_type'), 'anonymous_events', ['event_type'], unique=False)
    op.create_index(op.f('ix_anonymous_events_created_at'), 'anonymous_events', ['created_at'], unique=False)

    op.create_table('tracking_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('client_id', sa.String(length=50), nullable=False),
        sa.Column('subscriber_id', sa.Integer(), nullable=True),
        sa.Column('event_type', sa.Enum(*EVENT_TYPES, name='eventtype'), nullable=False),
        sa.Column('page_url', sa.String(length=2000), nullable=True),
        sa.Column('user_agent', sa.String(length=500), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.Column('data', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.ForeignKeyConstraint(['subscriber_id'], ['subscribers.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_tracking_events_id'), 'tracking_events', ['id'], unique=False)
    op.create_index(op.f('ix_tracking_events_client_id'), 'tracking_events', ['client_id'], unique=False)
    op.create_index(op.f('ix_tracking_events_subscriber_id'), 'tracking_events', ['subscriber_id'], unique=False)
    op.create_index(op.f('ix_tracking_events_event_type'), 'tracking_events', ['event_type'], unique=False)
    op.create_index(op.f('ix_tracking_events_created_at'), 'tracking_events', ['created_at'], unique=False)

    op.create_table('engagement_metrics',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('subscriber_id', sa.Integer(), nullable=False),
        sa.Column('campaign_id', sa.Integer(), nullable=False),
        sa.Column('event_type', sa.Enum('EMAIL_OPEN', 'LINK_CLICK', name='engagementeventtype'), nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.ForeignKeyConstraint(['subscriber_id'], ['subscribers.id']),
        sa.ForeignKeyConstraint(['campaign_id'], ['campaigns.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_engagement_metrics_id'), 'engagement_metrics', ['id'], unique=False)
    op.create_index(op.f('ix_engagement_metrics_subscriber_id'), 'engagement_metrics', ['subscriber_id'], unique=False)
    op.create_index(op.f('ix_engagement_metrics_campaign_id'), 'engagement_metrics', ['campaign_id'], unique=False)
    op.create_index(op.f('ix_engagement_metrics_created_at'), 'engagement_metrics', ['created_at'], unique=False)

    op.create_table('error_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('severity', sa.Enum(
            'DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL',
            name='errorseverity'
        ), nullable=False),
        sa.Column('error_type', sa.String(length=100), nullable=False),
        sa.Column('error_code', sa.String(length=50), nullable=True),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('stack_trace', sa.Text(), nullable=True),
        sa.Column('request_data', sa.Text(), nullable=True),
        sa.Column('endpoint', sa.String(length=200), nullable=True),
        sa.Column('campaign_id', sa.Integer(), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.Column('user_agent', sa.String(length=500), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_error_logs_id'), 'error_logs', ['id'], unique=False)
    op.create_index(op.f('ix_error_logs_severity'), 'error_logs', ['severity'], unique=False)
    op.create_index(op.f('ix_error_logs_error_type'), 'error_logs', ['error_type'], unique=False)
    op.create_index(op.f('ix_error_logs_endpoint'), 'error_logs', ['endpoint'], unique=False)
    op.create_index(op.f('ix_error_logs_campaign_id'), 'error_logs', ['campaign_id'], unique=False)
    op.create_index(op.f('ix_error_logs_created_at'), 'error_logs', ['created_at'], unique=False)


def downgrade() -> None:
    """Drop every newsletter table."""
    op.drop_table('error_logs')
    op.drop_table('engagement_metrics')
    op.drop_table('tracking_events')
    op.drop_table('anonymous_events')
    op.drop_table('clients')
    op.drop_table('campaigns')
    op.drop_table('subscribers')

    # Drop enum types
    op.execute("DROP TYPE IF EXISTS errorseverity")
    op.execute("DROP TYPE IF EXISTS engagementeventtype")
    op.execute("DROP TYPE IF EXISTS eventtype")
    op.execute("DROP TYPE IF EXISTS clientstatus")
    op.execute("DROP TYPE IF EXISTS campaignstatus")
