"""Create companies, integrations, deals, campaign_days, metric_buckets and sync_outcomes

Revision ID: create_metrics_sync_tables
Revises:
Create Date: 2026-01-05 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = 'create_metrics_sync_tables'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
    ]


def upgrade() -> None:
    """Create the sync tables."""
    op.create_table('companies',
        sa.Column('id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table('integrations',
        sa.Column('id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('company_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('integration_type', sa.String(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('access_token', sa.String(), nullable=True),
        sa.Column('ad_account_id', sa.String(), nullable=True),
        sa.Column('pipe_id', sa.String(), nullable=True),
        sa.Column('settings', sa.JSON(), nullable=True),
        sa.Column('last_synced_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_sync_status', sa.String(), nullable=True),
        sa.Column('sync_error_message', sa.String(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_integrations_company_id'), 'integrations', ['company_id'], unique=False)
    op.create_index(op.f('ix_integrations_pipe_id'), 'integrations', ['pipe_id'], unique=False)
    op.create_index('ux_integrations_company_type', 'integrations', ['company_id', 'integration_type'], unique=True)

    op.create_table('campaign_days',
        sa.Column('id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('company_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('campaign_id', sa.String(), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('name', sa.String(), nullable=True),
        sa.Column('channel', sa.String(), nullable=False),
        sa.Column('spend', sa.Float(), nullable=False),
        sa.Column('impressions', sa.Integer(), nullable=False),
        sa.Column('clicks', sa.Integer(), nullable=False),
        sa.Column('reach', sa.Integer(), nullable=False),
        sa.Column('leads', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('company_id', 'campaign_id', 'date', name='uq_campaign_days_natural_key')
    )
    op.create_index(op.f('ix_campaign_days_company_id'), 'campaign_days', ['company_id'], unique=False)

    op.create_table('deals',
        sa.Column('id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('company_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('source', sa.String(), nullable=False),
        sa.Column('source_card_id', sa.String(), nullable=False),
        sa.Column('title', sa.String(), nullable=True),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('amount', sa.Float(), nullable=True),
        sa.Column('product', sa.String(), nullable=True),
        sa.Column('channel', sa.String(), nullable=True),
        sa.Column('seller', sa.String(), nullable=True),
        sa.Column('loss_reason', sa.String(), nullable=True),
        sa.Column('phase_id', sa.String(), nullable=True),
        sa.Column('phase_name', sa.String(), nullable=True),
        sa.Column('labels', sa.JSON(), nullable=True),
        sa.Column('categories', sa.JSON(), nullable=True),
        sa.Column('created_at_source', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_date', sa.Date(), nullable=True),
        sa.Column('effective_date', sa.Date(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('company_id', 'source_card_id', name='uq_deals_natural_key')
    )
    op.create_index(op.f('ix_deals_company_id'), 'deals', ['company_id'], unique=False)
    op.create_index('ix_deals_company_status', 'deals', ['company_id', 'status'], unique=False)

    op.create_table('metric_buckets',
        sa.Column('id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('company_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('source', sa.String(), nullable=False),
        sa.Column('label', sa.String(), nullable=False),
        sa.Column('cards_created', sa.Integer(), nullable=False),
        sa.Column('cards_qualified', sa.Integer(), nullable=False),
        sa.Column('cards_converted', sa.Integer(), nullable=False),
        sa.Column('cards_lost', sa.Integer(), nullable=False),
        sa.Column('conversion_rate', sa.Float(), nullable=False),
        sa.Column('cards_by_phase', sa.JSON(), nullable=True),
        sa.Column('spend', sa.Float(), nullable=False),
        sa.Column('impressions', sa.Integer(), nullable=False),
        sa.Column('clicks', sa.Integer(), nullable=False),
        sa.Column('leads', sa.Integer(), nullable=False),
        sa.Column('reach', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('company_id', 'date', 'source', 'label', name='uq_metric_buckets_natural_key')
    )
    op.create_index(op.f('ix_metric_buckets_company_id'), 'metric_buckets', ['company_id'], unique=False)

    op.create_table('sync_outcomes',
        sa.Column('id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('company_id', sa.Uuid(as_uuid=True), nullable=False),
        sa.Column('integration_id', sa.Uuid(as_uuid=True), nullable=True),
        sa.Column('source', sa.String(), nullable=False),
        sa.Column('event_type', sa.String(), nullable=False),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('records_processed', sa.Integer(), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('duration_seconds', sa.Float(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_sync_outcomes_company_id'), 'sync_outcomes', ['company_id'], unique=False)
    op.create_index(op.f('ix_sync_outcomes_integration_id'), 'sync_outcomes', ['integration_id'], unique=False)


def downgrade() -> None:
    """Drop the sync tables."""
    op.drop_index(op.f('ix_sync_outcomes_integration_id'), table_name='sync_outcomes')
    op.drop_index(op.f('ix_sync_outcomes_company_id'), table_name='sync_outcomes')
    op.drop_table('sync_outcomes')
    op.drop_index(op.f('ix_metric_buckets_company_id'), table_name='metric_buckets')
    op.drop_table('metric_buckets')
    op.drop_index('ix_deals_company_status', table_name='deals')
    op.drop_index(op.f('ix_deals_company_id'), table_name='deals')
    op.drop_table('deals')
    op.drop_index(op.f('ix_campaign_days_company_id'), table_name='campaign_days')
    op.drop_table('campaign_days')
    op.drop_index('ux_integrations_company_type', table_name='integrations')
    op.drop_index(op.f('ix_integrations_pipe_id'), table_name='integrations')
    op.drop_index(op.f('ix_integrations_company_id'), table_name='integrations')
    op.drop_table('integrations')
    op.drop_table('companies')
