"""Create portal schema (users, checklists, Meta credentials, snapshots, notifications, tutorials)

Revision ID: 20260301_000001
Revises:
Create Date: 2026-03-01 10:00:00.000000

WHAT:
    Creates the full customer portal schema:
    - users: customers and admins, including onboarding state and a
      version counter for optimistic locking
    - customer_checklists: one business checklist per customer
    - meta_credentials: encrypted Meta access token per customer
    - metrics_snapshots: append-only aggregated Meta Ads metrics
    - notifications: lead notifications, unique per snapshot
    - tutorials / tutorial_progress: onboarding videos and watched flags

WHY:
    Onboarding state lives on the users row so a single row lock
    serializes every phase transition for a customer.

REFERENCES:
    - portal/models.py
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = '20260301_000001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # =========================================================================
    # STEP 1: Enums
    # =========================================================================
    roleenum = postgresql.ENUM('customer', 'admin', name='roleenum', create_type=False)
    notificationtypeenum = postgresql.ENUM('lead', name='notificationtypeenum', create_type=False)
    roleenum.create(op.get_bind(), checkfirst=True)
    notificationtypeenum.create(op.get_bind(), checkfirst=True)

    # =========================================================================
    # STEP 2: users
    # =========================================================================
    # WHAT: Accounts plus onboarding state
    # WHY: completed_phases is JSON so a single UPDATE covers the transition
    op.create_table(
        'users',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('first_name', sa.String(), nullable=False),
        sa.Column('last_name', sa.String(), nullable=False),
        sa.Column('company_name', sa.String(), nullable=True),
        sa.Column('role', roleenum, nullable=False, server_default='customer'),
        sa.Column('is_approved', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('approved_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('last_active', sa.DateTime(), nullable=True),
        sa.Column('current_phase', sa.String(), nullable=False, server_default='onboarding'),
        sa.Column('completed_phases', sa.JSON(), nullable=False, server_default='[]'),
        sa.Column('progress', sa.Integer(), nullable=False, server_default='20'),
        sa.Column('onboarding_completed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('meta_connected', sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    # =========================================================================
    # STEP 3: customer_checklists
    # =========================================================================
    op.create_table(
        'customer_checklists',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('payment_option', sa.String(), nullable=False),
        sa.Column('tax_id', sa.String(), nullable=False),
        sa.Column('domain', sa.String(), nullable=False),
        sa.Column('target_audience', sa.Text(), nullable=False),
        sa.Column('company_info', sa.Text(), nullable=False),
        sa.Column('web_design', sa.JSON(), nullable=False),
        sa.Column('market_research', sa.JSON(), nullable=False),
        sa.Column('legal_info', sa.JSON(), nullable=False),
        sa.Column('target_group', sa.JSON(), nullable=False),
        sa.Column('ideal_customer_profile', sa.JSON(), nullable=False),
        sa.Column('qualification_questions', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('user_id', name='uq_customer_checklist_user'),
    )
    op.create_index('ix_customer_checklists_user_id', 'customer_checklists', ['user_id'])

    # =========================================================================
    # STEP 4: meta_credentials
    # =========================================================================
    # WHAT: Fernet-encrypted access token, one per customer
    op.create_table(
        'meta_credentials',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=False, unique=True),
        sa.Column('access_token_enc', sa.String(), nullable=False),
        sa.Column('connected_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )

    # =========================================================================
    # STEP 5: metrics_snapshots
    # =========================================================================
    # WHAT: Aggregated 30-day Meta Ads metrics, one row per fetch
    # WHY: Never updated in place; history feeds trend charts and notifications
    op.create_table(
        'metrics_snapshots',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('ad_account_id', sa.String(), nullable=True),
        sa.Column('leads', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('ad_spend', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('clicks', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('impressions', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('reach', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('cpc', sa.Numeric(14, 4), nullable=False, server_default='0'),
        sa.Column('cpm', sa.Numeric(14, 4), nullable=False, server_default='0'),
        sa.Column('date', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_metrics_snapshots_user_id', 'metrics_snapshots', ['user_id'])
    op.create_index('ix_metrics_snapshots_date', 'metrics_snapshots', ['date'])

    # =========================================================================
    # STEP 6: notifications
    # =========================================================================
    # WHY: Unique snapshot_id makes lead notification derivation idempotent
    op.create_table(
        'notifications',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('snapshot_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('metrics_snapshots.id'), nullable=True, unique=True),
        sa.Column('type', notificationtypeenum, nullable=False, server_default='lead'),
        sa.Column('message', sa.String(), nullable=False),
        sa.Column('read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_notifications_user_id', 'notifications', ['user_id'])

    # =========================================================================
    # STEP 7: tutorials / tutorial_progress
    # =========================================================================
    op.create_table(
        'tutorials',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('video_url', sa.String(), nullable=False),
        sa.Column('thumbnail_url', sa.String(), nullable=True),
        sa.Column('category', sa.String(), nullable=False),
        sa.Column('is_onboarding', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_table(
        'tutorial_progress',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('tutorial_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('tutorials.id'), nullable=False),
        sa.Column('completed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('user_id', 'tutorial_id', name='uq_tutorial_progress'),
    )
    op.create_index('ix_tutorial_progress_user_id', 'tutorial_progress', ['user_id'])


def downgrade() -> None:
    op.drop_index('ix_tutorial_progress_user_id', table_name='tutorial_progress')
    op.drop_table('tutorial_progress')
    op.drop_table('tutorials')
    op.drop_index('ix_notifications_user_id', table_name='notifications')
    op.drop_table('notifications')
    op.drop_index('ix_metrics_snapshots_date', table_name='metrics_snapshots')
    op.drop_index('ix_metrics_snapshots_user_id', table_name='metrics_snapshots')
    op.drop_table('metrics_snapshots')
    op.drop_table('meta_credentials')
    op.drop_index('ix_customer_checklists_user_id', table_name='customer_checklists')
    op.drop_table('customer_checklists')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')

    op.execute("DROP TYPE IF EXISTS notificationtypeenum")
    op.execute("DROP TYPE IF EXISTS roleenum")
