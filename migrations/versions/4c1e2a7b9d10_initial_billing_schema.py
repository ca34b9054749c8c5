"""Initial schema: organizations, memberships, Stripe mirror tables

Revision ID: 4c1e2a7b9d10
Revises:
Create Date: 2026-10-19 00:00:00.000000
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '4c1e2a7b9d10'
down_revision = None
branch_labels = None
depends_on = None

_JSON = sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), "postgresql")


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    ]


def upgrade():
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False, server_default=""),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'organizations',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('slug', sa.String(length=255), nullable=False),
        sa.Column('billing_email', sa.String(length=255), nullable=False, server_default=""),
        sa.Column('stripe_customer_id', sa.String(length=255), nullable=True, unique=True),
        sa.Column('trial_end', sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_organizations_slug', 'organizations', ['slug'], unique=True)

    op.create_table(
        'organization_memberships',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('organization_id', sa.Integer(), sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('role', sa.String(length=20), nullable=False, server_default='member'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint('organization_id', 'user_id', name='uq_organization_memberships_org_user'),
        sa.CheckConstraint("role IN ('owner','admin','member')", name='ck_organization_memberships_role_valid'),
    )
    op.create_index('ix_organization_memberships_organization_id', 'organization_memberships', ['organization_id'])
    op.create_index('ix_organization_memberships_user_id', 'organization_memberships', ['user_id'])

    op.create_table(
        'stripe_products',
        sa.Column('stripe_id', sa.String(length=255), primary_key=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('max_seats', sa.Integer(), nullable=False, server_default="1"),
        *_timestamps(),
    )

    op.create_table(
        'stripe_prices',
        sa.Column('stripe_id', sa.String(length=255), primary_key=True),
        sa.Column('lookup_key', sa.String(length=255), nullable=True),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('unit_amount', sa.Integer(), nullable=False),
        sa.Column('metadata', _JSON, nullable=False),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('product_id', sa.String(length=255), sa.ForeignKey('stripe_products.stripe_id', ondelete='CASCADE'), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_stripe_prices_lookup_key', 'stripe_prices', ['lookup_key'], unique=True)
    op.create_index('ix_stripe_prices_product_id', 'stripe_prices', ['product_id'])

    op.create_table(
        'stripe_subscriptions',
        sa.Column('stripe_id', sa.String(length=255), primary_key=True),
        sa.Column('organization_id', sa.Integer(), sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('purchased_by_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('created', sa.DateTime(timezone=True), nullable=False),
        sa.Column('cancel_at_period_end', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('status', sa.String(length=32), nullable=False),
    )
    op.create_index('ix_stripe_subscriptions_organization_id', 'stripe_subscriptions', ['organization_id'])
    op.create_index('ix_stripe_subscriptions_purchased_by_id', 'stripe_subscriptions', ['purchased_by_id'])
    op.create_index('ix_stripe_subscriptions_created', 'stripe_subscriptions', ['created'])
    op.create_index('ix_stripe_subscriptions_status', 'stripe_subscriptions', ['status'])

    op.create_table(
        'stripe_subscription_items',
        sa.Column('stripe_id', sa.String(length=255), primary_key=True),
        sa.Column('stripe_subscription_id', sa.String(length=255), sa.ForeignKey('stripe_subscriptions.stripe_id', ondelete='CASCADE'), nullable=False),
        sa.Column('price_id', sa.String(length=255), sa.ForeignKey('stripe_prices.stripe_id'), nullable=False),
        sa.Column('current_period_start', sa.DateTime(timezone=True), nullable=False),
        sa.Column('current_period_end', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_stripe_subscription_items_stripe_subscription_id', 'stripe_subscription_items', ['stripe_subscription_id'])
    op.create_index('ix_stripe_subscription_items_price_id', 'stripe_subscription_items', ['price_id'])

    op.create_table(
        'stripe_subscription_schedules',
        sa.Column('stripe_id', sa.String(length=255), primary_key=True),
        sa.Column('subscription_id', sa.String(length=255), sa.ForeignKey('stripe_subscriptions.stripe_id', ondelete='CASCADE'), nullable=False),
        sa.Column('created', sa.DateTime(timezone=True), nullable=False),
        sa.Column('current_phase_start', sa.DateTime(timezone=True), nullable=False),
        sa.Column('current_phase_end', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_stripe_subscription_schedules_subscription_id', 'stripe_subscription_schedules', ['subscription_id'])

    op.create_table(
        'stripe_subscription_schedule_phases',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('schedule_id', sa.String(length=255), sa.ForeignKey('stripe_subscription_schedules.stripe_id', ondelete='CASCADE'), nullable=False),
        sa.Column('start_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('price_id', sa.String(length=255), sa.ForeignKey('stripe_prices.stripe_id'), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
    )
    op.create_index('ix_stripe_subscription_schedule_phases_schedule_id', 'stripe_subscription_schedule_phases', ['schedule_id'])

    op.create_table(
        'billing_event_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('stripe_event_id', sa.String(length=255), nullable=False),
        sa.Column('type', sa.String(length=80), nullable=False),
        sa.Column('signature_valid', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('payload', _JSON, nullable=False),
        sa.Column('notes', sa.String(length=255), nullable=True),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index('ix_billing_event_logs_stripe_event_id', 'billing_event_logs', ['stripe_event_id'], unique=True)
    op.create_index('ix_billing_event_logs_type', 'billing_event_logs', ['type'])


def downgrade():
    op.drop_table('billing_event_logs')
    op.drop_table('stripe_subscription_schedule_phases')
    op.drop_table('stripe_subscription_schedules')
    op.drop_table('stripe_subscription_items')
    op.drop_table('stripe_subscriptions')
    op.drop_table('stripe_prices')
    op.drop_table('stripe_products')
    op.drop_table('organization_memberships')
    op.drop_table('organizations')
    op.drop_table('users')
