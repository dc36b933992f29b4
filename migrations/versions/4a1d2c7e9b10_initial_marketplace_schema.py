"""initial marketplace schema

Revision ID: 4a1d2c7e9b10
Revises: 
Create Date: 2026-10-19 09:12:44.518203

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '4a1d2c7e9b10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id() -> sa.Column:
    return sa.Column('id', sa.Uuid(), primary_key=True, nullable=False)


def _created_at() -> sa.Column:
    return sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now())


def _updated_at() -> sa.Column:
    return sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=True)


def _user_fk() -> sa.Column:
    return sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True)


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'users',
        _id(),
        sa.Column('email', sa.String(320), nullable=False, unique=True),
        sa.Column('full_name', sa.Text(), nullable=True),
        sa.Column('phone', sa.String(32), nullable=True),
        sa.Column('role', sa.String(32), nullable=False, server_default=sa.text("'USER'")),
        sa.Column('password_hash', sa.Text(), nullable=True),
        _created_at(),
        _updated_at(),
    )

    op.create_table(
        'employees',
        _id(),
        _user_fk(),
        sa.Column('email', sa.String(320), nullable=True),
        sa.Column('full_name', sa.Text(), nullable=True),
        sa.Column('role', sa.String(32), nullable=False),
        sa.Column('status', sa.String(32), nullable=False, server_default=sa.text("'ACTIVE'")),
        _created_at(),
        _updated_at(),
    )
    op.create_index('ix_employees_email', 'employees', ['email'])

    op.create_table(
        'vendors',
        _id(),
        _user_fk(),
        sa.Column('email', sa.String(320), nullable=True),
        sa.Column('company_name', sa.Text(), nullable=True),
        sa.Column('phone', sa.String(32), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        _updated_at(),
    )
    op.create_index('ix_vendors_email', 'vendors', ['email'])
    op.create_index('ix_vendors_user', 'vendors', ['user_id'])

    op.create_table(
        'buyers',
        _id(),
        _user_fk(),
        sa.Column('email', sa.String(320), nullable=True),
        sa.Column('full_name', sa.Text(), nullable=True),
        sa.Column('company_name', sa.Text(), nullable=True),
        sa.Column('phone', sa.String(32), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        _updated_at(),
    )
    op.create_index('ix_buyers_email', 'buyers', ['email'])

    op.create_table(
        'leads',
        _id(),
        sa.Column('vendor_id', sa.Uuid(), sa.ForeignKey('vendors.id', ondelete='SET NULL'), nullable=True),
        sa.Column('buyer_id', sa.Uuid(), sa.ForeignKey('buyers.id', ondelete='SET NULL'), nullable=True),
        sa.Column('title', sa.Text(), nullable=True),
        sa.Column('product_name', sa.Text(), nullable=True),
        sa.Column('category', sa.Text(), nullable=True),
        sa.Column('sub_category', sa.Text(), nullable=True),
        sa.Column('service_name', sa.Text(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('location', sa.Text(), nullable=True),
        sa.Column('city', sa.Text(), nullable=True),
        sa.Column('state', sa.Text(), nullable=True),
        sa.Column('budget', sa.Text(), nullable=True),
        sa.Column('price', sa.Numeric(12, 2), nullable=True),
        sa.Column('buyer_name', sa.Text(), nullable=True),
        sa.Column('buyer_email', sa.Text(), nullable=True),
        sa.Column('buyer_phone', sa.Text(), nullable=True),
        sa.Column('status', sa.String(32), nullable=True, server_default=sa.text("'AVAILABLE'")),
        _created_at(),
    )
    op.create_index('ix_leads_vendor', 'leads', ['vendor_id'])
    op.create_index('ix_leads_status_created', 'leads', ['status', 'created_at'])

    op.create_table(
        'lead_purchases',
        _id(),
        sa.Column('vendor_id', sa.Uuid(), sa.ForeignKey('vendors.id', ondelete='CASCADE'), nullable=False),
        sa.Column('lead_id', sa.Uuid(), sa.ForeignKey('leads.id', ondelete='CASCADE'), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False, server_default=sa.text('0')),
        sa.Column('payment_status', sa.String(32), nullable=False, server_default=sa.text("'COMPLETED'")),
        sa.Column('consumption_type', sa.String(32), nullable=False, server_default=sa.text("'PAID_EXTRA'")),
        sa.Column('purchase_price', sa.Numeric(12, 2), nullable=False, server_default=sa.text('0')),
        sa.Column('purchase_datetime', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('subscription_plan_name', sa.Text(), nullable=True),
        sa.Column('lead_status', sa.String(16), nullable=False, server_default=sa.text("'ACTIVE'")),
        _updated_at(),
        sa.UniqueConstraint('vendor_id', 'lead_id', name='uq_lead_purchases_vendor_lead'),
    )
    op.create_index('ix_lead_purchases_lead', 'lead_purchases', ['lead_id'])
    op.create_index('ix_lead_purchases_vendor_datetime', 'lead_purchases', ['vendor_id', 'purchase_datetime'])

    op.create_table(
        'vendor_plans',
        _id(),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('price', sa.Numeric(12, 2), nullable=False, server_default=sa.text('0')),
        sa.Column('daily_limit', sa.Integer(), nullable=True),
        sa.Column('weekly_limit', sa.Integer(), nullable=True),
        sa.Column('yearly_limit', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
    )

    op.create_table(
        'vendor_plan_subscriptions',
        _id(),
        sa.Column('vendor_id', sa.Uuid(), sa.ForeignKey('vendors.id', ondelete='CASCADE'), nullable=False),
        sa.Column('plan_id', sa.Uuid(), sa.ForeignKey('vendor_plans.id', ondelete='SET NULL'), nullable=True),
        sa.Column('status', sa.String(16), nullable=False),
        sa.Column('start_date', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('end_date', sa.TIMESTAMP(timezone=True), nullable=True),
        _created_at(),
    )
    op.create_index('ix_vendor_plan_subscriptions_vendor_status', 'vendor_plan_subscriptions', ['vendor_id', 'status'])

    op.create_table(
        'vendor_lead_quota',
        _id(),
        sa.Column('vendor_id', sa.Uuid(), sa.ForeignKey('vendors.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('plan_id', sa.Uuid(), sa.ForeignKey('vendor_plans.id', ondelete='SET NULL'), nullable=True),
        *[
            sa.Column(f'{bucket}_{field}', sa.Integer(), nullable=False, server_default=sa.text('0'))
            for field in ('limit', 'used')
            for bucket in ('daily', 'weekly', 'yearly')
        ],
        *[
            sa.Column(f'{bucket}_reset_at', sa.TIMESTAMP(timezone=True), nullable=True)
            for bucket in ('daily', 'weekly', 'yearly')
        ],
        _updated_at(),
    )

    op.create_table(
        'lead_status_history',
        _id(),
        sa.Column('lead_id', sa.Uuid(), sa.ForeignKey('leads.id', ondelete='CASCADE'), nullable=False),
        sa.Column('vendor_id', sa.Uuid(), sa.ForeignKey('vendors.id', ondelete='CASCADE'), nullable=False),
        sa.Column('lead_purchase_id', sa.Uuid(), sa.ForeignKey('lead_purchases.id', ondelete='SET NULL'), nullable=True),
        sa.Column('status', sa.String(16), nullable=False),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('source', sa.String(16), nullable=False, server_default=sa.text("'MANUAL'")),
        sa.Column('created_by', sa.Uuid(), nullable=True),
        _created_at(),
    )
    op.create_index(
        'ix_lead_status_history_lead_vendor', 'lead_status_history', ['lead_id', 'vendor_id', 'created_at']
    )

    op.create_table(
        'vendor_preferences',
        _id(),
        sa.Column('vendor_id', sa.Uuid(), sa.ForeignKey('vendors.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('preferred_categories', sa.Text(), nullable=True),
        sa.Column('preferred_states', sa.Text(), nullable=True),
        sa.Column('preferred_cities', sa.Text(), nullable=True),
        sa.Column('auto_lead_filter', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('min_budget', sa.Numeric(14, 2), nullable=True),
        sa.Column('max_budget', sa.Numeric(14, 2), nullable=True),
        _created_at(),
        _updated_at(),
    )

    op.create_table(
        'notifications',
        _id(),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('type', sa.String(64), nullable=False),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('link', sa.Text(), nullable=True),
        sa.Column('reference_id', sa.String(64), nullable=True),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
        _created_at(),
    )
    op.create_index('ix_notifications_user_type_created', 'notifications', ['user_id', 'type', 'created_at'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_notifications_user_type_created', table_name='notifications')
    op.drop_table('notifications')
    op.drop_table('vendor_preferences')
    op.drop_index('ix_lead_status_history_lead_vendor', table_name='lead_status_history')
    op.drop_table('lead_status_history')
    op.drop_table('vendor_lead_quota')
    op.drop_index('ix_vendor_plan_subscriptions_vendor_status', table_name='vendor_plan_subscriptions')
    op.drop_table('vendor_plan_subscriptions')
    op.drop_table('vendor_plans')
    op.drop_index('ix_lead_purchases_vendor_datetime', table_name='lead_purchases')
    op.drop_index('ix_lead_purchases_lead', table_name='lead_purchases')
    op.drop_table('lead_purchases')
    op.drop_index('ix_leads_status_created', table_name='leads')
    op.drop_index('ix_leads_vendor', table_name='leads')
    op.drop_table('leads')
    op.drop_index('ix_buyers_email', table_name='buyers')
    op.drop_table('buyers')
    op.drop_index('ix_vendors_user', table_name='vendors')
    op.drop_index('ix_vendors_email', table_name='vendors')
    op.drop_table('vendors')
    op.drop_index('ix_employees_email', table_name='employees')
    op.drop_table('employees')
    op.drop_table('users')
