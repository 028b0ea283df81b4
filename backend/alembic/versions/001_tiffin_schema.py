"""Create users, plans, subscriptions, orders, delivery pauses and menus.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('phone', sa.String(20), nullable=True),
        sa.Column('role', sa.String(20), nullable=False, server_default='user'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('current_subscription_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'plans',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(50), nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('duration', sa.String(20), nullable=False, server_default='monthly'),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_plans_name', 'plans', ['name'])

    op.create_table(
        'subscriptions',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('plan_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('start_date', sa.DateTime(), nullable=False),
        sa.Column('end_date', sa.DateTime(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='Active'),
        sa.Column('meal_type', sa.String(10), nullable=False, server_default='both'),
        sa.Column('amount_paid', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('plan_value', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('payment_id', sa.String(100), nullable=True),
        sa.Column('lunch_address', postgresql.JSON(astext_type=sa.Text()), nullable=True),
        sa.Column('dinner_address', postgresql.JSON(astext_type=sa.Text()), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['plan_id'], ['plans.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_subscriptions_user_id', 'subscriptions', ['user_id'])
    op.create_index('ix_subscriptions_status', 'subscriptions', ['status'])
    op.create_index('ix_subscriptions_user_status', 'subscriptions', ['user_id', 'status'])
    op.create_index('ix_subscriptions_window', 'subscriptions', ['start_date', 'end_date'])

    # users and subscriptions reference each other
    op.create_foreign_key(
        'fk_users_current_subscription_id',
        'users', 'subscriptions',
        ['current_subscription_id'], ['id'],
        ondelete='SET NULL',
    )

    op.create_table(
        'orders',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('subscription_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('type', sa.String(30), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='Pending'),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('discount_amount', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('coupon_code', sa.String(50), nullable=True),
        sa.Column('pro_rata_credit', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('total_amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('payment_status', sa.String(20), nullable=False, server_default='Pending'),
        sa.Column('payment_id', sa.String(100), nullable=True),
        sa.Column('delivery_address', postgresql.JSON(astext_type=sa.Text()), nullable=True),
        sa.Column('cancellation_fee', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('refund_amount', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('refund_error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['subscription_id'], ['subscriptions.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_orders_user_id', 'orders', ['user_id'])
    op.create_index('ix_orders_subscription_id', 'orders', ['subscription_id'])
    op.create_index('ix_orders_type', 'orders', ['type'])
    op.create_index('ix_orders_status', 'orders', ['status'])

    op.create_table(
        'order_items',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('order_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('price', sa.Numeric(10, 2), nullable=True),
        sa.Column('selected_items', postgresql.JSON(astext_type=sa.Text()), nullable=True),
        sa.Column('delivery_date', sa.DateTime(), nullable=True),
        sa.Column('delivery_time', sa.String(5), nullable=True),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])
    op.create_index('ix_order_items_delivery_date', 'order_items', ['delivery_date'])

    op.create_table(
        'delivery_pauses',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('subscription_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('start_date', sa.DateTime(), nullable=False),
        sa.Column('end_date', sa.DateTime(), nullable=False),
        sa.Column('pause_days', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='Active'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['subscription_id'], ['subscriptions.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_delivery_pauses_user_id', 'delivery_pauses', ['user_id'])
    op.create_index('ix_delivery_pauses_subscription_id', 'delivery_pauses', ['subscription_id'])
    op.create_index('ix_delivery_pauses_status', 'delivery_pauses', ['status'])

    op.create_table(
        'menus',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('date', sa.DateTime(), nullable=False),
        sa.Column('plan_type', sa.String(50), nullable=False),
        sa.Column('lunch_items', postgresql.JSON(astext_type=sa.Text()), nullable=False, server_default='[]'),
        sa.Column('dinner_items', postgresql.JSON(astext_type=sa.Text()), nullable=False, server_default='[]'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('date', 'plan_type', name='uq_menus_date_plan_type'),
    )
    op.create_index('ix_menus_date', 'menus', ['date'])


def downgrade() -> None:
    op.drop_index('ix_menus_date', table_name='menus')
    op.drop_table('menus')

    op.drop_index('ix_delivery_pauses_status', table_name='delivery_pauses')
    op.drop_index('ix_delivery_pauses_subscription_id', table_name='delivery_pauses')
    op.drop_index('ix_delivery_pauses_user_id', table_name='delivery_pauses')
    op.drop_table('delivery_pauses')

    op.drop_index('ix_order_items_delivery_date', table_name='order_items')
    op.drop_index('ix_order_items_order_id', table_name='order_items')
    op.drop_table('order_items')

    op.drop_index('ix_orders_status', table_name='orders')
    op.drop_index('ix_orders_type', table_name='orders')
    op.drop_index('ix_orders_subscription_id', table_name='orders')
    op.drop_index('ix_orders_user_id', table_name='orders')
    op.drop_table('orders')

    op.drop_constraint('fk_users_current_subscription_id', 'users', type_='foreignkey')

    op.drop_index('ix_subscriptions_window', table_name='subscriptions')
    op.drop_index('ix_subscriptions_user_status', table_name='subscriptions')
    op.drop_index('ix_subscriptions_status', table_name='subscriptions')
    op.drop_index('ix_subscriptions_user_id', table_name='subscriptions')
    op.drop_table('subscriptions')

    op.drop_index('ix_plans_name', table_name='plans')
    op.drop_table('plans')

    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
