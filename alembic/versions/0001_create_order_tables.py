"""Create order, store and notification tables

Revision ID: 0001_order_tables
Revises:
Create Date: 2026-10-18
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = '0001_order_tables'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    """Create stores, orders, order_items, order_status_history and notifications."""

    # ====================
    # STORES TABLE
    # ====================
    op.create_table(
        'stores',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('status', sa.String(20), server_default='active', nullable=False),
        sa.Column('phone', sa.String(30), nullable=True),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_stores_name', 'stores', ['name'], unique=True)

    # ====================
    # ORDERS TABLE
    # ====================
    op.create_table(
        'orders',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('order_code', sa.String(30), nullable=True),
        sa.Column('customer_name', sa.String(200), nullable=True),
        sa.Column('customer_phone', sa.String(30), nullable=True),
        sa.Column('customer_address', sa.Text, nullable=True),
        sa.Column('customer_notes', sa.Text, nullable=True),
        sa.Column('items', sa.JSON, nullable=True),
        sa.Column('subtotal', sa.Numeric(12, 2), server_default='0', nullable=False),
        sa.Column('total_amount', sa.Numeric(12, 2), server_default='0', nullable=False),
        sa.Column('order_status', sa.String(50), server_default='pending', nullable=False),
        sa.Column('assigned_store_id', sa.Uuid(), sa.ForeignKey('stores.id', ondelete='SET NULL'), nullable=True),
        sa.Column('main_store_name', sa.String(200), nullable=True),
        sa.Column('store_response_status', sa.String(50), nullable=True),
        sa.Column('store_response_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejection_reason', sa.Text, nullable=True),
        # No FK: the original row is deleted after a split
        sa.Column('original_order_id', sa.Uuid(), nullable=True),
        sa.Column('original_order_code', sa.String(64), nullable=True),
        sa.Column('details', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_orders_order_code', 'orders', ['order_code'])
    op.create_index('ix_orders_customer_phone', 'orders', ['customer_phone'])
    op.create_index('ix_orders_order_status', 'orders', ['order_status'])
    op.create_index('ix_orders_assigned_store_id', 'orders', ['assigned_store_id'])
    op.create_index('ix_orders_original_order_id', 'orders', ['original_order_id'])
    op.create_index('ix_orders_original_order_code', 'orders', ['original_order_code'])
    op.create_index('ix_orders_created_at', 'orders', ['created_at'])
    op.create_index('ix_order_status_created', 'orders', ['order_status', 'created_at'])
    op.create_index('ix_order_store_status', 'orders', ['assigned_store_id', 'order_status'])

    # ====================
    # ORDER ITEMS TABLE
    # ====================
    op.create_table(
        'order_items',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('order_id', sa.Uuid(), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('product_id', sa.String(64), nullable=True),
        sa.Column('product_name', sa.String(255), nullable=False),
        sa.Column('quantity', sa.Integer, server_default='1', nullable=False),
        sa.Column('unit_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('discounted_price', sa.Numeric(12, 2), nullable=True),
        sa.Column('store_name', sa.String(200), nullable=True),
        sa.Column('availability_status', sa.String(50), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])

    # ====================
    # ORDER STATUS HISTORY TABLE
    # ====================
    op.create_table(
        'order_status_history',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('order_id', sa.Uuid(), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('from_status', sa.String(50), nullable=True),
        sa.Column('to_status', sa.String(50), nullable=False),
        sa.Column('changed_by', sa.String(100), nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_order_status_history_order_id', 'order_status_history', ['order_id'])

    # ====================
    # NOTIFICATIONS TABLE
    # ====================
    op.create_table(
        'notifications',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('recipient_type', sa.String(20), nullable=False),
        sa.Column('recipient_id', sa.String(64), nullable=True),
        sa.Column('notification_type', sa.String(50), nullable=False),
        sa.Column('priority', sa.String(20), server_default='MEDIUM', nullable=False),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('message', sa.Text, nullable=False),
        sa.Column('order_id', sa.Uuid(), nullable=True),
        sa.Column('extra_data', sa.JSON, nullable=True),
        sa.Column('dedupe_key', sa.String(200), nullable=True),
        sa.Column('is_read', sa.Boolean, server_default=sa.false(), nullable=False),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_notifications_recipient', 'notifications', ['recipient_type', 'recipient_id'])
    op.create_index('ix_notifications_order_id', 'notifications', ['order_id'])
    op.create_index('ix_notifications_is_read', 'notifications', ['is_read'])
    op.create_index('ix_notifications_dedupe_key', 'notifications', ['dedupe_key'], unique=True)


def downgrade():
    op.drop_table('notifications')
    op.drop_table('order_status_history')
    op.drop_table('order_items')
    op.drop_table('orders')
    op.drop_table('stores')
