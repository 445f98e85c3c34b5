"""create pickup checkout tables

Revision ID: a1f3c9d2e7b4
Revises:
Create Date: 2026-10-19 09:12:31.204118

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'a1f3c9d2e7b4'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create pickup points, windows, holds, coupons, products and orders."""
    op.create_table(
        'pickup_points',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('address', sa.String(), nullable=False),
        sa.Column('latitude', sa.Float(), nullable=True),
        sa.Column('longitude', sa.Float(), nullable=True),
        sa.Column('working_schedule', sa.JSON(), nullable=True),
        sa.Column('url', sa.String(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_pickup_points_id', 'pickup_points', ['id'], unique=False)
    op.create_index('ix_pickup_points_is_active', 'pickup_points', ['is_active'], unique=False)

    op.create_table(
        'coupons',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(), nullable=False),
        sa.Column('kind', sa.String(), nullable=False),
        sa.Column('value', sa.Numeric(10, 2), nullable=False),
        sa.Column('valid_from', sa.DateTime(), nullable=False),
        sa.Column('valid_to', sa.DateTime(), nullable=False),
        sa.Column('usage_limit', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('usage_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('usage_count >= 0', name='ck_coupons_usage_non_negative'),
        sa.CheckConstraint(
            'usage_limit = 0 OR usage_count <= usage_limit',
            name='ck_coupons_usage_within_limit',
        ),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_coupons_id', 'coupons', ['id'], unique=False)
    op.create_index('ix_coupons_code', 'coupons', ['code'], unique=True)

    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('available_qty', sa.Integer(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_products_id', 'products', ['id'], unique=False)

    op.create_table(
        'pickup_windows',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('point_id', sa.Integer(), nullable=False),
        sa.Column('start_time', sa.DateTime(), nullable=False),
        sa.Column('end_time', sa.DateTime(), nullable=False),
        sa.Column('capacity', sa.Integer(), nullable=False, server_default='24'),
        sa.Column('reserved', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('start_time < end_time', name='ck_pickup_windows_time_order'),
        sa.CheckConstraint('capacity > 0', name='ck_pickup_windows_capacity_positive'),
        sa.CheckConstraint('reserved >= 0', name='ck_pickup_windows_reserved_non_negative'),
        sa.CheckConstraint('reserved <= capacity', name='ck_pickup_windows_reserved_le_capacity'),
        sa.ForeignKeyConstraint(['point_id'], ['pickup_points.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_pickup_windows_id', 'pickup_windows', ['id'], unique=False)
    op.create_index('ix_pickup_windows_point_id', 'pickup_windows', ['point_id'], unique=False)
    op.create_index('ix_pickup_windows_point_start', 'pickup_windows', ['point_id', 'start_time'], unique=False)

    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(), nullable=False, server_default='PENDING'),
        sa.Column('buyer_name', sa.String(), nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('phone', sa.String(), nullable=False),
        sa.Column('delivery_method', sa.String(), nullable=False),
        sa.Column('payment_method', sa.String(), nullable=False),
        sa.Column('pay_later', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('point_id', sa.Integer(), nullable=True),
        sa.Column('window_id', sa.Integer(), nullable=True),
        sa.Column('address', sa.String(), nullable=True),
        sa.Column('total', sa.Numeric(10, 2), nullable=False),
        sa.Column('discount', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('final_total', sa.Numeric(10, 2), nullable=False),
        sa.Column('coupon_id', sa.Integer(), nullable=True),
        sa.Column('coupon_usage_recorded', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('idempotency_key', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('final_total >= 0', name='ck_orders_final_total_non_negative'),
        sa.ForeignKeyConstraint(['point_id'], ['pickup_points.id']),
        sa.ForeignKeyConstraint(['window_id'], ['pickup_windows.id']),
        sa.ForeignKeyConstraint(['coupon_id'], ['coupons.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('idempotency_key'),
    )
    op.create_index('ix_orders_id', 'orders', ['id'], unique=False)
    op.create_index('ix_orders_status', 'orders', ['status'], unique=False)
    op.create_index('ix_orders_point_id', 'orders', ['point_id'], unique=False)
    op.create_index('ix_orders_window_id', 'orders', ['window_id'], unique=False)
    op.create_index('ix_orders_coupon_id', 'orders', ['coupon_id'], unique=False)
    op.create_index('ix_orders_created_at', 'orders', ['created_at'], unique=False)
    op.create_index('ix_orders_status_created_at', 'orders', ['status', 'created_at'], unique=False)

    op.create_table(
        'order_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('product_name', sa.String(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(10, 2), nullable=False),
        sa.Column('line_total', sa.Numeric(10, 2), nullable=False),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_order_items_id', 'order_items', ['id'], unique=False)
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'], unique=False)

    op.create_table(
        'reservation_holds',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('window_id', sa.Integer(), nullable=False),
        sa.Column('token', sa.String(), nullable=True),
        sa.Column('order_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('released_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['window_id'], ['pickup_windows.id']),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_reservation_holds_id', 'reservation_holds', ['id'], unique=False)
    op.create_index('ix_reservation_holds_window_id', 'reservation_holds', ['window_id'], unique=False)
    op.create_index('ix_reservation_holds_token', 'reservation_holds', ['token'], unique=False)
    op.create_index('ix_reservation_holds_order_id', 'reservation_holds', ['order_id'], unique=False)
    op.create_index('ix_reservation_holds_created_at', 'reservation_holds', ['created_at'], unique=False)


def downgrade() -> None:
    """Drop all pickup checkout tables."""
    op.drop_table('reservation_holds')
    op.drop_table('order_items')
    op.drop_table('orders')
    op.drop_table('pickup_windows')
    op.drop_table('products')
    op.drop_table('coupons')
    op.drop_table('pickup_points')
