"""create_fulfillment_tables

Revision ID: 5f1c0a9e7b21
Revises:
Create Date: 2026-10-19

Orders, customers, addresses, shipments and the sync status table.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '5f1c0a9e7b21'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('email', sa.String(), nullable=False, unique=True, index=True),
        sa.Column('cpf', sa.String(), nullable=True),
        sa.Column('phone', sa.String(), nullable=True),
        sa.Column('role', sa.String(), default='user'),
        sa.Column('created_at', sa.DateTime()),
    )

    op.create_table(
        'addresses',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True, index=True),
        sa.Column('recipient_name', sa.String(), nullable=True),
        sa.Column('street', sa.String(), nullable=False),
        sa.Column('number', sa.String(), nullable=False),
        sa.Column('complement', sa.String(), nullable=True),
        sa.Column('neighborhood', sa.String(), nullable=False),
        sa.Column('city', sa.String(), nullable=False),
        sa.Column('state', sa.String(2), nullable=False),
        sa.Column('cep', sa.String(), nullable=False),
    )

    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
    )

    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False, index=True),
        sa.Column('address_id', sa.Integer(), sa.ForeignKey('addresses.id'), nullable=True),
        sa.Column('status', sa.String(), nullable=False, server_default='pending', index=True),
        sa.Column('shipping_tracking_code', sa.String(), nullable=True, index=True),
        sa.Column('return_reason', sa.Text(), nullable=True),
        sa.Column('return_rejection_reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime()),
        sa.Column('updated_at', sa.DateTime()),
    )

    op.create_table(
        'order_items',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('orders.id'), nullable=False, index=True),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
    )

    op.create_table(
        'shipments',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('orders.id'), nullable=False, index=True),

        # Carrier identity
        sa.Column('melhor_envio_id', sa.String(), nullable=True, unique=True, index=True),
        sa.Column('protocol', sa.String(), nullable=True),
        sa.Column('tracking_code', sa.String(), nullable=True, index=True),

        # Service
        sa.Column('service_id', sa.Integer(), nullable=True),
        sa.Column('service_name', sa.String(), nullable=True),
        sa.Column('carrier', sa.String(), nullable=True),

        # Lifecycle
        sa.Column('status', sa.String(), nullable=False, server_default='pending', index=True),
        sa.Column('paid', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('posted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('posted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delivered', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('canceled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('canceled_at', sa.DateTime(timezone=True), nullable=True),

        sa.Column('label_url', sa.String(), nullable=True),

        # Pricing
        sa.Column('price', sa.Numeric(10, 2), nullable=True),
        sa.Column('discount', sa.Numeric(10, 2), server_default='0'),
        sa.Column('final_price', sa.Numeric(10, 2), nullable=True),
        sa.Column('delivery_time', sa.Integer(), nullable=True),

        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime()),
        sa.Column('updated_at', sa.DateTime()),
    )

    op.create_table(
        'data_sync_status',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        sa.Column('source_name', sa.String(), unique=True, index=True),
        sa.Column('source_type', sa.String()),
        sa.Column('last_sync_attempt', sa.DateTime(), index=True),
        sa.Column('last_successful_sync', sa.DateTime(), nullable=True, index=True),
        sa.Column('sync_status', sa.String(), index=True),
        sa.Column('records_processed', sa.Integer(), server_default='0'),
        sa.Column('records_synced', sa.Integer(), server_default='0'),
        sa.Column('records_failed', sa.Integer(), server_default='0'),
        sa.Column('sync_duration_seconds', sa.Float(), nullable=True),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('error_count', sa.Integer(), server_default='0'),
        sa.Column('first_error_at', sa.DateTime(), nullable=True),
        sa.Column('is_healthy', sa.Boolean(), server_default=sa.true(), index=True),
        sa.Column('health_score', sa.Integer(), server_default='100'),
        sa.Column('health_issues', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime()),
        sa.Column('updated_at', sa.DateTime()),
    )


def downgrade() -> None:
    op.drop_table('data_sync_status')
    op.drop_table('shipments')
    op.drop_table('order_items')
    op.drop_table('orders')
    op.drop_table('products')
    op.drop_table('addresses')
    op.drop_table('users')
