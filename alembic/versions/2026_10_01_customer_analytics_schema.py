"""Customer analytics schema

Revision ID: customer_analytics_001
Revises:
Create Date: 2026-10-01 09:00:00.000000

Creates the tables the customer analytics engine reads and writes:
1. customers, orders, products, customer_acquisition (filled by the storefront sync)
2. customer_rfm (append-only RFM snapshots, one group per calculation_date)

The engine only writes customers.customer_segment, customers.notes and
inserts into customer_rfm.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = 'customer_analytics_001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ========================================
    # STEP 1: STOREFRONT TABLES
    # ========================================

    op.create_table(
        'customers',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(255)),
        sa.Column('first_name', sa.String(100)),
        sa.Column('last_name', sa.String(100)),
        sa.Column('date_created', sa.DateTime(timezone=True)),
        sa.Column('first_order_date', sa.DateTime(timezone=True)),
        sa.Column('last_order_date', sa.DateTime(timezone=True)),
        sa.Column('total_spent', sa.Float(), nullable=False, server_default='0'),
        sa.Column('order_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('average_order_value', sa.Float(), nullable=False, server_default='0'),
        sa.Column('customer_segment', sa.String(50),
                  comment='Lifecycle segment written by the analytics engine'),
        sa.Column('notes', sa.Text()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_customers_customer_segment', 'customers', ['customer_segment'])

    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('customer_id', sa.Integer(), sa.ForeignKey('customers.id'), nullable=True),
        sa.Column('date_created', sa.DateTime(timezone=True)),
        sa.Column('total', sa.String(32), comment='Decimal string as sent by the storefront'),
        sa.Column('status', sa.String(30)),
        sa.Column('line_items', sa.JSON()),
    )
    op.create_index('ix_orders_customer_id', 'orders', ['customer_id'])
    op.create_index('ix_orders_date_created', 'orders', ['date_created'])

    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(255)),
        sa.Column('sku', sa.String(100)),
    )

    op.create_table(
        'customer_acquisition',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('customer_id', sa.Integer(), sa.ForeignKey('customers.id'), nullable=False),
        sa.Column('source', sa.String(100)),
        sa.Column('medium', sa.String(100)),
        sa.Column('campaign', sa.String(255)),
    )
    op.create_index('ix_customer_acquisition_customer_id', 'customer_acquisition', ['customer_id'])

    # ========================================
    # STEP 2: RFM SNAPSHOTS
    # ========================================

    op.create_table(
        'customer_rfm',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('customer_id', sa.Integer(), sa.ForeignKey('customers.id'), nullable=False),
        sa.Column('recency_score', sa.Integer(), nullable=False),
        sa.Column('frequency_score', sa.Integer(), nullable=False),
        sa.Column('monetary_score', sa.Integer(), nullable=False),
        sa.Column('rfm_score', sa.Integer(), nullable=False),
        sa.Column('rfm_segment', sa.String(50), nullable=False),
        sa.Column('calculation_date', sa.DateTime(timezone=True), nullable=False,
                  comment='Shared by every row of one calculation run'),
    )
    op.create_index('ix_customer_rfm_customer_id', 'customer_rfm', ['customer_id'])
    op.create_index('ix_customer_rfm_calculation_date', 'customer_rfm', ['calculation_date'])


def downgrade() -> None:
    op.drop_index('ix_customer_rfm_calculation_date', 'customer_rfm')
    op.drop_index('ix_customer_rfm_customer_id', 'customer_rfm')
    op.drop_table('customer_rfm')

    op.drop_index('ix_customer_acquisition_customer_id', 'customer_acquisition')
    op.drop_table('customer_acquisition')

    op.drop_table('products')

    op.drop_index('ix_orders_date_created', 'orders')
    op.drop_index('ix_orders_customer_id', 'orders')
    op.drop_table('orders')

    op.drop_index('ix_customers_customer_segment', 'customers')
    op.drop_table('customers')
