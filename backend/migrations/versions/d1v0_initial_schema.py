"""initial schema

Revision ID: d1v0initial
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the DlVery schema:
- users: accounts with a single role (ADMIN, INVTEAM, DLTEAM)
- products: catalog keyed by unique SKU; quantity is the on-hand count
- deliveries / delivery_items: assignments to delivery agents
- inventory_transactions: append-only ledger of quantity moves
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'd1v0initial'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
    ]


def upgrade():
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('full_name', sa.String(length=100), nullable=True),
        sa.Column('role', sa.String(length=16), nullable=False),
        sa.Column('phone_number', sa.String(length=16), nullable=True),
        sa.Column('enabled', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('username', name='uq_users_username'),
        sa.UniqueConstraint('email', name='uq_users_email'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_users_role', 'users', ['role'])

    # quantity is guarded by version_id (optimistic locking)
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=20), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.String(length=500), nullable=True),
        sa.Column('category', sa.String(length=32), nullable=True),
        sa.Column('damaged', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('perishable', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('expiry_date', sa.Date(), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sku', name='uq_products_sku'),
        sa.CheckConstraint('quantity >= 0', name='ck_products_quantity_non_negative'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_products_category', 'products', ['category'])
    op.create_index('ix_products_expiry_date', 'products', ['expiry_date'])

    op.create_table(
        'deliveries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('delivery_agent_id', sa.Integer(), nullable=False),
        sa.Column('customer_name', sa.String(length=100), nullable=True),
        sa.Column('customer_address', sa.String(length=255), nullable=True),
        sa.Column('customer_phone', sa.String(length=16), nullable=True),
        sa.Column('status', sa.String(length=24), nullable=False, server_default='PENDING'),
        sa.Column('priority', sa.String(length=16), nullable=False, server_default='NORMAL'),
        sa.Column('scheduled_date', sa.Date(), nullable=True),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('customer_signature', sa.Text(), nullable=True),
        sa.Column('notes', sa.String(length=500), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['delivery_agent_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_deliveries_delivery_agent_id', 'deliveries', ['delivery_agent_id'])
    op.create_index('ix_deliveries_status', 'deliveries', ['status'])
    op.create_index('ix_deliveries_scheduled_date', 'deliveries', ['scheduled_date'])
    op.create_index('ix_deliveries_agent_status', 'deliveries', ['delivery_agent_id', 'status'])
    op.create_index('ix_deliveries_agent_scheduled', 'deliveries', ['delivery_agent_id', 'scheduled_date'])

    op.create_table(
        'delivery_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('delivery_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=20), nullable=False),
        sa.Column('product_name', sa.String(length=100), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('damaged', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('returned', sa.Boolean(), nullable=False, server_default='0'),
        sa.ForeignKeyConstraint(['delivery_id'], ['deliveries.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_delivery_items_delivery_id', 'delivery_items', ['delivery_id'])
    op.create_index('ix_delivery_items_sku', 'delivery_items', ['sku'])

    # Append-only: rows are never updated or deleted
    op.create_table(
        'inventory_transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=20), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        # Positive, except ADJUSTMENT where it is the signed delta
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('delivery_id', sa.Integer(), nullable=True),
        sa.Column('notes', sa.String(length=255), nullable=True),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['delivery_id'], ['deliveries.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_inventory_transactions_product_id', 'inventory_transactions', ['product_id'])
    op.create_index('ix_inventory_transactions_sku', 'inventory_transactions', ['sku'])
    op.create_index('ix_inventory_transactions_user_id', 'inventory_transactions', ['user_id'])
    op.create_index('ix_inventory_transactions_delivery_id', 'inventory_transactions', ['delivery_id'])
    op.create_index('ix_inventory_transactions_timestamp', 'inventory_transactions', ['timestamp'])
    op.create_index('ix_invtx_product_timestamp', 'inventory_transactions', ['product_id', 'timestamp'])
    op.create_index('ix_invtx_type_timestamp', 'inventory_transactions', ['type', 'timestamp'])


def downgrade():
    """Drop all tables (destructive operation)."""
    op.drop_table('inventory_transactions')
    op.drop_table('delivery_items')
    op.drop_table('deliveries')
    op.drop_table('products')
    op.drop_table('users')
