"""initial ledger schema

Revision ID: b7c1d2e3f4a5
Revises:
Create Date: 2026-10-17 00:00:00.000000

Creates the complete ShopLedger schema:
- roles, users, session_tokens, login_history: employees and sessions
- brands, categories, products, stock_entries: catalogue and stock ledger
- customers, customer_orders, order_items: storefront orders
- bills, bill_items: finalized sales with frozen prices
- discounts, discount_rules: discount sources
- sequence_counters: atomic identifier allocation
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'b7c1d2e3f4a5'
down_revision = None
branch_labels = None
depends_on = None


def _timestamp(name: str, nullable: bool = False) -> sa.Column:
    if nullable:
        return sa.Column(name, sa.DateTime(timezone=True), nullable=True)
    return sa.Column(name, sa.DateTime(timezone=True), nullable=False,
                     server_default=sa.text('CURRENT_TIMESTAMP'))


def upgrade():
    # ============================================================================
    # Employees and sessions
    # ============================================================================
    op.create_table(
        'roles',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=32), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name', name='uq_roles_name'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('employee_id', sa.String(length=32), nullable=False),
        sa.Column('username', sa.String(length=100), nullable=False),
        sa.Column('mobile', sa.String(length=20), nullable=True),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role_id', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('inactive_reason', sa.String(length=255), nullable=True),
        _timestamp('created_at'),
        _timestamp('updated_at'),
        _timestamp('last_login_at', nullable=True),
        sa.ForeignKeyConstraint(['role_id'], ['roles.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('employee_id', name='uq_users_employee_id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_users_employee_id', 'users', ['employee_id'])
    op.create_index('ix_users_role_id', 'users', ['role_id'])

    op.create_table(
        'session_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('token_hash', sa.String(length=255), nullable=False),
        _timestamp('created_at'),
        _timestamp('last_used_at'),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False, server_default='0'),
        _timestamp('revoked_at', nullable=True),
        sa.Column('revoked_reason', sa.String(length=255), nullable=True),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.Column('user_agent', sa.String(length=255), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_session_tokens_user_id', 'session_tokens', ['user_id'])
    op.create_index('ix_session_tokens_token_hash', 'session_tokens', ['token_hash'], unique=True)
    op.create_index('ix_session_tokens_expires_at', 'session_tokens', ['expires_at'])
    op.create_index('ix_session_tokens_is_revoked', 'session_tokens', ['is_revoked'])
    op.create_index('ix_session_tokens_user_active', 'session_tokens', ['user_id', 'is_revoked'])

    op.create_table(
        'login_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        _timestamp('login_at'),
        _timestamp('logout_at', nullable=True),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_login_history_user_id', 'login_history', ['user_id'])
    op.create_index('ix_login_history_user_login', 'login_history', ['user_id', 'login_at'])

    # ============================================================================
    # Catalogue and stock ledger
    # ============================================================================
    op.create_table(
        'brands',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        _timestamp('created_at'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name', name='uq_brands_name'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'categories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        _timestamp('created_at'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name', name='uq_categories_name'),
        sqlite_autoincrement=True
    )

    # current_stock is guarded by a CHECK so no write path can drive it negative
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('brand_id', sa.Integer(), nullable=False),
        sa.Column('category_id', sa.Integer(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('barcode', sa.String(length=64), nullable=True),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('current_stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('low_stock_threshold', sa.Integer(), nullable=False, server_default='10'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        _timestamp('created_at'),
        _timestamp('updated_at'),
        sa.CheckConstraint('current_stock >= 0', name='ck_products_current_stock_non_negative'),
        sa.CheckConstraint('unit_price_cents >= 0', name='ck_products_unit_price_non_negative'),
        sa.ForeignKeyConstraint(['brand_id'], ['brands.id'], ),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_products_brand_id', 'products', ['brand_id'])
    op.create_index('ix_products_category_id', 'products', ['category_id'])
    op.create_index('ix_products_barcode', 'products', ['barcode'])
    op.create_index('ix_products_active_name', 'products', ['is_active', 'name'])

    op.create_table(
        'stock_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity_added', sa.Integer(), nullable=False),
        sa.Column('added_by_user_id', sa.Integer(), nullable=True),
        sa.Column('note', sa.String(length=255), nullable=True),
        _timestamp('entry_date'),
        sa.CheckConstraint('quantity_added > 0', name='ck_stock_entries_quantity_positive'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['added_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_stock_entries_product_id', 'stock_entries', ['product_id'])
    op.create_index('ix_stock_entries_added_by_user_id', 'stock_entries', ['added_by_user_id'])
    op.create_index('ix_stock_entries_product_date', 'stock_entries', ['product_id', 'entry_date'])

    # ============================================================================
    # Customers, orders and bills
    # ============================================================================
    op.create_table(
        'customers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('mobile', sa.String(length=20), nullable=False),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('whatsapp_opt_in', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('discount_bps', sa.Integer(), nullable=False, server_default='0'),
        _timestamp('created_at'),
        _timestamp('updated_at'),
        sa.CheckConstraint('discount_bps >= 0 AND discount_bps <= 10000', name='ck_customers_discount_range'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('mobile', name='uq_customers_mobile'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_customers_mobile', 'customers', ['mobile'])

    op.create_table(
        'bills',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('bill_no', sa.String(length=64), nullable=False),
        sa.Column('order_no', sa.String(length=64), nullable=True),
        _timestamp('bill_date'),
        sa.Column('customer_id', sa.Integer(), nullable=True),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('total_amount_cents', sa.Integer(), nullable=False),
        sa.Column('discount_amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('gst_amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('net_payable_cents', sa.Integer(), nullable=False),
        sa.Column('payment_mode', sa.String(length=16), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PAID'),
        sa.Column('cancelled_by_user_id', sa.Integer(), nullable=True),
        _timestamp('cancelled_at', nullable=True),
        sa.Column('cancel_reason', sa.String(length=255), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.CheckConstraint('net_payable_cents >= 0', name='ck_bills_net_payable_non_negative'),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['cancelled_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('bill_no', name='uq_bills_bill_no'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_bills_order_no', 'bills', ['order_no'])
    op.create_index('ix_bills_customer_id', 'bills', ['customer_id'])
    op.create_index('ix_bills_user_id', 'bills', ['user_id'])
    op.create_index('ix_bills_status', 'bills', ['status'])
    op.create_index('ix_bills_status_date', 'bills', ['status', 'bill_date'])

    op.create_table(
        'bill_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('bill_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('total_cents', sa.Integer(), nullable=False),
        sa.CheckConstraint('quantity > 0', name='ck_bill_items_quantity_positive'),
        sa.ForeignKeyConstraint(['bill_id'], ['bills.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_bill_items_bill_id', 'bill_items', ['bill_id'])
    op.create_index('ix_bill_items_product_id', 'bill_items', ['product_id'])

    op.create_table(
        'customer_orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_no', sa.String(length=64), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        _timestamp('order_date'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('total_estimated_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('bill_id', sa.Integer(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ),
        sa.ForeignKeyConstraint(['bill_id'], ['bills.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_no', name='uq_customer_orders_order_no'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_customer_orders_customer_id', 'customer_orders', ['customer_id'])
    op.create_index('ix_customer_orders_status', 'customer_orders', ['status'])
    op.create_index('ix_customer_orders_bill_id', 'customer_orders', ['bill_id'])
    op.create_index('ix_customer_orders_status_date', 'customer_orders', ['status', 'order_date'])

    op.create_table(
        'order_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.CheckConstraint('quantity > 0', name='ck_order_items_quantity_positive'),
        sa.ForeignKeyConstraint(['order_id'], ['customer_orders.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])
    op.create_index('ix_order_items_product_id', 'order_items', ['product_id'])

    # ============================================================================
    # Discounts and sequences
    # ============================================================================
    op.create_table(
        'discounts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('percentage_bps', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        _timestamp('created_at'),
        _timestamp('deactivated_at', nullable=True),
        sa.CheckConstraint('percentage_bps >= 0 AND percentage_bps <= 10000', name='ck_discounts_percentage_range'),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_discounts_is_active', 'discounts', ['is_active'])

    op.create_table(
        'discount_rules',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('min_amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('max_amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('percentage_bps', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        _timestamp('created_at'),
        sa.CheckConstraint('percentage_bps >= 0 AND percentage_bps <= 10000', name='ck_discount_rules_percentage_range'),
        sa.CheckConstraint('min_amount_cents >= 0', name='ck_discount_rules_min_non_negative'),
        sa.CheckConstraint('max_amount_cents >= 0', name='ck_discount_rules_max_non_negative'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_discount_rules_is_active', 'discount_rules', ['is_active'])

    op.create_table(
        'sequence_counters',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('namespace', sa.String(length=64), nullable=False),
        sa.Column('next_number', sa.Integer(), nullable=False, server_default='1'),
        _timestamp('updated_at'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('namespace', name='uq_sequence_counters_namespace'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_sequence_counters_namespace', 'sequence_counters', ['namespace'])


def downgrade():
    for table in (
        'sequence_counters',
        'discount_rules',
        'discounts',
        'order_items',
        'customer_orders',
        'bill_items',
        'bills',
        'customers',
        'stock_entries',
        'products',
        'categories',
        'brands',
        'login_history',
        'session_tokens',
        'users',
        'roles',
    ):
        op.drop_table(table)
