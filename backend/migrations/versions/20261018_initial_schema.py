"""Initial schema: catalog, stock ledger, sales, purchasing, audit, auth

Revision ID: 20261018_initial
Revises:
Create Date: 2026-10-18

This migration creates:
1. Users and session tokens
2. Categories and products (stock as exact Numeric(14, 3))
3. Append-only stock ledger and stock alerts
4. Sales, sale lines (with scale readings) and payments
5. Suppliers, purchases, purchase lines and supplier payments
6. Customers, audit log and document sequences
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261018_initial'
down_revision = None
branch_labels = None
depends_on = None

QTY = sa.Numeric(14, 3)


def _ts(name, nullable=False, default=True):
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable,
                     server_default=sa.func.now() if default else None)


def upgrade():
    # ==========================================================================
    # 1. AUTH
    # ==========================================================================
    op.create_table('users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('username', sa.String(64), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('role', sa.String(32), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        _ts('created_at'),
        _ts('last_login_at', nullable=True, default=False),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_users_username', 'users', ['username'], unique=True)

    op.create_table('session_tokens',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('token_hash', sa.String(255), nullable=False),
        _ts('created_at'),
        _ts('last_used_at', nullable=True, default=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False),
        _ts('revoked_at', nullable=True, default=False),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_session_tokens_user_id', 'session_tokens', ['user_id'])
    op.create_index('ix_session_tokens_token_hash', 'session_tokens', ['token_hash'], unique=True)
    op.create_index('ix_session_tokens_expires_at', 'session_tokens', ['expires_at'])
    op.create_index('ix_session_tokens_is_revoked', 'session_tokens', ['is_revoked'])
    op.create_index('ix_session_tokens_user_active', 'session_tokens', ['user_id', 'is_revoked'])

    # ==========================================================================
    # 2. CATALOG
    # ==========================================================================
    op.create_table('categories',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(128), nullable=False, unique=True),
        sa.Column('description', sa.String(255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        _ts('created_at'),
        sqlite_autoincrement=True,
    )

    op.create_table('products',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('sku', sa.String(64), nullable=False, unique=True),
        sa.Column('barcode', sa.String(64), nullable=True, unique=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category_id', sa.Integer(), sa.ForeignKey('categories.id'), nullable=False),
        sa.Column('purchase_price_cents', sa.Integer(), nullable=False),
        sa.Column('selling_price_cents', sa.Integer(), nullable=False),
        sa.Column('tax_rate_bps', sa.Integer(), nullable=True),
        sa.Column('unit', sa.String(16), nullable=False),
        sa.Column('current_stock', QTY, nullable=False),
        sa.Column('min_stock_alert', QTY, nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False),
        _ts('created_at'),
        _ts('updated_at'),
        sa.CheckConstraint('current_stock >= 0', name='ck_products_stock_non_negative'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_products_category_id', 'products', ['category_id'])
    op.create_index('ix_products_name', 'products', ['name'])
    op.create_index('ix_products_active', 'products', ['is_active'])

    # ==========================================================================
    # 3. PARTIES
    # ==========================================================================
    op.create_table('customers',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('phone', sa.String(32), nullable=False, unique=True),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('total_orders', sa.Integer(), nullable=False),
        sa.Column('total_spent_cents', sa.Integer(), nullable=False),
        sa.Column('loyalty_points', sa.Integer(), nullable=False),
        _ts('created_at'),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sqlite_autoincrement=True,
    )

    op.create_table('suppliers',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('phone', sa.String(32), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('tax_number', sa.String(64), nullable=True),
        sa.Column('payment_terms', sa.String(128), nullable=True),
        sa.Column('opening_balance_cents', sa.Integer(), nullable=False),
        sa.Column('current_balance_cents', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        _ts('created_at'),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sqlite_autoincrement=True,
    )

    # ==========================================================================
    # 4. STOCK LEDGER + ALERTS
    # ==========================================================================
    op.create_table('stock_ledger_entries',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('movement_type', sa.String(16), nullable=False),
        sa.Column('quantity', QTY, nullable=False),
        sa.Column('before_stock', QTY, nullable=False),
        sa.Column('after_stock', QTY, nullable=False),
        sa.Column('reference_type', sa.String(32), nullable=True),
        sa.Column('reference', sa.String(64), nullable=True),
        sa.Column('notes', sa.String(255), nullable=True),
        sa.Column('actor_user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        _ts('created_at'),
        sa.CheckConstraint('after_stock >= 0', name='ck_ledger_after_non_negative'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_stock_ledger_entries_product_id', 'stock_ledger_entries', ['product_id'])
    op.create_index('ix_stock_ledger_entries_movement_type', 'stock_ledger_entries', ['movement_type'])
    op.create_index('ix_stock_ledger_entries_actor_user_id', 'stock_ledger_entries', ['actor_user_id'])
    op.create_index('ix_stock_ledger_entries_created_at', 'stock_ledger_entries', ['created_at'])
    op.create_index('ix_ledger_product_id', 'stock_ledger_entries', ['product_id', 'id'])
    op.create_index('ix_ledger_reference', 'stock_ledger_entries', ['reference_type', 'reference'])

    op.create_table('stock_alerts',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('current_stock', QTY, nullable=False),
        sa.Column('min_stock_level', QTY, nullable=False),
        sa.Column('status', sa.String(16), nullable=False),
        sa.Column('ledger_entry_id', sa.Integer(), sa.ForeignKey('stock_ledger_entries.id'), nullable=True),
        _ts('resolved_at', nullable=True, default=False),
        sa.Column('resolved_by_user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('resolution_note', sa.String(255), nullable=True),
        _ts('created_at'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_stock_alerts_product_id', 'stock_alerts', ['product_id'])
    op.create_index('ix_stock_alerts_status', 'stock_alerts', ['status'])
    op.create_index('ix_stock_alerts_product_status', 'stock_alerts', ['product_id', 'status'])

    # ==========================================================================
    # 5. SALES
    # ==========================================================================
    op.create_table('sales',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('invoice_no', sa.String(64), nullable=False, unique=True),
        sa.Column('customer_id', sa.Integer(), sa.ForeignKey('customers.id'), nullable=True),
        sa.Column('customer_name', sa.String(255), nullable=True),
        sa.Column('customer_phone', sa.String(32), nullable=True),
        sa.Column('subtotal_cents', sa.Integer(), nullable=False),
        sa.Column('discount_cents', sa.Integer(), nullable=False),
        sa.Column('tax_cents', sa.Integer(), nullable=False),
        sa.Column('total_cents', sa.Integer(), nullable=False),
        sa.Column('loyalty_points_earned', sa.Integer(), nullable=False),
        sa.Column('payment_method', sa.String(16), nullable=False),
        sa.Column('status', sa.String(16), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('cashier_user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        _ts('created_at'),
        sa.Column('voided_by_user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        _ts('voided_at', nullable=True, default=False),
        sa.Column('void_reason', sa.String(255), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_sales_customer_id', 'sales', ['customer_id'])
    op.create_index('ix_sales_status', 'sales', ['status'])
    op.create_index('ix_sales_cashier_user_id', 'sales', ['cashier_user_id'])
    op.create_index('ix_sales_created_at', 'sales', ['created_at'])
    op.create_index('ix_sales_status_created', 'sales', ['status', 'created_at'])

    op.create_table('sale_lines',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('sale_id', sa.Integer(), sa.ForeignKey('sales.id'), nullable=False),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('quantity', QTY, nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('tax_rate_bps', sa.Integer(), nullable=False),
        sa.Column('line_total_cents', sa.Integer(), nullable=False),
        sa.Column('tax_cents', sa.Integer(), nullable=False),
        sa.Column('weight_gross', QTY, nullable=True),
        sa.Column('weight_tare', QTY, nullable=True),
        sa.Column('weight_net', QTY, nullable=True),
        sa.Column('weight_unit', sa.String(16), nullable=True),
        _ts('weighed_at', nullable=True, default=False),
        sa.Column('scale_ref', sa.String(64), nullable=True),
        sa.Column('ledger_entry_id', sa.Integer(), sa.ForeignKey('stock_ledger_entries.id'), nullable=True),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_sale_lines_sale_id', 'sale_lines', ['sale_id'])
    op.create_index('ix_sale_lines_product_id', 'sale_lines', ['product_id'])

    op.create_table('payments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('sale_id', sa.Integer(), sa.ForeignKey('sales.id'), nullable=False),
        sa.Column('payment_method', sa.String(16), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(16), nullable=False),
        sa.Column('reference_no', sa.String(128), nullable=True),
        sa.Column('created_by_user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        _ts('created_at'),
        sa.Column('voided_by_user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        _ts('voided_at', nullable=True, default=False),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_payments_sale_id', 'payments', ['sale_id'])
    op.create_index('ix_payments_payment_method', 'payments', ['payment_method'])
    op.create_index('ix_payments_status', 'payments', ['status'])

    # ==========================================================================
    # 6. PURCHASING
    # ==========================================================================
    op.create_table('purchases',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('invoice_no', sa.String(64), nullable=False, unique=True),
        sa.Column('supplier_id', sa.Integer(), sa.ForeignKey('suppliers.id'), nullable=False),
        _ts('purchase_date'),
        sa.Column('total_cents', sa.Integer(), nullable=False),
        sa.Column('discount_cents', sa.Integer(), nullable=False),
        sa.Column('tax_cents', sa.Integer(), nullable=False),
        sa.Column('net_cents', sa.Integer(), nullable=False),
        sa.Column('payment_status', sa.String(16), nullable=False),
        sa.Column('payment_method', sa.String(16), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by_user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        _ts('created_at'),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_purchases_supplier_id', 'purchases', ['supplier_id'])
    op.create_index('ix_purchases_payment_status', 'purchases', ['payment_status'])
    op.create_index('ix_purchases_supplier_status', 'purchases', ['supplier_id', 'payment_status'])

    op.create_table('purchase_lines',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('purchase_id', sa.Integer(), sa.ForeignKey('purchases.id'), nullable=False),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('quantity', QTY, nullable=False),
        sa.Column('purchase_price_cents', sa.Integer(), nullable=False),
        sa.Column('selling_price_cents', sa.Integer(), nullable=True),
        sa.Column('line_total_cents', sa.Integer(), nullable=False),
        sa.Column('expiry_date', sa.Date(), nullable=True),
        sa.Column('ledger_entry_id', sa.Integer(), sa.ForeignKey('stock_ledger_entries.id'), nullable=True),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_purchase_lines_purchase_id', 'purchase_lines', ['purchase_id'])
    op.create_index('ix_purchase_lines_product_id', 'purchase_lines', ['product_id'])

    op.create_table('supplier_payments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('supplier_id', sa.Integer(), sa.ForeignKey('suppliers.id'), nullable=False),
        sa.Column('purchase_id', sa.Integer(), sa.ForeignKey('purchases.id'), nullable=True),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('payment_method', sa.String(16), nullable=False),
        sa.Column('reference_no', sa.String(128), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by_user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        _ts('created_at'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_supplier_payments_supplier_id', 'supplier_payments', ['supplier_id'])
    op.create_index('ix_supplier_payments_purchase_id', 'supplier_payments', ['purchase_id'])

    # ==========================================================================
    # 7. AUDIT + DOCUMENT NUMBERING
    # ==========================================================================
    op.create_table('audit_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('actor_user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('action', sa.String(64), nullable=False),
        sa.Column('entity', sa.String(64), nullable=False),
        sa.Column('entity_id', sa.Integer(), nullable=True),
        sa.Column('details', sa.JSON(), nullable=True),
        _ts('created_at'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_audit_logs_actor_user_id', 'audit_logs', ['actor_user_id'])
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'])
    op.create_index('ix_audit_logs_created_at', 'audit_logs', ['created_at'])
    op.create_index('ix_audit_entity', 'audit_logs', ['entity', 'entity_id'])

    op.create_table('document_sequences',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('document_type', sa.String(32), nullable=False),
        sa.Column('period_key', sa.String(16), nullable=False),
        sa.Column('next_number', sa.Integer(), nullable=False),
        _ts('updated_at'),
        sa.UniqueConstraint('document_type', 'period_key', name='uq_doc_sequences_type_period'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_document_sequences_document_type', 'document_sequences', ['document_type'])


def downgrade():
    for table in (
        'document_sequences', 'audit_logs',
        'supplier_payments', 'purchase_lines', 'purchases',
        'payments', 'sale_lines', 'sales',
        'stock_alerts', 'stock_ledger_entries',
        'suppliers', 'customers',
        'products', 'categories',
        'session_tokens', 'users',
    ):
        op.drop_table(table)
