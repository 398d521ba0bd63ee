"""initial stock ledger schema

Revision ID: b7c1e2d3f4a5
Revises:
Create Date: 2026-10-17 00:00:00.000000

This migration creates the complete stock ledger schema from scratch:
- categories: stock-keeping categories with the aggregate stock counter
- stock_movements: append-only movement log
- suppliers, purchase_receipts, purchase_receipt_items: receiving
- products, product_sequences: serialized assets and id minting
- transactions, transaction_items: asset check-out/check-in and friends
- document_sequences: per-day reference number allocation
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'b7c1e2d3f4a5'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ============================================================================
    # categories: current_stock/is_low_stock written only with a movement
    # ============================================================================
    op.create_table(
        'categories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=50), nullable=False),
        sa.Column('code', sa.String(length=3), nullable=False),
        sa.Column('has_stock', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('min_stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('max_stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('current_stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('reorder_point', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_low_stock', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('unit', sa.String(length=20), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code', name='uq_categories_code'),
        sa.UniqueConstraint('name', name='uq_categories_name'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_categories_stock_low', 'categories', ['has_stock', 'is_low_stock'])

    # ============================================================================
    # stock_movements: append-only, never updated or deleted
    # ============================================================================
    op.create_table(
        'stock_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('category_id', sa.Integer(), nullable=False),
        sa.Column('movement_type', sa.String(length=20), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('reference_type', sa.String(length=40), nullable=False, server_default='manual'),
        sa.Column('reference_id', sa.Integer(), nullable=True),
        sa.Column('before_stock', sa.Integer(), nullable=False),
        sa.Column('after_stock', sa.Integer(), nullable=False),
        sa.Column('movement_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_by', sa.String(length=64), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('quantity >= 0', name='ck_stock_movements_quantity_nonneg'),
        sa.CheckConstraint('after_stock >= 0', name='ck_stock_movements_after_nonneg'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_stock_movements_category_id', 'stock_movements', ['category_id'])
    op.create_index('ix_stock_movements_movement_type', 'stock_movements', ['movement_type'])
    op.create_index('ix_stock_movements_movement_date', 'stock_movements', ['movement_date'])
    op.create_index('ix_stock_movements_category_date', 'stock_movements', ['category_id', 'movement_date'])
    op.create_index('ix_stock_movements_reference', 'stock_movements', ['reference_type', 'reference_id'])

    # ============================================================================
    # suppliers
    # ============================================================================
    op.create_table(
        'suppliers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('contact_person', sa.String(length=100), nullable=True),
        sa.Column('phone', sa.String(length=30), nullable=True),
        sa.Column('email', sa.String(length=100), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
        sqlite_autoincrement=True
    )

    # ============================================================================
    # purchase_receipts / purchase_receipt_items: money in integer cents
    # ============================================================================
    op.create_table(
        'purchase_receipts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('receipt_number', sa.String(length=50), nullable=False),
        sa.Column('po_number', sa.String(length=50), nullable=True),
        sa.Column('supplier_id', sa.Integer(), nullable=False),
        sa.Column('receipt_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('total_amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='completed'),
        sa.Column('created_by', sa.String(length=64), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('receipt_number', name='uq_purchase_receipts_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_purchase_receipts_supplier_id', 'purchase_receipts', ['supplier_id'])
    op.create_index('ix_purchase_receipts_status', 'purchase_receipts', ['status'])
    op.create_index('ix_purchase_receipts_status_date', 'purchase_receipts', ['status', 'receipt_date'])

    op.create_table(
        'purchase_receipt_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('receipt_id', sa.Integer(), nullable=False),
        sa.Column('category_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('serial_numbers', sa.Text(), nullable=True),
        sa.Column('condition', sa.String(length=20), nullable=False, server_default='New'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['receipt_id'], ['purchase_receipts.id']),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('quantity > 0', name='ck_receipt_items_quantity_pos'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_purchase_receipt_items_receipt_id', 'purchase_receipt_items', ['receipt_id'])
    op.create_index('ix_purchase_receipt_items_category_id', 'purchase_receipt_items', ['category_id'])

    # ============================================================================
    # products: serialized assets, not counted in categories.current_stock
    # ============================================================================
    op.create_table(
        'products',
        sa.Column('product_id', sa.String(length=20), nullable=False),
        sa.Column('category_id', sa.Integer(), nullable=False),
        sa.Column('brand', sa.String(length=50), nullable=True),
        sa.Column('model', sa.String(length=50), nullable=True),
        sa.Column('serial_number', sa.String(length=100), nullable=True),
        sa.Column('supplier_id', sa.Integer(), nullable=True),
        sa.Column('po_number', sa.String(length=50), nullable=True),
        sa.Column('receipt_item_id', sa.Integer(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('location', sa.String(length=100), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='Available'),
        sa.Column('condition', sa.String(length=20), nullable=False, server_default='New'),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('purchase_date', sa.Date(), nullable=True),
        sa.Column('purchase_price_cents', sa.Integer(), nullable=True),
        sa.Column('last_maintenance_date', sa.Date(), nullable=True),
        sa.Column('ticketing_id', sa.String(length=50), nullable=True),
        sa.Column('is_linked_to_ticketing', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id']),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id']),
        sa.ForeignKeyConstraint(['receipt_item_id'], ['purchase_receipt_items.id']),
        sa.PrimaryKeyConstraint('product_id'),
    )
    op.create_index('ix_products_category_id', 'products', ['category_id'])
    op.create_index('ix_products_supplier_id', 'products', ['supplier_id'])
    op.create_index('ix_products_receipt_item_id', 'products', ['receipt_item_id'])
    op.create_index('ix_products_status', 'products', ['status'])
    op.create_index('ix_products_category_status', 'products', ['category_id', 'status'])

    op.create_table(
        'product_sequences',
        sa.Column('category_id', sa.Integer(), nullable=False),
        sa.Column('next_number', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id']),
        sa.PrimaryKeyConstraint('category_id'),
    )

    # ============================================================================
    # transactions / transaction_items: asset state, never category stock
    # ============================================================================
    op.create_table(
        'transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('transaction_type', sa.String(length=20), nullable=False),
        sa.Column('reference_no', sa.String(length=50), nullable=True),
        sa.Column('first_person', sa.String(length=100), nullable=False),
        sa.Column('second_person', sa.String(length=100), nullable=True),
        sa.Column('location', sa.String(length=100), nullable=False),
        sa.Column('transaction_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='open'),
        sa.Column('created_by', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_transactions_reference_no', 'transactions', ['reference_no'])
    op.create_index('ix_transactions_status', 'transactions', ['status'])
    op.create_index('ix_transactions_type_date', 'transactions', ['transaction_type', 'transaction_date'])

    op.create_table(
        'transaction_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('transaction_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.String(length=20), nullable=False),
        sa.Column('condition_before', sa.String(length=20), nullable=True),
        sa.Column('condition_after', sa.String(length=20), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='processed'),
        sa.ForeignKeyConstraint(['transaction_id'], ['transactions.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.product_id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('transaction_id', 'product_id', name='uq_transaction_items_product'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_transaction_items_transaction_id', 'transaction_items', ['transaction_id'])
    op.create_index('ix_transaction_items_product_id', 'transaction_items', ['product_id'])

    # ============================================================================
    # document_sequences: one row per (document_type, day)
    # ============================================================================
    op.create_table(
        'document_sequences',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('document_type', sa.String(length=32), nullable=False),
        sa.Column('sequence_date', sa.String(length=8), nullable=False),
        sa.Column('next_number', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('document_type', 'sequence_date', name='uq_doc_sequences_type_date'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_document_sequences_document_type', 'document_sequences', ['document_type'])


def downgrade():
    op.drop_table('document_sequences')
    op.drop_table('transaction_items')
    op.drop_table('transactions')
    op.drop_table('product_sequences')
    op.drop_table('products')
    op.drop_table('purchase_receipt_items')
    op.drop_table('purchase_receipts')
    op.drop_table('suppliers')
    op.drop_table('stock_movements')
    op.drop_table('categories')
