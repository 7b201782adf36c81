"""initial procurement schema

Revision ID: p0001
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the purchasing/inventory schema:
- categories, products, suppliers, staff: master data
- orders: purchase order header with lifecycle dates
- purchase_orders: one batch per order line, with expiry tracking
- notifications: dashboard alerts (insert-only from the core)
- document_sequences: per-day order number counters
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'p0001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'categories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('image_url', sa.String(length=512), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
        sqlite_autoincrement=True
    )

    # ============================================================================
    # products: current_stock is a counter, only changed by single UPDATE statements
    # ============================================================================
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('barcode', sa.String(length=64), nullable=True),
        sa.Column('unit', sa.String(length=16), nullable=False, server_default='piece'),
        sa.Column('category_id', sa.Integer(), nullable=True),
        sa.Column('image_url', sa.String(length=512), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('current_stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('min_qty', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('recommended_qty', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.CheckConstraint('current_stock >= 0', name='ck_products_stock_non_negative'),
        sa.CheckConstraint(
            "unit IN ('liter', 'kilogram', 'box', 'piece', 'meter', 'pack', 'bottle')",
            name='ck_products_unit'
        ),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_products_category', 'products', ['category_id'])

    op.create_table(
        'suppliers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('contact_person', sa.String(length=255), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone1', sa.String(length=64), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('image_url', sa.String(length=512), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'staff',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('fullname', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=16), nullable=False, server_default='staff'),
        sa.Column('avatar', sa.String(length=512), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
        sqlite_autoincrement=True
    )

    # ============================================================================
    # orders: status moves only through conditional UPDATEs (see order_service)
    # ============================================================================
    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_number', sa.String(length=32), nullable=False),
        sa.Column('supplier_id', sa.Integer(), nullable=False),
        sa.Column('staff_id', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='not assigned'),
        sa.Column('total_amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('bill_url', sa.String(length=512), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('assigned_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('pending_review_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('submitted_by_staff_id', sa.Integer(), nullable=True),
        sa.Column('verified_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('verified_by_staff_id', sa.Integer(), nullable=True),
        sa.Column('paid_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('canceled_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('expected_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.CheckConstraint('total_amount_cents >= 0', name='ck_orders_total_non_negative'),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id'], ),
        sa.ForeignKeyConstraint(['staff_id'], ['staff.id'], ),
        sa.ForeignKeyConstraint(['submitted_by_staff_id'], ['staff.id'], ),
        sa.ForeignKeyConstraint(['verified_by_staff_id'], ['staff.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_number', name='uq_orders_order_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_orders_supplier_id', 'orders', ['supplier_id'])
    op.create_index('ix_orders_status_created', 'orders', ['status', 'created_at'])
    op.create_index('ix_orders_staff_status', 'orders', ['staff_id', 'status'])

    # ============================================================================
    # purchase_orders: batches; is_expired guards the one-time stock debit
    # ============================================================================
    op.create_table(
        'purchase_orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_cost_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('expiration_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('remaining_qte', sa.Integer(), nullable=False),
        sa.Column('is_expired', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('expired_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('expired_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.CheckConstraint('quantity > 0', name='ck_purchase_orders_quantity_positive'),
        sa.CheckConstraint('unit_cost_cents >= 0', name='ck_purchase_orders_cost_non_negative'),
        sa.CheckConstraint('remaining_qte >= 0', name='ck_purchase_orders_remaining_non_negative'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_id', 'position', name='uq_purchase_orders_order_position'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_purchase_orders_order_id', 'purchase_orders', ['order_id'])
    op.create_index('ix_purchase_orders_product_id', 'purchase_orders', ['product_id'])
    op.create_index('ix_purchase_orders_expiry_scan', 'purchase_orders', ['is_expired', 'expiration_date'])

    op.create_table(
        'notifications',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=32), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('recipient_role', sa.String(length=16), nullable=True),
        sa.Column('action_url', sa.String(length=512), nullable=True),
        sa.Column('product_id', sa.Integer(), nullable=True),
        sa.Column('purchase_order_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['purchase_order_id'], ['purchase_orders.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_notifications_type_created', 'notifications', ['type', 'created_at'])
    op.create_index('ix_notifications_product_id', 'notifications', ['product_id'])
    op.create_index('ix_notifications_purchase_order_id', 'notifications', ['purchase_order_id'])

    op.create_table(
        'document_sequences',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('document_type', sa.String(length=32), nullable=False),
        sa.Column('scope_key', sa.String(length=32), nullable=False),
        sa.Column('next_number', sa.Integer(), nullable=False, server_default='1'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('document_type', 'scope_key', name='uq_document_sequences_type_scope'),
        sqlite_autoincrement=True
    )


def downgrade():
    op.drop_table('document_sequences')
    op.drop_index('ix_notifications_purchase_order_id', table_name='notifications')
    op.drop_index('ix_notifications_product_id', table_name='notifications')
    op.drop_index('ix_notifications_type_created', table_name='notifications')
    op.drop_table('notifications')
    op.drop_index('ix_purchase_orders_expiry_scan', table_name='purchase_orders')
    op.drop_index('ix_purchase_orders_product_id', table_name='purchase_orders')
    op.drop_index('ix_purchase_orders_order_id', table_name='purchase_orders')
    op.drop_table('purchase_orders')
    op.drop_index('ix_orders_staff_status', table_name='orders')
    op.drop_index('ix_orders_status_created', table_name='orders')
    op.drop_index('ix_orders_supplier_id', table_name='orders')
    op.drop_table('orders')
    op.drop_table('staff')
    op.drop_table('suppliers')
    op.drop_index('ix_products_category', table_name='products')
    op.drop_table('products')
    op.drop_table('categories')
