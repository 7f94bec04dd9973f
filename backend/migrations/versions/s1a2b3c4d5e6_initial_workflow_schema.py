"""initial workflow schema

Revision ID: s1a2b3c4d5e6
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the complete count-request workflow schema:
- stores, users: directory master data (read-mostly)
- catalog_products, store_stock: local product catalog backing
- product_requests, request_codes: tickets and their product codes
- user_product_assignments: taxonomy grants used to route codes
- inventory_counts: reconciliation records, one per code
- request_history, inventory_count_history, assignment_history: append-only audit trail
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 's1a2b3c4d5e6'
down_revision = None
branch_labels = None
depends_on = None


def _money():
    return sa.Numeric(precision=18, scale=4)


def upgrade():
    # ============================================================================
    # stores / users: directory master data
    # ============================================================================
    op.create_table(
        'stores',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=50), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('stores', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_stores_code'), ['code'], unique=False)

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('full_name', sa.String(length=200), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('profile', sa.String(length=32), nullable=False),
        sa.Column('store_code', sa.String(length=50), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('last_seen_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('username'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('users', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_users_username'), ['username'], unique=False)
        batch_op.create_index('ix_users_store_profile', ['store_code', 'profile'], unique=False)

    # ============================================================================
    # catalog_products / store_stock: local catalog
    # ============================================================================
    op.create_table(
        'catalog_products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_code', sa.String(length=64), nullable=False),
        sa.Column('barcode', sa.String(length=64), nullable=True),
        sa.Column('description', sa.String(length=255), nullable=False),
        sa.Column('description2', sa.String(length=255), nullable=True),
        sa.Column('division_code', sa.String(length=20), nullable=True),
        sa.Column('division', sa.String(length=120), nullable=True),
        sa.Column('category_code', sa.String(length=20), nullable=True),
        sa.Column('category', sa.String(length=120), nullable=True),
        sa.Column('group_code', sa.String(length=20), nullable=True),
        sa.Column('group_name', sa.String(length=120), nullable=True),
        sa.Column('subgroup_code', sa.String(length=20), nullable=True),
        sa.Column('subgroup', sa.String(length=120), nullable=True),
        sa.Column('unit_measure', sa.String(length=16), nullable=True),
        sa.Column('unit_price', _money(), nullable=False),
        sa.Column('unit_cost', _money(), nullable=False),
        sa.Column('is_blocked', sa.Boolean(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('product_code'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('catalog_products', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_catalog_products_product_code'), ['product_code'], unique=False)
        batch_op.create_index(batch_op.f('ix_catalog_products_barcode'), ['barcode'], unique=False)
        batch_op.create_index('ix_catalog_products_division', ['division_code'], unique=False)
        batch_op.create_index(
            'ix_catalog_products_taxonomy',
            ['division_code', 'category_code', 'group_code', 'subgroup_code'],
            unique=False,
        )

    op.create_table(
        'store_stock',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_code', sa.String(length=50), nullable=False),
        sa.Column('product_code', sa.String(length=64), nullable=False),
        sa.Column('quantity', _money(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('store_code', 'product_code', name='uq_store_stock_store_product'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('store_stock', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_store_stock_store_code'), ['store_code'], unique=False)
        batch_op.create_index(batch_op.f('ix_store_stock_product_code'), ['product_code'], unique=False)

    # ============================================================================
    # product_requests / request_codes: tickets
    # ============================================================================
    op.create_table(
        'product_requests',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('ticket_number', sa.String(length=32), nullable=False),
        sa.Column('requester_id', sa.Integer(), nullable=False),
        sa.Column('store_code', sa.String(length=50), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('priority', sa.String(length=20), nullable=False),
        sa.Column('description', sa.String(length=1000), nullable=False),
        sa.Column('due_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('total_codes', sa.Integer(), nullable=False),
        sa.Column('completed_codes', sa.Integer(), nullable=False),
        sa.Column('pending_codes', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_by_user_id', sa.Integer(), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['requester_id'], ['users.id']),
        sa.ForeignKeyConstraint(['updated_by_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('ticket_number'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('product_requests', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_product_requests_ticket_number'), ['ticket_number'], unique=False)
        batch_op.create_index(batch_op.f('ix_product_requests_requester_id'), ['requester_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_product_requests_store_code'), ['store_code'], unique=False)
        batch_op.create_index(batch_op.f('ix_product_requests_status'), ['status'], unique=False)
        batch_op.create_index(batch_op.f('ix_product_requests_priority'), ['priority'], unique=False)
        batch_op.create_index('ix_product_requests_store_status', ['store_code', 'status'], unique=False)
        batch_op.create_index('ix_product_requests_created_at', ['created_at'], unique=False)

    op.create_table(
        'request_codes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('request_id', sa.Integer(), nullable=False),
        sa.Column('product_code', sa.String(length=64), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('assigned_to_id', sa.Integer(), nullable=True),
        sa.Column('assignment_type', sa.String(length=20), nullable=True),
        sa.Column('assignment_info', sa.String(length=255), nullable=True),
        sa.Column('notes', sa.String(length=500), nullable=True),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['request_id'], ['product_requests.id']),
        sa.ForeignKeyConstraint(['assigned_to_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('request_id', 'product_code', name='uq_request_codes_request_product'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('request_codes', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_request_codes_request_id'), ['request_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_request_codes_product_code'), ['product_code'], unique=False)
        batch_op.create_index(batch_op.f('ix_request_codes_status'), ['status'], unique=False)
        batch_op.create_index('ix_request_codes_assigned_status', ['assigned_to_id', 'status'], unique=False)

    # ============================================================================
    # user_product_assignments: taxonomy grants
    # ============================================================================
    op.create_table(
        'user_product_assignments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('store_code', sa.String(length=50), nullable=False),
        sa.Column('assignment_type', sa.String(length=20), nullable=False),
        sa.Column('division_code', sa.String(length=20), nullable=True),
        sa.Column('division', sa.String(length=120), nullable=True),
        sa.Column('category_code', sa.String(length=20), nullable=True),
        sa.Column('category', sa.String(length=120), nullable=True),
        sa.Column('group_code', sa.String(length=20), nullable=True),
        sa.Column('group_name', sa.String(length=120), nullable=True),
        sa.Column('subgroup_code', sa.String(length=20), nullable=True),
        sa.Column('subgroup', sa.String(length=120), nullable=True),
        sa.Column('assigned_by_id', sa.Integer(), nullable=False),
        sa.Column('assigned_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('deactivated_by_id', sa.Integer(), nullable=True),
        sa.Column('deactivated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['assigned_by_id'], ['users.id']),
        sa.ForeignKeyConstraint(['deactivated_by_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('user_product_assignments', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_user_product_assignments_user_id'), ['user_id'], unique=False)
        batch_op.create_index(
            'ix_upa_user_store_type_active',
            ['user_id', 'store_code', 'assignment_type', 'is_active'],
            unique=False,
        )
        batch_op.create_index('ix_upa_store_active', ['store_code', 'is_active'], unique=False)

    # ============================================================================
    # inventory_counts: reconciliation records
    # ============================================================================
    op.create_table(
        'inventory_counts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('request_id', sa.Integer(), nullable=False),
        sa.Column('code_id', sa.Integer(), nullable=False),
        sa.Column('store_code', sa.String(length=50), nullable=False),
        sa.Column('product_code', sa.String(length=64), nullable=False),
        sa.Column('barcode', sa.String(length=64), nullable=True),
        sa.Column('description', sa.String(length=255), nullable=False),
        sa.Column('division_code', sa.String(length=20), nullable=True),
        sa.Column('category_code', sa.String(length=20), nullable=True),
        sa.Column('calculated_stock', _money(), nullable=False),
        sa.Column('physical_quantity', _money(), nullable=True),
        sa.Column('unit_cost', _money(), nullable=False),
        sa.Column('difference', _money(), nullable=False),
        sa.Column('total_cost', _money(), nullable=False),
        sa.Column('comment', sa.String(length=500), nullable=True),
        sa.Column('movement_type', sa.String(length=20), nullable=False),
        sa.Column('code_filter_status', sa.String(length=20), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_by_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_by_id', sa.Integer(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['request_id'], ['product_requests.id']),
        sa.ForeignKeyConstraint(['code_id'], ['request_codes.id']),
        sa.ForeignKeyConstraint(['created_by_id'], ['users.id']),
        sa.ForeignKeyConstraint(['updated_by_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code_id', name='uq_inventory_counts_code'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('inventory_counts', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_inventory_counts_request_id'), ['request_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_inventory_counts_product_code'), ['product_code'], unique=False)
        batch_op.create_index(batch_op.f('ix_inventory_counts_code_filter_status'), ['code_filter_status'], unique=False)
        batch_op.create_index(batch_op.f('ix_inventory_counts_status'), ['status'], unique=False)
        batch_op.create_index('ix_inventory_counts_store_status', ['store_code', 'status'], unique=False)
        batch_op.create_index('ix_inventory_counts_division', ['division_code'], unique=False)

    # ============================================================================
    # Audit trail (append-only; enforced by ORM listeners)
    # ============================================================================
    op.create_table(
        'request_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('request_id', sa.Integer(), nullable=False),
        sa.Column('code_id', sa.Integer(), nullable=True),
        sa.Column('product_code', sa.String(length=64), nullable=True),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('action', sa.String(length=32), nullable=False),
        sa.Column('old_value', sa.String(length=255), nullable=True),
        sa.Column('new_value', sa.String(length=255), nullable=True),
        sa.Column('comment', sa.String(length=1000), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['request_id'], ['product_requests.id']),
        sa.ForeignKeyConstraint(['code_id'], ['request_codes.id']),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('request_history', schema=None) as batch_op:
        batch_op.create_index('ix_request_history_request_created', ['request_id', 'created_at'], unique=False)
        batch_op.create_index('ix_request_history_code', ['code_id'], unique=False)

    op.create_table(
        'inventory_count_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('count_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('action', sa.String(length=32), nullable=False),
        sa.Column('old_value', sa.String(length=255), nullable=True),
        sa.Column('new_value', sa.String(length=255), nullable=True),
        sa.Column('comment', sa.String(length=1000), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['count_id'], ['inventory_counts.id']),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('inventory_count_history', schema=None) as batch_op:
        batch_op.create_index('ix_count_history_count_created', ['count_id', 'created_at'], unique=False)

    op.create_table(
        'assignment_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('assignment_id', sa.Integer(), nullable=False),
        sa.Column('target_user_id', sa.Integer(), nullable=False),
        sa.Column('store_code', sa.String(length=50), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('action', sa.String(length=32), nullable=False),
        sa.Column('old_value', sa.String(length=255), nullable=True),
        sa.Column('new_value', sa.String(length=255), nullable=True),
        sa.Column('comment', sa.String(length=1000), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['assignment_id'], ['user_product_assignments.id']),
        sa.ForeignKeyConstraint(['target_user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('assignment_history', schema=None) as batch_op:
        batch_op.create_index('ix_assignment_history_assignment', ['assignment_id'], unique=False)


def downgrade():
    """Drop all tables (destructive operation)."""
    op.drop_table('assignment_history')
    op.drop_table('inventory_count_history')
    op.drop_table('request_history')
    op.drop_table('inventory_counts')
    op.drop_table('user_product_assignments')
    op.drop_table('request_codes')
    op.drop_table('product_requests')
    op.drop_table('store_stock')
    op.drop_table('catalog_products')
    op.drop_table('users')
    op.drop_table('stores')
