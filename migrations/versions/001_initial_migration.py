"""Initial migration

Revision ID: 001
Revises:
Create Date: 2024-01-01 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Create companies table
    op.create_table('companies',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=True, default=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_companies_id'), 'companies', ['id'], unique=False)
    op.create_index(op.f('ix_companies_name'), 'companies', ['name'], unique=True)

    # Create roles table
    op.create_table('roles',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=50), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('permissions', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name')
    )
    op.create_index(op.f('ix_roles_id'), 'roles', ['id'], unique=False)

    # Create users table
    op.create_table('users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('phone', sa.String(length=20), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('password_hash', sa.String(length=200), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=True),
        sa.Column('role_id', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True, default=True),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ),
        sa.ForeignKeyConstraint(['role_id'], ['roles.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_users_id'), 'users', ['id'], unique=False)
    op.create_index(op.f('ix_users_phone'), 'users', ['phone'], unique=True)

    # Create processes table
    op.create_table('processes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('production_line', sa.String(length=100), nullable=False),
        sa.Column('production_category', sa.String(length=50), nullable=False),
        sa.Column('product_name', sa.String(length=100), nullable=False),
        sa.Column('product_process', sa.String(length=100), nullable=False),
        sa.Column('unit_price', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('unit', sa.String(length=20), nullable=True, default='件'),
        sa.Column('effective_date', sa.Date(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True, default=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_processes_id'), 'processes', ['id'], unique=False)
    op.create_index(op.f('ix_processes_company_id'), 'processes', ['company_id'], unique=False)
    op.create_index(
        'ix_processes_duplicate_key', 'processes',
        ['company_id', 'production_line', 'production_category', 'product_name', 'product_process'],
        unique=False
    )

    # Create timesheet_records table
    op.create_table('timesheet_records',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=True),
        sa.Column('work_date', sa.Date(), nullable=False),
        sa.Column('shift_type', sa.String(length=20), nullable=True, default='白班'),
        sa.Column('supervisor_id', sa.Integer(), nullable=True),
        sa.Column('section_chief_id', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=30), nullable=False, default='pending'),
        sa.Column('user_name', sa.String(length=100), nullable=True),
        sa.Column('supervisor_name', sa.String(length=100), nullable=True),
        sa.Column('section_chief_name', sa.String(length=100), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ),
        sa.ForeignKeyConstraint(['supervisor_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['section_chief_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_timesheet_records_id'), 'timesheet_records', ['id'], unique=False)
    op.create_index(op.f('ix_timesheet_records_user_id'), 'timesheet_records', ['user_id'], unique=False)
    op.create_index(op.f('ix_timesheet_records_work_date'), 'timesheet_records', ['work_date'], unique=False)
    op.create_index(op.f('ix_timesheet_records_supervisor_id'), 'timesheet_records', ['supervisor_id'], unique=False)
    op.create_index(op.f('ix_timesheet_records_section_chief_id'), 'timesheet_records', ['section_chief_id'], unique=False)
    op.create_index(op.f('ix_timesheet_records_status'), 'timesheet_records', ['status'], unique=False)

    # Create timesheet_record_items table
    op.create_table('timesheet_record_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('timesheet_record_id', sa.Integer(), nullable=False),
        sa.Column('process_id', sa.Integer(), nullable=True),
        sa.Column('quantity', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('unit', sa.String(length=20), nullable=True, default='件'),
        sa.Column('unit_price', sa.Numeric(precision=10, scale=2), nullable=True, default=0),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=True, default=0),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['timesheet_record_id'], ['timesheet_records.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['process_id'], ['processes.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_timesheet_record_items_id'), 'timesheet_record_items', ['id'], unique=False)
    op.create_index(op.f('ix_timesheet_record_items_timesheet_record_id'), 'timesheet_record_items', ['timesheet_record_id'], unique=False)

    # Create approval_history table
    op.create_table('approval_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('timesheet_record_id', sa.Integer(), nullable=False),
        sa.Column('approver_id', sa.Integer(), nullable=True),
        sa.Column('approver_name', sa.String(length=100), nullable=True),
        sa.Column('approver_type', sa.String(length=20), nullable=False),
        sa.Column('action', sa.String(length=20), nullable=False),
        sa.Column('comment', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['timesheet_record_id'], ['timesheet_records.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['approver_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_approval_history_id'), 'approval_history', ['id'], unique=False)
    op.create_index(op.f('ix_approval_history_timesheet_record_id'), 'approval_history', ['timesheet_record_id'], unique=False)

    # Create timesheet_item_modification_history table
    op.create_table('timesheet_item_modification_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('timesheet_record_item_id', sa.Integer(), nullable=False),
        sa.Column('timesheet_record_id', sa.Integer(), nullable=False),
        sa.Column('modifier_id', sa.Integer(), nullable=True),
        sa.Column('modifier_name', sa.String(length=100), nullable=True),
        sa.Column('old_quantity', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('new_quantity', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('old_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('new_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('modification_reason', sa.Text(), nullable=True, default='数量修改'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['timesheet_record_item_id'], ['timesheet_record_items.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['timesheet_record_id'], ['timesheet_records.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['modifier_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_timesheet_item_modification_history_id'), 'timesheet_item_modification_history', ['id'], unique=False)
    op.create_index(op.f('ix_timesheet_item_modification_history_timesheet_record_item_id'), 'timesheet_item_modification_history', ['timesheet_record_item_id'], unique=False)
    op.create_index(op.f('ix_timesheet_item_modification_history_timesheet_record_id'), 'timesheet_item_modification_history', ['timesheet_record_id'], unique=False)

    # Create recycle_bin table
    op.create_table('recycle_bin',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('item_type', sa.String(length=50), nullable=False),
        sa.Column('item_id', sa.Integer(), nullable=False),
        sa.Column('item_data', sa.JSON(), nullable=False),
        sa.Column('deleted_by', sa.Integer(), nullable=True),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('original_table', sa.String(length=100), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=True),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_permanently_deleted', sa.Boolean(), nullable=True, default=False),
        sa.Column('restored_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('restored_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['deleted_by'], ['users.id'], ),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['restored_by'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_recycle_bin_id'), 'recycle_bin', ['id'], unique=False)
    op.create_index(op.f('ix_recycle_bin_item_type'), 'recycle_bin', ['item_type'], unique=False)
    op.create_index(op.f('ix_recycle_bin_item_id'), 'recycle_bin', ['item_id'], unique=False)
    op.create_index(op.f('ix_recycle_bin_deleted_by'), 'recycle_bin', ['deleted_by'], unique=False)
    op.create_index(op.f('ix_recycle_bin_deleted_at'), 'recycle_bin', ['deleted_at'], unique=False)
    op.create_index(op.f('ix_recycle_bin_company_id'), 'recycle_bin', ['company_id'], unique=False)
    op.create_index(op.f('ix_recycle_bin_user_id'), 'recycle_bin', ['user_id'], unique=False)
    op.create_index(op.f('ix_recycle_bin_expires_at'), 'recycle_bin', ['expires_at'], unique=False)
    op.create_index(op.f('ix_recycle_bin_is_permanently_deleted'), 'recycle_bin', ['is_permanently_deleted'], unique=False)


def downgrade() -> None:
    op.drop_table('recycle_bin')
    op.drop_table('timesheet_item_modification_history')
    op.drop_table('approval_history')
    op.drop_table('timesheet_record_items')
    op.drop_table('timesheet_records')
    op.drop_index('ix_processes_duplicate_key', table_name='processes')
    op.drop_table('processes')
    op.drop_index(op.f('ix_users_phone'), table_name='users')
    op.drop_index(op.f('ix_users_id'), table_name='users')
    op.drop_table('users')
    op.drop_table('roles')
    op.drop_index(op.f('ix_companies_name'), table_name='companies')
    op.drop_index(op.f('ix_companies_id'), table_name='companies')
    op.drop_table('companies')
