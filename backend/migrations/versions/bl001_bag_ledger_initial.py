"""Bag ledger: organizations, drivers, clients, stock, allocations, issues, transfers, movements

Creates the tenant root and identity tables the ledger joins against, then
the ledger itself:
1. organization_stock (one row per organization)
2. driver_balances + driver_allocations (per-driver aggregate and its periods)
3. bag_issues (OTP-verified client issuance)
4. bag_transfers (driver-to-driver moves)
5. bag_movements (append-only audit log)

Revision ID: bl001_bag_ledger
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'bl001_bag_ledger'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ==========================================================================
    # Tenant root and identity
    # ==========================================================================
    op.create_table('organizations',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_organizations_code', 'organizations', ['code'], unique=True)
    op.create_index('ix_organizations_is_active', 'organizations', ['is_active'])

    op.create_table('drivers',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.ForeignKeyConstraint(['org_id'], ['organizations.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_drivers_org_id', 'drivers', ['org_id'])
    op.create_index('ix_drivers_org_name', 'drivers', ['org_id', 'name'])

    op.create_table('clients',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('address', sa.String(length=255), nullable=True),
        sa.Column('account_number', sa.String(length=64), nullable=True),
        sa.ForeignKeyConstraint(['org_id'], ['organizations.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_clients_org_id', 'clients', ['org_id'])
    op.create_index('ix_clients_org_name', 'clients', ['org_id', 'name'])
    op.create_index('ix_clients_account_number', 'clients', ['account_number'])

    # ==========================================================================
    # Organization stock
    # ==========================================================================
    op.create_table('organization_stock',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=False),
        sa.Column('available_bags', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['org_id'], ['organizations.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', name='uq_organization_stock_org'),
        sa.CheckConstraint('available_bags >= 0', name='ck_organization_stock_non_negative'),
    )
    op.create_index('ix_organization_stock_org_id', 'organization_stock', ['org_id'])

    # ==========================================================================
    # Driver balances and allocation periods
    # ==========================================================================
    op.create_table('driver_balances',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=False),
        sa.Column('driver_id', sa.Integer(), nullable=False),
        sa.Column('current_period_id', sa.Integer(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['org_id'], ['organizations.id']),
        sa.ForeignKeyConstraint(['driver_id'], ['drivers.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('driver_id', name='uq_driver_balances_driver'),
    )
    op.create_index('ix_driver_balances_org_id', 'driver_balances', ['org_id'])

    op.create_table('driver_allocations',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=False),
        sa.Column('driver_id', sa.Integer(), nullable=False),
        sa.Column('balance_id', sa.Integer(), nullable=False),
        sa.Column('allocated_bags', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('used_bags', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('bags_from_previous', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='recent'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('archived_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_by', sa.String(length=120), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['org_id'], ['organizations.id']),
        sa.ForeignKeyConstraint(['driver_id'], ['drivers.id']),
        sa.ForeignKeyConstraint(['balance_id'], ['driver_balances.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('used_bags >= 0', name='ck_driver_allocations_used_non_negative'),
        sa.CheckConstraint('allocated_bags >= used_bags', name='ck_driver_allocations_available_non_negative'),
    )
    op.create_index('ix_driver_allocations_org_id', 'driver_allocations', ['org_id'])
    op.create_index('ix_driver_allocations_driver_id', 'driver_allocations', ['driver_id'])
    op.create_index('ix_driver_allocations_balance_id', 'driver_allocations', ['balance_id'])
    op.create_index('ix_driver_allocations_status', 'driver_allocations', ['status'])
    op.create_index('ix_driver_allocations_org_status', 'driver_allocations', ['org_id', 'status'])

    # ==========================================================================
    # Issuance and transfers
    # ==========================================================================
    op.create_table('bag_issues',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=False),
        sa.Column('driver_id', sa.Integer(), nullable=False),
        sa.Column('client_id', sa.Integer(), nullable=False),
        sa.Column('client_email', sa.String(length=255), nullable=False),
        sa.Column('number_of_bags_issued', sa.Integer(), nullable=False),
        sa.Column('otp_code', sa.String(length=12), nullable=False),
        sa.Column('otp_expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('issued_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('allocation_id', sa.Integer(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(length=120), nullable=True),
        sa.Column('verified_by', sa.String(length=120), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['org_id'], ['organizations.id']),
        sa.ForeignKeyConstraint(['driver_id'], ['drivers.id']),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id']),
        sa.ForeignKeyConstraint(['allocation_id'], ['driver_allocations.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('number_of_bags_issued > 0', name='ck_bag_issues_positive'),
    )
    op.create_index('ix_bag_issues_org_id', 'bag_issues', ['org_id'])
    op.create_index('ix_bag_issues_driver_id', 'bag_issues', ['driver_id'])
    op.create_index('ix_bag_issues_client_id', 'bag_issues', ['client_id'])
    op.create_index('ix_bag_issues_is_verified', 'bag_issues', ['is_verified'])
    op.create_index('ix_bag_issues_created_at', 'bag_issues', ['created_at'])
    op.create_index('ix_bag_issues_org_created', 'bag_issues', ['org_id', 'created_at'])

    op.create_table('bag_transfers',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=False),
        sa.Column('from_driver_id', sa.Integer(), nullable=False),
        sa.Column('to_driver_id', sa.Integer(), nullable=False),
        sa.Column('number_of_bags', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(length=120), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('failed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['org_id'], ['organizations.id']),
        sa.ForeignKeyConstraint(['from_driver_id'], ['drivers.id']),
        sa.ForeignKeyConstraint(['to_driver_id'], ['drivers.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('number_of_bags > 0', name='ck_bag_transfers_positive'),
        sa.CheckConstraint('from_driver_id <> to_driver_id', name='ck_bag_transfers_distinct_drivers'),
    )
    op.create_index('ix_bag_transfers_org_id', 'bag_transfers', ['org_id'])
    op.create_index('ix_bag_transfers_from_driver_id', 'bag_transfers', ['from_driver_id'])
    op.create_index('ix_bag_transfers_to_driver_id', 'bag_transfers', ['to_driver_id'])
    op.create_index('ix_bag_transfers_status', 'bag_transfers', ['status'])
    op.create_index('ix_bag_transfers_created_at', 'bag_transfers', ['created_at'])
    op.create_index('ix_bag_transfers_org_status_created', 'bag_transfers', ['org_id', 'status', 'created_at'])

    # ==========================================================================
    # Movement log (append-only)
    # ==========================================================================
    op.create_table('bag_movements',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=False),
        sa.Column('driver_id', sa.Integer(), nullable=True),
        sa.Column('movement_type', sa.String(length=32), nullable=False),
        sa.Column('stock_delta', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('driver_delta', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('allocation_id', sa.Integer(), nullable=True),
        sa.Column('issue_id', sa.Integer(), nullable=True),
        sa.Column('transfer_id', sa.Integer(), nullable=True),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('actor', sa.String(length=120), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['org_id'], ['organizations.id']),
        sa.ForeignKeyConstraint(['driver_id'], ['drivers.id']),
        sa.ForeignKeyConstraint(['allocation_id'], ['driver_allocations.id']),
        sa.ForeignKeyConstraint(['issue_id'], ['bag_issues.id']),
        sa.ForeignKeyConstraint(['transfer_id'], ['bag_transfers.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_bag_movements_org_id', 'bag_movements', ['org_id'])
    op.create_index('ix_bag_movements_driver_id', 'bag_movements', ['driver_id'])
    op.create_index('ix_bag_movements_movement_type', 'bag_movements', ['movement_type'])
    op.create_index('ix_bag_movements_allocation_id', 'bag_movements', ['allocation_id'])
    op.create_index('ix_bag_movements_issue_id', 'bag_movements', ['issue_id'])
    op.create_index('ix_bag_movements_transfer_id', 'bag_movements', ['transfer_id'])
    op.create_index('ix_bag_movements_occurred_at', 'bag_movements', ['occurred_at'])
    op.create_index('ix_bag_movements_org_occurred', 'bag_movements', ['org_id', 'occurred_at'])


def downgrade():
    op.drop_table('bag_movements')
    op.drop_table('bag_transfers')
    op.drop_table('bag_issues')
    op.drop_table('driver_allocations')
    op.drop_table('driver_balances')
    op.drop_table('organization_stock')
    op.drop_table('clients')
    op.drop_table('drivers')
    op.drop_table('organizations')
