"""Create groups, donors, donor_status_history and donations tables.

Revision ID: create_lifecycle_tables
Revises:
Create Date: 2024-01-15
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = 'create_lifecycle_tables'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'groups',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('name', sa.String(100), nullable=False, unique=True),
        sa.Column('area', sa.String(255), nullable=False, index=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_by', sa.String(100), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    )
    
    op.create_table(
        'donors',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('hundi_no', sa.String(50), nullable=False, unique=True, index=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('mobile_number', sa.String(20), nullable=False),
        sa.Column('address', sa.Text(), nullable=False),
        sa.Column('google_map_link', sa.String(500), nullable=True),
        sa.Column('group_id', sa.Uuid(),
                  sa.ForeignKey('groups.id', ondelete='RESTRICT'),
                  nullable=False, index=True),
        sa.Column('status', sa.String(20), nullable=False,
                  server_default='pending', index=True),
        sa.Column('collection_date', sa.DateTime(timezone=True), nullable=False, index=True),
        sa.Column('is_active', sa.Boolean(), nullable=False,
                  server_default=sa.true(), index=True),
        sa.Column('created_by', sa.String(100), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    )
    
    op.create_table(
        'donor_status_history',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('donor_id', sa.Uuid(),
                  sa.ForeignKey('donors.id', ondelete='RESTRICT'),
                  nullable=False, index=True),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.Column('note', sa.Text(), nullable=True),
        sa.UniqueConstraint('donor_id', 'sequence', name='uq_donor_history_sequence'),
    )
    
    op.create_table(
        'donations',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('donor_id', sa.Uuid(),
                  sa.ForeignKey('donors.id', ondelete='RESTRICT'),
                  nullable=False, index=True),
        sa.Column('outcome', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('collection_date', sa.DateTime(timezone=True), nullable=False, index=True),
        sa.Column('cycle_key', sa.String(7), nullable=False, index=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('collected_by', sa.String(100), nullable=False, index=True),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
        # One record per donor per cycle, even if the application check races
        sa.UniqueConstraint('donor_id', 'cycle_key', name='uq_donation_donor_cycle'),
        sa.CheckConstraint('amount >= 0', name='ck_donation_amount_non_negative'),
    )
    
    op.create_index(
        'ix_donations_cycle_outcome',
        'donations',
        ['cycle_key', 'outcome'],
    )


def downgrade() -> None:
    op.drop_index('ix_donations_cycle_outcome', table_name='donations')
    op.drop_table('donations')
    op.drop_table('donor_status_history')
    op.drop_table('donors')
    op.drop_table('groups')
