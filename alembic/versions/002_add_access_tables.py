"""Add field visibility permissions and service provider access.

Revision ID: 002_add_access_tables
Revises: 001_initial_schema
Create Date: 2026-10-18

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '002_add_access_tables'
down_revision = '001_initial_schema'
branch_labels = None
depends_on = None


def upgrade() -> None:
    # One row per (owner field, viewer); re-requests reuse it
    op.create_table(
        'field_visibility_permissions',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('owner_field_id', sa.String(length=36), nullable=False),
        sa.Column('owner_user_id', sa.String(length=36), nullable=False),
        sa.Column('viewer_user_id', sa.String(length=36), nullable=False),
        sa.Column('viewer_field_id', sa.String(length=36), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('grant_source', sa.String(length=20), nullable=False, server_default='manual'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['owner_field_id'], ['fields.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['owner_user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['viewer_user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['viewer_field_id'], ['fields.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('owner_field_id', 'viewer_user_id', name='uq_permission_field_viewer'),
    )
    op.create_index('ix_field_visibility_permissions_owner_field_id', 'field_visibility_permissions', ['owner_field_id'])
    op.create_index('ix_field_visibility_permissions_owner_user_id', 'field_visibility_permissions', ['owner_user_id'])
    op.create_index('ix_field_visibility_permissions_viewer_user_id', 'field_visibility_permissions', ['viewer_user_id'])

    op.create_table(
        'service_provider_access',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('farmer_id', sa.String(length=36), nullable=False),
        sa.Column('service_provider_id', sa.String(length=36), nullable=False),
        sa.Column('access_type', sa.String(length=20), nullable=False, server_default='all_fields'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('permissions', sa.JSON(), nullable=False, server_default='[]'),
        sa.Column('season', sa.String(length=10), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['farmer_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['service_provider_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_service_provider_access_farmer_id', 'service_provider_access', ['farmer_id'])
    op.create_index('ix_service_provider_access_service_provider_id', 'service_provider_access', ['service_provider_id'])
    op.create_index('ix_provider_access_pair', 'service_provider_access', ['farmer_id', 'service_provider_id'])


def downgrade() -> None:
    op.drop_table('service_provider_access')
    op.drop_table('field_visibility_permissions')
