"""Initial schema: users, fields and adjacency edges

Revision ID: 001_initial_schema
Revises: 
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Enable PostGIS extension (overlap queries and the geometry index)
    op.execute('CREATE EXTENSION IF NOT EXISTS postgis')

    # Create users table
    op.create_table(
        'users',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('first_name', sa.String(length=100), nullable=True),
        sa.Column('last_name', sa.String(length=100), nullable=True),
        sa.Column('phone_number', sa.String(length=20), nullable=True),
        sa.Column('user_role', sa.String(length=20), nullable=False, server_default='farmer'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_phone_number', 'users', ['phone_number'])

    # Create fields table; the boundary is the submitted GeoJSON document
    op.create_table(
        'fields',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('geometry', postgresql.JSONB(), nullable=True),
        sa.Column('crop', sa.String(length=100), nullable=False),
        sa.Column('spray_types', sa.JSON(), nullable=False, server_default='[]'),
        sa.Column('variety', sa.String(length=200), nullable=True),
        sa.Column('season', sa.String(length=10), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=True, server_default='planted'),
        sa.Column('acres', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_fields_user_id', 'fields', ['user_id'])
    # Same expression the overlap query evaluates, so PostGIS can use the index
    op.execute(
        "CREATE INDEX idx_fields_geometry ON fields USING gist ("
        "ST_SetSRID(ST_GeomFromGeoJSON(CAST(coalesce(geometry -> 'geometry', geometry) AS TEXT)), 4326))"
    )

    # Create adjacent_fields table
    op.create_table(
        'adjacent_fields',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('field_id', sa.String(length=36), nullable=False),
        sa.Column('adjacent_field_id', sa.String(length=36), nullable=False),
        sa.Column('distance', sa.Float(), nullable=False),
        sa.Column('shared_boundary_length', sa.Float(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['field_id'], ['fields.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['adjacent_field_id'], ['fields.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_adjacent_fields_field_id', 'adjacent_fields', ['field_id'])
    op.create_index('ix_adjacent_fields_adjacent_field_id', 'adjacent_fields', ['adjacent_field_id'])
    op.create_index('ix_adjacent_fields_pair', 'adjacent_fields', ['field_id', 'adjacent_field_id'])


def downgrade() -> None:
    op.drop_table('adjacent_fields')
    op.execute('DROP INDEX IF EXISTS idx_fields_geometry')
    op.drop_table('fields')
    op.drop_table('users')
    op.execute('DROP EXTENSION IF EXISTS postgis')
