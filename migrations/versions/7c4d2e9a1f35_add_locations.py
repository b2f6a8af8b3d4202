"""Add locations table

Revision ID: 7c4d2e9a1f35
Revises: 3f1a9c2e7b10
Create Date: 2026-10-06 18:30:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '7c4d2e9a1f35'
down_revision = '3f1a9c2e7b10'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('locations',
        sa.Column('id',                  sa.Integer(),    nullable=False),
        sa.Column('name',                sa.String(200),  nullable=False),
        sa.Column('summary',             sa.String(500),  nullable=True),
        sa.Column('description',         sa.Text(),       nullable=True),
        sa.Column('map_filename',        sa.String(255),  nullable=True),
        sa.Column('primary_campaign_id', sa.Integer(),    nullable=True),
        sa.Column('created_at',          sa.DateTime(),   nullable=True),
        sa.Column('updated_at',          sa.DateTime(),   nullable=True),
        sa.ForeignKeyConstraint(['primary_campaign_id'], ['campaigns.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_locations_primary_campaign_id', 'locations', ['primary_campaign_id'])


def downgrade():
    op.drop_index('ix_locations_primary_campaign_id', table_name='locations')
    op.drop_table('locations')
