"""Initial schema: campaigns, sessions, characters, organizations and their links

Revision ID: 3f1a9c2e7b10
Revises:
Create Date: 2026-09-28 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3f1a9c2e7b10'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('campaigns',
        sa.Column('id',          sa.Integer(),    nullable=False),
        sa.Column('name',        sa.String(200),  nullable=False),
        sa.Column('description', sa.Text(),       nullable=True),
        sa.Column('created_at',  sa.DateTime(),   nullable=True),
        sa.Column('updated_at',  sa.DateTime(),   nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table('sessions',
        sa.Column('id',                    sa.Integer(),    nullable=False),
        sa.Column('campaign_id',           sa.Integer(),    nullable=True),
        sa.Column('name',                  sa.String(200),  nullable=False),
        sa.Column('session_date',          sa.Date(),       nullable=True),
        sa.Column('notes',                 sa.Text(),       nullable=True),
        sa.Column('header_image_filename', sa.String(255),  nullable=True),
        sa.Column('created_at',            sa.DateTime(),   nullable=True),
        sa.Column('updated_at',            sa.DateTime(),   nullable=True),
        sa.ForeignKeyConstraint(['campaign_id'], ['campaigns.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_sessions_campaign_id', 'sessions', ['campaign_id'])

    op.create_table('characters',
        sa.Column('id',                  sa.Integer(),    nullable=False),
        sa.Column('name',                sa.String(100),  nullable=False),
        sa.Column('race',                sa.String(50),   nullable=True),
        sa.Column('class',               sa.String(50),   nullable=True),
        sa.Column('level',               sa.String(20),   nullable=True),
        sa.Column('backstory',           sa.Text(),       nullable=True),
        sa.Column('image_filename',      sa.String(255),  nullable=True),
        sa.Column('player_type',         sa.String(20),   nullable=False, server_default='npc'),
        sa.Column('status',              sa.String(20),   nullable=False, server_default='alive'),
        sa.Column('last_known_location', sa.String(200),  nullable=True),
        sa.Column('created_at',          sa.DateTime(),   nullable=True),
        sa.Column('updated_at',          sa.DateTime(),   nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table('organizations',
        sa.Column('id',            sa.Integer(),    nullable=False),
        sa.Column('name',          sa.String(200),  nullable=False),
        sa.Column('description',   sa.Text(),       nullable=True),
        sa.Column('logo_filename', sa.String(255),  nullable=True),
        sa.Column('created_at',    sa.DateTime(),   nullable=True),
        sa.Column('updated_at',    sa.DateTime(),   nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table('session_characters',
        sa.Column('session_id',   sa.Integer(), nullable=False),
        sa.Column('character_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['session_id'],   ['sessions.id']),
        sa.ForeignKeyConstraint(['character_id'], ['characters.id']),
        sa.PrimaryKeyConstraint('session_id', 'character_id'),
    )

    op.create_table('organization_campaigns',
        sa.Column('organization_id', sa.Integer(), nullable=False),
        sa.Column('campaign_id',     sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id']),
        sa.ForeignKeyConstraint(['campaign_id'],     ['campaigns.id']),
        sa.PrimaryKeyConstraint('organization_id', 'campaign_id'),
    )

    op.create_table('organization_sessions',
        sa.Column('organization_id', sa.Integer(), nullable=False),
        sa.Column('session_id',      sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id']),
        sa.ForeignKeyConstraint(['session_id'],      ['sessions.id']),
        sa.PrimaryKeyConstraint('organization_id', 'session_id'),
    )

    op.create_table('organization_characters',
        sa.Column('organization_id', sa.Integer(),   nullable=False),
        sa.Column('character_id',    sa.Integer(),   nullable=False),
        sa.Column('role',            sa.String(20),  nullable=False, server_default='npc'),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id']),
        sa.ForeignKeyConstraint(['character_id'],    ['characters.id']),
        sa.PrimaryKeyConstraint('organization_id', 'character_id'),
    )


def downgrade():
    op.drop_table('organization_characters')
    op.drop_table('organization_sessions')
    op.drop_table('organization_campaigns')
    op.drop_table('session_characters')
    op.drop_table('organizations')
    op.drop_table('characters')
    op.drop_index('ix_sessions_campaign_id', table_name='sessions')
    op.drop_table('sessions')
    op.drop_table('campaigns')
