"""create user and match tables

Revision ID: 1c7a9e2f4b10
Revises:
Create Date: 2026-10-19 00:00:00

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '1c7a9e2f4b10'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    existing_tables = set(insp.get_table_names())

    if 'user' not in existing_tables:
        op.create_table(
            'user',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('username', sa.String(length=64), nullable=False),
            sa.Column('password_hash', sa.String(length=256), nullable=False),
            sa.Column('rating', sa.Integer(), nullable=False, server_default='1000'),
            sa.Column('matches_played', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('matches_won', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('total_rounds', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('rounds_won', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        )
        op.create_index('ix_user_username', 'user', ['username'], unique=True)

    if 'match' not in existing_tables:
        op.create_table(
            'match',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('session_id', sa.String(length=64), nullable=True),
            sa.Column('player1_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
            sa.Column('player2_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
            sa.Column('player1_score', sa.Integer(), nullable=False),
            sa.Column('player2_score', sa.Integer(), nullable=False),
            sa.Column('winner_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=True),
            sa.Column('rating_change1', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('rating_change2', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('played_at', sa.DateTime(timezone=True), nullable=True),
        )
        op.create_index('ix_match_session_id', 'match', ['session_id'])


def downgrade():
    op.drop_index('ix_match_session_id', table_name='match')
    op.drop_table('match')
    op.drop_index('ix_user_username', table_name='user')
    op.drop_table('user')
