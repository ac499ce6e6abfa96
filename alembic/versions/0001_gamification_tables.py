"""Customer achievements and gamification stats

Revision ID: 0001_gamification
Revises:
Create Date: 2026-10-17 09:00:00.000000
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = '0001_gamification'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'customer_achievements',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('customer_id', sa.String(length=64), nullable=False, index=True),
        sa.Column('centro_id', sa.String(length=64), nullable=False, index=True),
        sa.Column('achievement_type', sa.String(length=64), nullable=False, comment="Key into the static achievement catalog"),
        sa.Column('achievement_name', sa.String(length=128), nullable=False),
        sa.Column('achievement_description', sa.Text(), nullable=True),
        sa.Column('achievement_icon', sa.String(length=16), nullable=True),
        sa.Column('target', sa.Integer(), nullable=False),
        sa.Column('xp_reward', sa.Integer(), nullable=False),
        sa.Column('progress', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_unlocked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('unlocked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('customer_id', 'centro_id', 'achievement_type', name='uq_customer_achievement'),
        sa.CheckConstraint('progress >= 0 AND progress <= target', name='ck_customer_achievement_progress'),
    )

    op.create_table(
        'customer_gamification_stats',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('customer_id', sa.String(length=64), nullable=False, index=True),
        sa.Column('centro_id', sa.String(length=64), nullable=False, index=True),
        sa.Column('total_xp', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('level', sa.Integer(), nullable=False, server_default='1', comment="Cached from total_xp"),
        sa.Column('current_streak', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('longest_streak', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_sync_date', sa.Date(), nullable=True),
        sa.Column('total_syncs', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('customer_id', 'centro_id', name='uq_customer_gamification_stats'),
        sa.CheckConstraint('longest_streak >= current_streak', name='ck_gamification_longest_streak'),
    )


def downgrade() -> None:
    op.drop_table('customer_gamification_stats')
    op.drop_table('customer_achievements')
