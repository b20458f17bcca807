"""Create forum and trading journal tables

Revision ID: academy_002
Revises: academy_001
Create Date: 2025-06-20 14:30:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'academy_002'
down_revision = 'academy_001'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('forum_categories',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('slug', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('color', sa.String(), nullable=False, server_default='#3b82f6'),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_forum_categories_id'), 'forum_categories', ['id'], unique=False)
    op.create_index(op.f('ix_forum_categories_slug'), 'forum_categories', ['slug'], unique=True)

    op.create_table('forum_posts',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('category_id', sa.String(), nullable=False),
        sa.Column('parent_id', sa.String(), nullable=True),
        sa.Column('title', sa.String(), nullable=True),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('likes_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('dislikes_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_edited', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['category_id'], ['forum_categories.id'], ),
        sa.ForeignKeyConstraint(['parent_id'], ['forum_posts.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_forum_posts_id'), 'forum_posts', ['id'], unique=False)
    op.create_index(op.f('ix_forum_posts_user_id'), 'forum_posts', ['user_id'], unique=False)
    op.create_index(op.f('ix_forum_posts_category_id'), 'forum_posts', ['category_id'], unique=False)
    op.create_index(op.f('ix_forum_posts_parent_id'), 'forum_posts', ['parent_id'], unique=False)
    op.create_index(op.f('ix_forum_posts_created_at'), 'forum_posts', ['created_at'], unique=False)

    op.create_table('user_votes',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('post_id', sa.String(), nullable=False),
        sa.Column('vote_type', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['post_id'], ['forum_posts.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'post_id', name='uq_user_votes_user_post')
    )
    op.create_index(op.f('ix_user_votes_id'), 'user_votes', ['id'], unique=False)
    op.create_index(op.f('ix_user_votes_user_id'), 'user_votes', ['user_id'], unique=False)
    op.create_index(op.f('ix_user_votes_post_id'), 'user_votes', ['post_id'], unique=False)

    op.create_table('trading_journal_trades',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('trade_id', sa.String(), nullable=False),
        sa.Column('symbol', sa.String(), nullable=False),
        sa.Column('instrument_type', sa.String(), nullable=False),
        sa.Column('direction', sa.String(), nullable=False),
        sa.Column('entry_price', sa.Float(), nullable=False),
        sa.Column('entry_time', sa.DateTime(), nullable=False),
        sa.Column('entry_reason', sa.Text(), nullable=True),
        sa.Column('position_size', sa.Float(), nullable=False),
        sa.Column('position_size_currency', sa.String(), nullable=False, server_default='USD'),
        sa.Column('leverage', sa.Float(), nullable=False, server_default='1'),
        sa.Column('stop_loss', sa.Float(), nullable=True),
        sa.Column('take_profit', sa.Float(), nullable=True),
        sa.Column('exit_price', sa.Float(), nullable=True),
        sa.Column('exit_time', sa.DateTime(), nullable=True),
        sa.Column('exit_reason', sa.Text(), nullable=True),
        sa.Column('pnl_amount', sa.Float(), nullable=True),
        sa.Column('pnl_percentage', sa.Float(), nullable=True),
        sa.Column('status', sa.String(), nullable=False, server_default='open'),
        sa.Column('is_winning', sa.Boolean(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('lessons_learned', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('trade_id')
    )
    op.create_index(op.f('ix_trading_journal_trades_id'), 'trading_journal_trades', ['id'], unique=False)
    op.create_index(op.f('ix_trading_journal_trades_user_id'), 'trading_journal_trades', ['user_id'], unique=False)
    op.create_index(op.f('ix_trading_journal_trades_symbol'), 'trading_journal_trades', ['symbol'], unique=False)
    op.create_index(op.f('ix_trading_journal_trades_entry_time'), 'trading_journal_trades', ['entry_time'], unique=False)
    op.create_index(op.f('ix_trading_journal_trades_status'), 'trading_journal_trades', ['status'], unique=False)

    op.create_table('trading_journal_performance_metrics',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('period_type', sa.String(), nullable=False),
        sa.Column('period_start', sa.DateTime(), nullable=False),
        sa.Column('period_end', sa.DateTime(), nullable=False),
        sa.Column('total_trades', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('winning_trades', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('losing_trades', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('win_rate', sa.Float(), nullable=False, server_default='0'),
        sa.Column('total_pnl', sa.Float(), nullable=False, server_default='0'),
        sa.Column('average_win', sa.Float(), nullable=False, server_default='0'),
        sa.Column('average_loss', sa.Float(), nullable=False, server_default='0'),
        sa.Column('largest_win', sa.Float(), nullable=False, server_default='0'),
        sa.Column('largest_loss', sa.Float(), nullable=False, server_default='0'),
        sa.Column('profit_factor', sa.Float(), nullable=False, server_default='0'),
        sa.Column('risk_reward_ratio', sa.Float(), nullable=False, server_default='0'),
        sa.Column('max_drawdown', sa.Float(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_trading_journal_performance_metrics_id'), 'trading_journal_performance_metrics', ['id'], unique=False)
    op.create_index(op.f('ix_trading_journal_performance_metrics_user_id'), 'trading_journal_performance_metrics', ['user_id'], unique=False)
    op.create_index(op.f('ix_trading_journal_performance_metrics_period_type'), 'trading_journal_performance_metrics', ['period_type'], unique=False)


def downgrade():
    op.drop_table('trading_journal_performance_metrics')
    op.drop_table('trading_journal_trades')
    op.drop_table('user_votes')
    op.drop_table('forum_posts')
    op.drop_table('forum_categories')
