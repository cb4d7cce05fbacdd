"""initial schema

Revision ID: initial_schema
Revises: 
Create Date: 2026-10-16 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create users table
    op.create_table('users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_users_created_at'), 'users', ['created_at'], unique=False)
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)
    op.create_index(op.f('ix_users_id'), 'users', ['id'], unique=False)

    # Create feeds table
    op.create_table('feeds',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('url', sa.String(), nullable=False),
        sa.Column('title', sa.String(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category', sa.String(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('update_frequency', sa.String(), nullable=True),
        sa.Column('keyword_filters', sa.JSON(), nullable=True),
        sa.Column('content_filters', sa.JSON(), nullable=True),
        sa.Column('last_config_update', sa.DateTime(), nullable=True),
        sa.Column('last_fetched', sa.DateTime(), nullable=True),
        sa.Column('last_fetch_status', sa.String(), nullable=True),
        sa.Column('last_fetch_error', sa.Text(), nullable=True),
        sa.Column('fetch_retry_count', sa.Integer(), nullable=True),
        sa.Column('health_score', sa.Float(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'url', name='uq_feeds_user_url')
    )
    op.create_index(op.f('ix_feeds_id'), 'feeds', ['id'], unique=False)
    op.create_index(op.f('ix_feeds_url'), 'feeds', ['url'], unique=False)
    op.create_index(op.f('ix_feeds_user_id'), 'feeds', ['user_id'], unique=False)
    op.create_index(op.f('ix_feeds_is_active'), 'feeds', ['is_active'], unique=False)

    # Create feed_items table
    op.create_table('feed_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('feed_id', sa.Integer(), nullable=False),
        sa.Column('guid', sa.String(), nullable=True),
        sa.Column('content_hash', sa.String(), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('content', sa.Text(), nullable=True),
        sa.Column('link', sa.String(), nullable=True),
        sa.Column('author', sa.String(), nullable=True),
        sa.Column('published_at', sa.DateTime(), nullable=True),
        sa.Column('categories', sa.JSON(), nullable=True),
        sa.Column('word_count', sa.Integer(), nullable=True),
        sa.Column('reading_time', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['feed_id'], ['feeds.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('feed_id', 'guid', name='uq_feed_items_feed_guid'),
        sa.UniqueConstraint('feed_id', 'content_hash', name='uq_feed_items_feed_hash')
    )
    op.create_index(op.f('ix_feed_items_id'), 'feed_items', ['id'], unique=False)
    op.create_index(op.f('ix_feed_items_feed_id'), 'feed_items', ['feed_id'], unique=False)
    op.create_index(op.f('ix_feed_items_guid'), 'feed_items', ['guid'], unique=False)
    op.create_index(op.f('ix_feed_items_content_hash'), 'feed_items', ['content_hash'], unique=False)
    op.create_index(op.f('ix_feed_items_created_at'), 'feed_items', ['created_at'], unique=False)

    # Create content_analyses table
    op.create_table('content_analyses',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('feed_item_id', sa.Integer(), nullable=False),
        sa.Column('topics', sa.JSON(), nullable=True),
        sa.Column('primary_topic', sa.JSON(), nullable=True),
        sa.Column('relevance_score', sa.Float(), nullable=True),
        sa.Column('sentiment', sa.String(), nullable=True),
        sa.Column('confidence', sa.Float(), nullable=True),
        sa.Column('model', sa.String(), nullable=True),
        sa.Column('processing_time_ms', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['feed_item_id'], ['feed_items.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_content_analyses_id'), 'content_analyses', ['id'], unique=False)
    op.create_index(op.f('ix_content_analyses_feed_item_id'), 'content_analyses', ['feed_item_id'], unique=True)


def downgrade() -> None:
    op.drop_index(op.f('ix_content_analyses_feed_item_id'), table_name='content_analyses')
    op.drop_index(op.f('ix_content_analyses_id'), table_name='content_analyses')
    op.drop_table('content_analyses')

    op.drop_index(op.f('ix_feed_items_created_at'), table_name='feed_items')
    op.drop_index(op.f('ix_feed_items_content_hash'), table_name='feed_items')
    op.drop_index(op.f('ix_feed_items_guid'), table_name='feed_items')
    op.drop_index(op.f('ix_feed_items_feed_id'), table_name='feed_items')
    op.drop_index(op.f('ix_feed_items_id'), table_name='feed_items')
    op.drop_table('feed_items')

    op.drop_index(op.f('ix_feeds_is_active'), table_name='feeds')
    op.drop_index(op.f('ix_feeds_user_id'), table_name='feeds')
    op.drop_index(op.f('ix_feeds_url'), table_name='feeds')
    op.drop_index(op.f('ix_feeds_id'), table_name='feeds')
    op.drop_table('feeds')

    op.drop_index(op.f('ix_users_id'), table_name='users')
    op.drop_index(op.f('ix_users_email'), table_name='users')
    op.drop_index(op.f('ix_users_created_at'), table_name='users')
    op.drop_table('users')
