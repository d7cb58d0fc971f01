"""create feeds and feed_entries

Revision ID: 20261019_feed_tables
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic
revision = '20261019_feed_tables'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'feeds',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('feed_url', sa.String(length=2048), nullable=False),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('media_type', sa.String(length=50), nullable=True),
        sa.Column('last_fetched_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('lock_until', sa.DateTime(timezone=True), nullable=True),
        sa.Column('consecutive_failures', sa.Integer(), server_default='0', nullable=False),
        sa.Column('next_retry_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('feed_url'),
    )
    op.create_index(op.f('ix_feeds_title'), 'feeds', ['title'], unique=False)
    op.create_index(op.f('ix_feeds_last_fetched_at'), 'feeds', ['last_fetched_at'], unique=False)

    op.create_table(
        'feed_entries',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('feed_id', sa.BigInteger(), nullable=False),
        sa.Column('guid', sa.String(length=1024), nullable=False),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('link', sa.String(length=2048), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('published_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('image', sa.String(length=2048), nullable=True),
        sa.Column('enclosure_url', sa.String(length=2048), nullable=True),
        sa.Column('enclosure_type', sa.String(length=255), nullable=True),
        sa.Column('media_type', sa.String(length=50), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['feed_id'], ['feeds.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('feed_id', 'guid', name='uq_feed_entries_feed_id_guid'),
    )
    op.create_index(op.f('ix_feed_entries_guid'), 'feed_entries', ['guid'], unique=False)
    op.create_index(op.f('ix_feed_entries_published_at'), 'feed_entries', ['published_at'], unique=False)
    op.create_index(
        'ix_feed_entries_feed_published',
        'feed_entries',
        ['feed_id', 'published_at', 'id'],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index('ix_feed_entries_feed_published', table_name='feed_entries')
    op.drop_index(op.f('ix_feed_entries_published_at'), table_name='feed_entries')
    op.drop_index(op.f('ix_feed_entries_guid'), table_name='feed_entries')
    op.drop_table('feed_entries')
    op.drop_index(op.f('ix_feeds_last_fetched_at'), table_name='feeds')
    op.drop_index(op.f('ix_feeds_title'), table_name='feeds')
    op.drop_table('feeds')
