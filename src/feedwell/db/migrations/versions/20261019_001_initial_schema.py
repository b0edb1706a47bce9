"""Initial schema with canonical feeds/entries and per-profile overlays.

Revision ID: 001
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # Canonical feeds, one row per link
    op.create_table(
        "feeds",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("link", sa.Text(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("url", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("link"),
    )

    # Canonical entries, one row per link across all feeds
    op.create_table(
        "entries",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("link", sa.Text(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("author", sa.Text(), nullable=True),
        sa.Column("thumbnail_url", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("link"),
    )
    op.create_index(
        "ix_entries_published_at_desc",
        "entries",
        [sa.text("published_at DESC")],
        unique=False,
    )

    op.create_table(
        "feed_entries",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("feed_id", sa.Integer(), nullable=False),
        sa.Column("entry_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["feed_id"], ["feeds.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["entry_id"], ["entries.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("feed_id", "entry_id", name="uq_feed_entry"),
    )
    op.create_index("ix_feed_entries_entry_id", "feed_entries", ["entry_id"], unique=False)

    # Per-profile subscriptions
    op.create_table(
        "profile_feeds",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("profile_id", sa.String(length=36), nullable=False),
        sa.Column("feed_id", sa.Integer(), nullable=False),
        sa.Column("custom_title", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["feed_id"], ["feeds.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("profile_id", "feed_id", name="uq_profile_feed"),
    )
    op.create_index("ix_profile_feeds_profile_id", "profile_feeds", ["profile_id"], unique=False)
    op.create_index("ix_profile_feeds_feed_id", "profile_feeds", ["feed_id"], unique=False)

    # Per-profile read state
    op.create_table(
        "profile_feed_entries",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("profile_feed_id", sa.Integer(), nullable=False),
        sa.Column("feed_entry_id", sa.Integer(), nullable=False),
        sa.Column("has_read", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.ForeignKeyConstraint(["profile_feed_id"], ["profile_feeds.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["feed_entry_id"], ["feed_entries.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("profile_feed_id", "feed_entry_id", name="uq_profile_feed_entry"),
    )
    op.create_index(
        "ix_profile_feed_entries_feed_entry_id",
        "profile_feed_entries",
        ["feed_entry_id"],
        unique=False,
    )
    op.create_index(
        "ix_profile_feed_entries_unread",
        "profile_feed_entries",
        ["profile_feed_id", "has_read"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_profile_feed_entries_unread", table_name="profile_feed_entries")
    op.drop_index("ix_profile_feed_entries_feed_entry_id", table_name="profile_feed_entries")
    op.drop_table("profile_feed_entries")
    op.drop_index("ix_profile_feeds_feed_id", table_name="profile_feeds")
    op.drop_index("ix_profile_feeds_profile_id", table_name="profile_feeds")
    op.drop_table("profile_feeds")
    op.drop_index("ix_feed_entries_entry_id", table_name="feed_entries")
    op.drop_table("feed_entries")
    op.drop_index("ix_entries_published_at_desc", table_name="entries")
    op.drop_table("entries")
    op.drop_table("feeds")
