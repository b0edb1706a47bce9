# ABOUTME: SQLAlchemy ORM models for canonical feed content and per-profile overlays.
# ABOUTME: Defines Feed, Entry, FeedEntry, ProfileFeed, ProfileFeedEntry with cascading foreign keys.

from datetime import UTC, datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    false,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

PROFILE_ID_LENGTH = 36


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class Feed(Base):
    """A syndication source, shared by every profile that subscribes to it."""

    __tablename__ = "feeds"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    link: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    url: Mapped[str | None] = mapped_column(Text, nullable=True)

    feed_entries: Mapped[list["FeedEntry"]] = relationship(
        "FeedEntry", back_populates="feed", cascade="all, delete-orphan", passive_deletes=True
    )
    profile_feeds: Mapped[list["ProfileFeed"]] = relationship(
        "ProfileFeed", back_populates="feed", cascade="all, delete-orphan", passive_deletes=True
    )

    def __repr__(self) -> str:
        return f"<Feed {self.id}: {self.link}>"


class Entry(Base):
    """A syndicated item, deduplicated by link across all feeds."""

    __tablename__ = "entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    link: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    author: Mapped[str | None] = mapped_column(Text, nullable=True)
    thumbnail_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    feed_entries: Mapped[list["FeedEntry"]] = relationship(
        "FeedEntry", back_populates="entry", cascade="all, delete-orphan", passive_deletes=True
    )

    __table_args__ = (Index("ix_entries_published_at_desc", published_at.desc()),)

    def __repr__(self) -> str:
        return f"<Entry {self.id}: {self.title[:50]}>"


class FeedEntry(Base):
    """Records that an entry currently appears in a feed."""

    __tablename__ = "feed_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    feed_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("feeds.id", ondelete="CASCADE"), nullable=False
    )
    entry_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("entries.id", ondelete="CASCADE"), nullable=False, index=True
    )

    feed: Mapped[Feed] = relationship("Feed", back_populates="feed_entries")
    entry: Mapped[Entry] = relationship("Entry", back_populates="feed_entries")

    __table_args__ = (UniqueConstraint("feed_id", "entry_id", name="uq_feed_entry"),)

    def __repr__(self) -> str:
        return f"<FeedEntry feed={self.feed_id} entry={self.entry_id}>"


class ProfileFeed(Base):
    """A profile's subscription to a feed."""

    __tablename__ = "profile_feeds"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    profile_id: Mapped[str] = mapped_column(
        String(PROFILE_ID_LENGTH), nullable=False, index=True
    )
    feed_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("feeds.id", ondelete="CASCADE"), nullable=False, index=True
    )
    custom_title: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    feed: Mapped[Feed] = relationship("Feed", back_populates="profile_feeds")
    profile_feed_entries: Mapped[list["ProfileFeedEntry"]] = relationship(
        "ProfileFeedEntry",
        back_populates="profile_feed",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (UniqueConstraint("profile_id", "feed_id", name="uq_profile_feed"),)

    def __repr__(self) -> str:
        return f"<ProfileFeed {self.id}: profile={self.profile_id} feed={self.feed_id}>"


class ProfileFeedEntry(Base):
    """A profile's read state for one entry of one subscription."""

    __tablename__ = "profile_feed_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    profile_feed_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("profile_feeds.id", ondelete="CASCADE"), nullable=False
    )
    feed_entry_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("feed_entries.id", ondelete="CASCADE"), nullable=False, index=True
    )
    has_read: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )

    profile_feed: Mapped[ProfileFeed] = relationship(
        "ProfileFeed", back_populates="profile_feed_entries"
    )
    feed_entry: Mapped[FeedEntry] = relationship("FeedEntry")

    __table_args__ = (
        UniqueConstraint("profile_feed_id", "feed_entry_id", name="uq_profile_feed_entry"),
        Index("ix_profile_feed_entries_unread", "profile_feed_id", "has_read"),
    )

    def __repr__(self) -> str:
        return f"<ProfileFeedEntry {self.id}: read={self.has_read}>"
