"""SQLAlchemy ORM models for voicevault."""

from datetime import UTC, datetime

import sqlalchemy as sa
from sqlalchemy import (
    Boolean,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# Hey future me, utc_now() ensures ALL timestamps are UTC! Never use a naive datetime.now().
def utc_now() -> datetime:
    """Get current UTC time."""
    return datetime.now(UTC)


# Hey future me - SQLite doesn't preserve timezone info! UTC datetimes come back "naive".
# Use this before comparing DB datetimes with datetime.now(UTC).
def ensure_utc_aware(dt: datetime) -> datetime:
    """Ensure datetime is UTC-aware, assuming naive datetimes are UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# Listen up, WorkModel is the ROOT of everything. Every child table points here with
# ON DELETE CASCADE, and Database turns on PRAGMA foreign_keys for every SQLite connection,
# so `DELETE FROM works WHERE id = ?` wipes tracks, progress, history, playlist membership
# (via tracks) and taxonomy joins in ONE statement. passive_deletes=True tells the ORM to
# trust the database instead of loading children just to delete them.
class WorkModel(Base):
    """SQLAlchemy model for a Work (one release folder)."""

    __tablename__ = "works"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # Nullable - folders without a product code are still works. SQLite allows many NULLs
    # in a UNIQUE column, so uniqueness only bites when a code is present.
    external_code: Mapped[str | None] = mapped_column(
        String(32), nullable=True, unique=True
    )
    title: Mapped[str] = mapped_column(Text, nullable=False)
    dir_path: Mapped[str] = mapped_column(Text, nullable=False)
    cover_path: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, nullable=False
    )
    # Set by the enrichment pipeline; NULL means never enriched
    enriched_at: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )

    tracks: Mapped[list["TrackModel"]] = relationship(
        "TrackModel",
        back_populates="work",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        Index("ix_works_dir_path", "dir_path"),
        Index("ix_works_created_at", "created_at"),
    )


class TrackModel(Base):
    """SQLAlchemy model for a Track (one audio file)."""

    __tablename__ = "tracks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    work_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("works.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(Text, nullable=False)
    path: Mapped[str] = mapped_column(Text, nullable=False)
    duration_sec: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )
    track_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    # False if duplicate format (e.g. the MP3 when a WAV of the same name exists)
    is_visible: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=sa.true()
    )

    work: Mapped[WorkModel] = relationship("WorkModel", back_populates="tracks")

    __table_args__ = (
        Index("ix_tracks_work_id", "work_id"),
        Index("ix_tracks_path", "path"),
    )


class TrackProgressModel(Base):
    """Resume position, one row per work."""

    __tablename__ = "track_progress"

    work_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("works.id", ondelete="CASCADE"), primary_key=True
    )
    track_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("tracks.id", ondelete="CASCADE"), nullable=False
    )
    position_sec: Mapped[float] = mapped_column(
        Float, nullable=False, default=0.0, server_default="0"
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )


class AppSettingModel(Base):
    """Key/value store for small persisted preferences (last volume, last root path)."""

    __tablename__ = "app_settings"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)


# Hey future me - the three taxonomy tables are identical on purpose: {id, name UNIQUE}.
# Names are matched CASE-SENSITIVELY ("ASMR" and "asmr" are two tags) - that's what the
# UNIQUE constraint on a plain TEXT column does in SQLite, and get-or-create relies on it.
class TagModel(Base):
    """Free-form tag."""

    __tablename__ = "tags"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False, unique=True)


class CircleModel(Base):
    """Circle (publisher / doujin group)."""

    __tablename__ = "circles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False, unique=True)


class VoiceActorModel(Base):
    """Voice actor credited on a work."""

    __tablename__ = "voice_actors"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False, unique=True)


class WorkTagModel(Base):
    """Join row work <-> tag."""

    __tablename__ = "work_tags"

    work_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("works.id", ondelete="CASCADE"), primary_key=True
    )
    tag_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True
    )


class WorkCircleModel(Base):
    """Join row work <-> circle."""

    __tablename__ = "work_circles"

    work_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("works.id", ondelete="CASCADE"), primary_key=True
    )
    circle_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("circles.id", ondelete="CASCADE"), primary_key=True
    )


class WorkVoiceActorModel(Base):
    """Join row work <-> voice actor."""

    __tablename__ = "work_voice_actors"

    work_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("works.id", ondelete="CASCADE"), primary_key=True
    )
    voice_actor_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("voice_actors.id", ondelete="CASCADE"), primary_key=True
    )


class PlaylistModel(Base):
    """User playlist."""

    __tablename__ = "playlists"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, nullable=False
    )

    playlist_tracks: Mapped[list["PlaylistTrackModel"]] = relationship(
        "PlaylistTrackModel",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="PlaylistTrackModel.position",
    )


# Hey future me - playlists reference TRACKS, not works (migration 0004 dropped the old
# playlist_works table). Deleting a work cascades works -> tracks -> playlist_tracks.
class PlaylistTrackModel(Base):
    """Playlist membership row."""

    __tablename__ = "playlist_tracks"

    playlist_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("playlists.id", ondelete="CASCADE"), primary_key=True
    )
    track_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("tracks.id", ondelete="CASCADE"), primary_key=True
    )
    position: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )
    added_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, nullable=False
    )


class PlayHistoryModel(Base):
    """Append-only play log."""

    __tablename__ = "play_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    work_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("works.id", ondelete="CASCADE"), nullable=False
    )
    track_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("tracks.id", ondelete="CASCADE"), nullable=False
    )
    played_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, nullable=False
    )


Index("idx_play_history_played_at", PlayHistoryModel.played_at.desc())


class FavoriteModel(Base):
    """Favorite marker, one row per favorited work."""

    __tablename__ = "favorites"

    work_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("works.id", ondelete="CASCADE"), primary_key=True
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, nullable=False
    )
