"""
SQLAlchemy ORM models.

Tables:
  accounts                — account stub (existence / tombstone check)
  pictures                — picture metadata + vote counters + cached score
  tags / picture_tags     — tag labels and the picture × tag join
  votes                   — one live like/dislike per account × picture
  account_tag_affinities  — append-only ledger of liked tags per account
  pictures_seen           — pictures already served in an account's feed
"""
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from picfeed.database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Naive UTC timestamp; every DateTime column stores naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Account(Base):
    __tablename__ = "accounts"

    account_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    nickname: Mapped[str] = mapped_column(String(40), unique=True, nullable=False)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class Picture(Base):
    __tablename__ = "pictures"

    picture_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    account_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("accounts.account_id"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(25), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(400))
    # Issued by the storage service; stored verbatim
    url: Mapped[str] = mapped_column(String(500), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    like_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    dislike_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    # Derived from the counters + created_at; rewritten with every vote
    popularity_score: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("idx_pictures_live_score", "is_deleted", "popularity_score"),
        Index("idx_pictures_live_created", "is_deleted", "created_at"),
        Index("idx_pictures_live_likes", "is_deleted", "like_count"),
    )


class Tag(Base):
    __tablename__ = "tags"

    tag_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(25), unique=True, nullable=False)


class PictureTag(Base):
    __tablename__ = "picture_tags"

    picture_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("pictures.picture_id"), primary_key=True
    )
    tag_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("tags.tag_id"), primary_key=True
    )

    __table_args__ = (
        # "which pictures carry tag X?" for the affinity boost aggregate
        Index("idx_picture_tags_tag", "tag_id"),
    )


class Vote(Base):
    __tablename__ = "votes"

    # Composite primary key: at most one live vote per account × picture
    account_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("accounts.account_id"), primary_key=True
    )
    picture_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("pictures.picture_id"), primary_key=True
    )
    polarity: Mapped[str] = mapped_column(String(10), nullable=False)  # 'like' | 'dislike'
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("idx_votes_picture", "picture_id"),
    )


class AccountTagAffinity(Base):
    __tablename__ = "account_tag_affinities"

    # Monotonic id doubles as the tie-breaker inside the affinity window
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    account_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("accounts.account_id"), nullable=False
    )
    tag_id: Mapped[int] = mapped_column(Integer, ForeignKey("tags.tag_id"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("idx_affinity_account_recent", "account_id", "created_at", "id"),
    )


class PictureSeen(Base):
    __tablename__ = "pictures_seen"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    account_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("accounts.account_id"), nullable=False
    )
    picture_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("pictures.picture_id"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("account_id", "picture_id", name="uq_pictures_seen_pair"),
    )
