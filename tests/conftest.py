"""Test configuration and fixtures."""

import os

# Must be set before picfeed.config is imported anywhere
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("TRACING_ENABLED", "false")

from datetime import datetime, timedelta
from typing import Iterable, Optional

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from picfeed.database import Base
from picfeed.models import Account, Picture, PictureTag, Tag
from picfeed.ranking.scoring import popularity_score

BASE_TIME = datetime(2026, 10, 1, 12, 0, 0)


async def create_schema(engine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@pytest_asyncio.fixture
async def engine():
    """In-memory SQLite shared by every session of one test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def file_session_factory(tmp_path):
    """
    File-backed SQLite with a real connection pool, so concurrent sessions
    each get their own connection and contend on the database lock.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'picfeed.db'}",
        connect_args={"timeout": 30},
    )
    await create_schema(engine)
    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_account(db):
    """Factory: persist an account and return it."""
    counter = {"n": 0}

    async def _make(nickname: Optional[str] = None) -> Account:
        counter["n"] += 1
        account = Account(nickname=nickname or f"account_{counter['n']}")
        db.add(account)
        await db.flush()
        return account

    return _make


async def _get_or_create_tags(db: AsyncSession, names: Iterable[str]) -> list[Tag]:
    tags = []
    for name in names:
        tag = (await db.execute(select(Tag).where(Tag.name == name))).scalar_one_or_none()
        if tag is None:
            tag = Tag(name=name)
            db.add(tag)
            await db.flush()
        tags.append(tag)
    return tags


@pytest.fixture
def make_picture(db):
    """
    Factory: persist a picture with tags.

    `score` pins popularity_score directly; otherwise it is computed from
    likes / dislikes / created_at like the vote ledger would.
    """
    counter = {"n": 0}

    async def _make(
        owner: Account,
        *,
        name: Optional[str] = None,
        tags: Iterable[str] = (),
        score: Optional[float] = None,
        likes: int = 0,
        dislikes: int = 0,
        created_at: Optional[datetime] = None,
    ) -> Picture:
        counter["n"] += 1
        created_at = created_at or BASE_TIME + timedelta(seconds=counter["n"])
        if score is None:
            score = popularity_score(likes, dislikes, created_at)
        picture = Picture(
            account_id=owner.account_id,
            name=name or f"picture {counter['n']:03d}",
            url=f"https://cdn.example.test/{counter['n']}.webp",
            created_at=created_at,
            like_count=likes,
            dislike_count=dislikes,
            popularity_score=score,
        )
        db.add(picture)
        await db.flush()
        for tag in await _get_or_create_tags(db, tags):
            db.add(PictureTag(picture_id=picture.picture_id, tag_id=tag.tag_id))
        await db.flush()
        return picture

    return _make


@pytest.fixture
def tag_ids(db):
    """Factory: tag names → tag ids, creating tags as needed."""

    async def _ids(*names: str) -> list[int]:
        return [t.tag_id for t in await _get_or_create_tags(db, names)]

    return _ids
