"""
Concurrent writers on one file-backed database.

Each task runs in its own session (own connection), so stale reads are caught
by the picture version check and the vote / seen unique keys rather than by
a test double.
"""

import asyncio
from datetime import timedelta

from sqlalchemy import func, select

from conftest import BASE_TIME
from picfeed.database import run_with_timeout
from picfeed.errors import Conflict, Unavailable
from picfeed.models import Account, Picture, PictureSeen, Vote
from picfeed.ranking.feed import get_feed
from picfeed.ranking.scoring import popularity_score
from picfeed.ranking.seen import mark_seen
from picfeed.ranking.votes import set_vote
from picfeed.routers.accounts import create_account
from picfeed.schemas import AccountCreate, VoteResult

# Contention outcomes a caller may legitimately see; anything else is a bug
RETRYABLE = (Conflict, Unavailable)


async def _seed(factory, voters=1, pictures=1):
    async with factory() as session:
        owner = Account(nickname="owner")
        accounts = [Account(nickname=f"voter_{i}") for i in range(voters)]
        session.add_all([owner, *accounts])
        await session.flush()
        items = [
            Picture(
                account_id=owner.account_id,
                name=f"picture {i}",
                url=f"https://cdn.example.test/{i}.webp",
                created_at=BASE_TIME + timedelta(seconds=i),
                popularity_score=popularity_score(0, 0, BASE_TIME + timedelta(seconds=i)),
            )
            for i in range(pictures)
        ]
        session.add_all(items)
        await session.commit()
        return [a.account_id for a in accounts], [p.picture_id for p in items]


async def _vote(factory, account_id, picture_id, polarity="like"):
    async with factory() as session:
        return await run_with_timeout(set_vote(session, account_id, picture_id, polarity))


async def _ledger_state(factory, picture_id):
    async with factory() as session:
        picture = await session.get(Picture, picture_id)
        votes = (
            await session.execute(
                select(Vote.polarity, func.count())
                .where(Vote.picture_id == picture_id)
                .group_by(Vote.polarity)
            )
        ).all()
        return picture, dict(votes)


def _assert_consistent(picture, votes):
    assert picture.like_count == votes.get("like", 0)
    assert picture.dislike_count == votes.get("dislike", 0)
    assert picture.popularity_score == popularity_score(
        picture.like_count, picture.dislike_count, picture.created_at
    )


async def test_parallel_likes_from_different_accounts(file_session_factory):
    voters, (picture_id,) = await _seed(file_session_factory, voters=4)

    results = await asyncio.gather(
        *(_vote(file_session_factory, v, picture_id) for v in voters),
        return_exceptions=True,
    )

    for r in results:
        assert isinstance(r, (VoteResult, *RETRYABLE)), r
    picture, votes = await _ledger_state(file_session_factory, picture_id)
    _assert_consistent(picture, votes)
    applied = [r for r in results if isinstance(r, VoteResult)]
    assert picture.like_count == len(applied)
    assert applied


async def test_parallel_toggles_on_one_pair(file_session_factory):
    (voter,), (picture_id,) = await _seed(file_session_factory, voters=1)

    results = await asyncio.gather(
        *(_vote(file_session_factory, voter, picture_id) for _ in range(3)),
        return_exceptions=True,
    )

    for r in results:
        assert isinstance(r, (VoteResult, *RETRYABLE)), r
    picture, votes = await _ledger_state(file_session_factory, picture_id)
    _assert_consistent(picture, votes)
    assert sum(votes.values()) <= 1

    # Every applied toggle flips the pair, starting from no vote
    applied = sum(isinstance(r, VoteResult) for r in results)
    assert picture.like_count == applied % 2


async def test_parallel_mixed_polarity_on_one_pair(file_session_factory):
    (voter,), (picture_id,) = await _seed(file_session_factory, voters=1)

    results = await asyncio.gather(
        _vote(file_session_factory, voter, picture_id, "like"),
        _vote(file_session_factory, voter, picture_id, "dislike"),
        _vote(file_session_factory, voter, picture_id, "like"),
        return_exceptions=True,
    )

    for r in results:
        assert isinstance(r, (VoteResult, *RETRYABLE)), r
    picture, votes = await _ledger_state(file_session_factory, picture_id)
    _assert_consistent(picture, votes)
    assert sum(votes.values()) <= 1


async def _seen_pairs(factory, account_id):
    async with factory() as session:
        rows = await session.execute(
            select(PictureSeen.picture_id).where(PictureSeen.account_id == account_id)
        )
        return [r[0] for r in rows.all()]


async def test_overlapping_mark_seen_is_absorbed(file_session_factory):
    (viewer,), picture_ids = await _seed(file_session_factory, voters=1, pictures=6)

    async def mark(ids):
        async with file_session_factory() as session:
            await run_with_timeout(mark_seen(session, viewer, ids))
            await session.commit()

    await asyncio.gather(
        mark(picture_ids[:4]),
        mark(picture_ids[2:]),
        mark(picture_ids[1:5] + picture_ids[1:3]),
    )

    seen = await _seen_pairs(file_session_factory, viewer)
    assert sorted(seen) == sorted(picture_ids)


async def test_parallel_feed_pages_for_one_account(file_session_factory):
    (viewer,), picture_ids = await _seed(file_session_factory, voters=1, pictures=5)

    async def page():
        async with file_session_factory() as session:
            result = await run_with_timeout(get_feed(session, viewer, page_size=3))
            await session.commit()
            return [p.picture_id for p in result]

    pages = await asyncio.gather(page(), page(), page())

    served = {pid for p in pages for pid in p}
    seen = await _seen_pairs(file_session_factory, viewer)
    assert len(seen) == len(set(seen))
    assert set(seen) == served
    assert served <= set(picture_ids)


async def test_same_nickname_created_twice_at_once(file_session_factory):
    async def create():
        async with file_session_factory() as session:
            account = await create_account(AccountCreate(nickname="twin"), session)
            await session.commit()
            return account

    results = await asyncio.gather(create(), create(), return_exceptions=True)

    assert sum(isinstance(r, Account) for r in results) == 1
    assert sum(isinstance(r, Conflict) for r in results) == 1
