"""
Vote ledger.

One live vote per (account, picture). Setting a vote is a toggle:

  no vote            + like    → like      (created)
  like               + like    → no vote   (removed)
  dislike            + like    → like      (replaced in place)

and symmetrically for dislike. The picture's counters and popularity score
are rewritten in the same transaction as the vote row, so the cached score
always matches the committed counts.

Concurrency: the picture row is read FOR UPDATE and carries an optimistic
`version` column. A concurrent writer that slips past the lock (dialects
without row locks, or two first votes racing on the vote primary key)
surfaces as IntegrityError / StaleDataError; the ledger rolls back and replays
the whole operation once with fresh state before giving up with Conflict.
"""
import logging
from typing import Union

from opentelemetry import trace
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from picfeed.config import settings
from picfeed.errors import Conflict, InvalidInput
from picfeed.models import Picture, PictureTag, Vote, utcnow
from picfeed.ranking.affinity import record_like
from picfeed.ranking.lookups import require_account, require_picture
from picfeed.ranking.scoring import popularity_score
from picfeed.schemas import Polarity, VoteResult, VoteState
from picfeed.telemetry import VOTE_CONFLICTS_TOTAL, VOTES_TOTAL

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def parse_polarity(value: Union[str, Polarity]) -> Polarity:
    try:
        return Polarity(value)
    except ValueError as exc:
        raise InvalidInput(f"unknown polarity {value!r}; expected 'like' or 'dislike'") from exc


def _bump(picture: Picture, polarity: Polarity, delta: int) -> None:
    if polarity is Polarity.like:
        picture.like_count = max(0, picture.like_count + delta)
    else:
        picture.dislike_count = max(0, picture.dislike_count + delta)


async def _apply_vote(
    db: AsyncSession, account_id: str, picture_id: str, polarity: Polarity
) -> tuple[VoteResult, str]:
    await require_account(db, account_id)
    picture = await require_picture(db, picture_id, for_update=True)
    vote = await db.get(
        Vote, (account_id, picture_id), with_for_update=True, populate_existing=True
    )
    now = utcnow()
    into_like = False

    if vote is None:
        db.add(
            Vote(
                account_id=account_id,
                picture_id=picture_id,
                polarity=polarity.value,
                created_at=now,
                updated_at=now,
            )
        )
        _bump(picture, polarity, +1)
        state, outcome = VoteState(polarity.value), "created"
        into_like = polarity is Polarity.like
    elif vote.polarity == polarity.value:
        await db.delete(vote)
        _bump(picture, polarity, -1)
        state, outcome = VoteState.none, "removed"
    else:
        _bump(picture, Polarity(vote.polarity), -1)
        _bump(picture, polarity, +1)
        vote.polarity = polarity.value
        vote.updated_at = now
        state, outcome = VoteState(polarity.value), "replaced"
        into_like = polarity is Polarity.like

    picture.popularity_score = popularity_score(
        picture.like_count, picture.dislike_count, picture.created_at
    )

    if into_like:
        rows = await db.execute(
            select(PictureTag.tag_id).where(PictureTag.picture_id == picture_id)
        )
        await record_like(db, account_id, [r[0] for r in rows.all()], at=now)

    await db.flush()

    result = VoteResult(
        picture_id=picture_id,
        state=state,
        likes=picture.like_count,
        dislikes=picture.dislike_count,
        popularity_score=picture.popularity_score,
    )
    return result, outcome


async def set_vote(
    db: AsyncSession,
    account_id: str,
    picture_id: str,
    polarity: Union[str, Polarity],
) -> VoteResult:
    """
    Apply a like/dislike from account_id on picture_id and commit it.

    Raises NotFound (account or picture missing / tombstoned), InvalidInput
    (unknown polarity) or Conflict (still contended after the retry).
    """
    polarity = parse_polarity(polarity)
    attempts = settings.vote_conflict_retries + 1

    with tracer.start_as_current_span("set_vote") as span:
        span.set_attribute("account.id", account_id)
        span.set_attribute("picture.id", picture_id)
        span.set_attribute("vote.polarity", polarity.value)

        for attempt in range(1, attempts + 1):
            try:
                result, outcome = await _apply_vote(db, account_id, picture_id, polarity)
                await db.commit()
            except (IntegrityError, StaleDataError) as exc:
                await db.rollback()
                VOTE_CONFLICTS_TOTAL.inc()
                if attempt >= attempts:
                    logger.warning(
                        "Vote on %s by %s still conflicting after %d attempts",
                        picture_id, account_id, attempt,
                    )
                    raise Conflict(
                        f"concurrent vote on picture {picture_id}; retry the request"
                    ) from exc
                logger.warning(
                    "Vote conflict on %s by %s (%s) — retrying with fresh state",
                    picture_id, account_id, type(exc).__name__,
                )
                continue

            VOTES_TOTAL.labels(polarity=polarity.value, outcome=outcome).inc()
            span.set_attribute("vote.outcome", outcome)
            logger.info(
                "Vote %s %s on %s by %s → likes=%d dislikes=%d",
                polarity.value, outcome, picture_id, account_id,
                result.likes, result.dislikes,
            )
            return result


async def list_votes(db: AsyncSession, picture_id: str) -> list[Vote]:
    """Live votes on a picture, most recently changed first."""
    await require_picture(db, picture_id)
    rows = await db.execute(
        select(Vote)
        .where(Vote.picture_id == picture_id)
        .order_by(Vote.updated_at.desc(), Vote.account_id)
    )
    return list(rows.scalars().all())
