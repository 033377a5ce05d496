"""
Feed ranker — GET /feed?account_id=<id>

Composes the ranking core into a single ordering query:

  Step 1 │ Affinity
  ───────┼───────────────────────────────────────────────────────────────
         │  Fetch the account's tag → weight map once (affinity window).

  Step 2 │ Candidate query (one statement)
  ───────┼───────────────────────────────────────────────────────────────
         │  Live pictures, seen set pushed down as NOT EXISTS.
         │  LEFT JOIN a per-picture boost aggregate:
         │      boost = Σ weight(tag) over the picture's weighted tags
         │  composite = popularity_score × (1 + boost)
         │  ORDER BY composite DESC, created_at DESC, picture_id DESC
         │  LIMIT page_size

  Step 3 │ Hydration & bookkeeping
  ───────┼───────────────────────────────────────────────────────────────
         │  Load tags for the page with one IN query.
         │  Mark every returned picture seen (same transaction).

A picture with no weighted tags keeps its plain popularity order; overlap
only ever amplifies it. Fewer unseen candidates than page_size gives a short
page, not an error.

The global listings (popularity / newest / most-liked) share the summary
hydration but skip both the seen filter and the affinity boost.
"""
import logging
import time
from collections import defaultdict
from typing import Optional, Sequence, Union

from opentelemetry import trace
from sqlalchemy import case, func, literal, select
from sqlalchemy.ext.asyncio import AsyncSession

from picfeed.config import settings
from picfeed.errors import InvalidInput
from picfeed.models import Picture, PictureTag, Tag
from picfeed.ranking.affinity import get_affinity_weights
from picfeed.ranking.lookups import require_account
from picfeed.ranking.scoring import composite_score
from picfeed.ranking.seen import mark_seen, seen_exclusion_clause
from picfeed.schemas import ListingMode, PictureSummary
from picfeed.telemetry import (
    FEED_LATENCY,
    FEED_PICTURES_SERVED_TOTAL,
    FEED_SHORT_PAGES_TOTAL,
)

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

_LISTING_ORDER = {
    ListingMode.popularity: Picture.popularity_score,
    ListingMode.newest: Picture.created_at,
    ListingMode.most_liked: Picture.like_count,
}


def _check_page_size(value: int, name: str = "page_size") -> None:
    if value < 1 or value > settings.feed_max_page_size:
        raise InvalidInput(f"{name} must be between 1 and {settings.feed_max_page_size}")


def _parse_mode(mode: Union[str, ListingMode]) -> ListingMode:
    try:
        return ListingMode(mode)
    except ValueError as exc:
        allowed = ", ".join(m.value for m in ListingMode)
        raise InvalidInput(f"unknown listing mode {mode!r}; expected one of {allowed}") from exc


def _search_clause(search_phrase: Optional[str]):
    phrase = (search_phrase or "").strip().lower()
    if not phrase:
        return None
    return func.lower(Picture.name).contains(phrase, autoescape=True)


async def _load_tags(db: AsyncSession, picture_ids: Sequence[str]) -> dict[str, list[str]]:
    if not picture_ids:
        return {}
    rows = await db.execute(
        select(PictureTag.picture_id, Tag.name)
        .join(Tag, Tag.tag_id == PictureTag.tag_id)
        .where(PictureTag.picture_id.in_(picture_ids))
        .order_by(PictureTag.picture_id, Tag.name)
    )
    tags: dict[str, list[str]] = defaultdict(list)
    for picture_id, name in rows.all():
        tags[picture_id].append(name)
    return tags


async def summarize(
    db: AsyncSession,
    pictures: Sequence[Picture],
    scores: Optional[dict[str, float]] = None,
) -> list[PictureSummary]:
    """Hydrate pictures into summaries; scores default to the popularity score."""
    tags = await _load_tags(db, [p.picture_id for p in pictures])
    scores = scores or {}
    return [
        PictureSummary(
            picture_id=p.picture_id,
            account_id=p.account_id,
            name=p.name,
            description=p.description,
            url=p.url,
            created_at=p.created_at,
            tags=tags.get(p.picture_id, []),
            likes=p.like_count,
            dislikes=p.dislike_count,
            score=scores.get(p.picture_id, p.popularity_score),
        )
        for p in pictures
    ]


def _boost_subquery(weights: dict[str, float]):
    """Per-picture Σ weight over tags present in the affinity map."""
    weight_expr = case(
        {name: literal(weight) for name, weight in weights.items()},
        value=Tag.name,
        else_=literal(0.0),
    )
    return (
        select(
            PictureTag.picture_id.label("picture_id"),
            func.sum(weight_expr).label("boost"),
        )
        .join(Tag, Tag.tag_id == PictureTag.tag_id)
        .where(Tag.name.in_(list(weights)))
        .group_by(PictureTag.picture_id)
        .subquery("affinity_boost")
    )


async def get_feed(
    db: AsyncSession, account_id: str, page_size: Optional[int] = None
) -> list[PictureSummary]:
    """
    Next personalised page for account_id.

    Every picture returned is recorded in the seen set, so successive calls
    never repeat a picture until the seen set is reset.
    """
    page_size = settings.feed_default_page_size if page_size is None else page_size
    _check_page_size(page_size)
    start_time = time.time()

    with tracer.start_as_current_span("get_feed") as span:
        span.set_attribute("account.id", account_id)
        span.set_attribute("feed.page_size", page_size)

        await require_account(db, account_id)
        weights = await get_affinity_weights(db, account_id)
        span.set_attribute("feed.affinity_tags", len(weights))

        if weights:
            boost_sq = _boost_subquery(weights)
            boost = func.coalesce(boost_sq.c.boost, 0.0)
            composite = composite_score(Picture.popularity_score, boost).label("composite")
            stmt = select(Picture, composite).outerjoin(
                boost_sq, boost_sq.c.picture_id == Picture.picture_id
            )
        else:
            composite = Picture.popularity_score.label("composite")
            stmt = select(Picture, composite)

        stmt = (
            stmt.where(Picture.is_deleted.is_(False), seen_exclusion_clause(account_id))
            .order_by(
                composite.desc(),
                Picture.created_at.desc(),
                Picture.picture_id.desc(),
            )
            .limit(page_size)
        )
        rows = (await db.execute(stmt)).all()

        pictures = [row[0] for row in rows]
        scores = {row[0].picture_id: float(row[1] or 0.0) for row in rows}
        page = await summarize(db, pictures, scores)

        await mark_seen(db, account_id, [p.picture_id for p in pictures])

        FEED_PICTURES_SERVED_TOTAL.inc(len(page))
        if len(page) < page_size:
            FEED_SHORT_PAGES_TOTAL.inc()
        latency = time.time() - start_time
        FEED_LATENCY.observe(latency)
        span.set_attribute("feed.pictures_returned", len(page))
        span.set_attribute("feed.latency_ms", round(latency * 1000, 2))

        logger.debug(
            "Feed for %s: %d/%d pictures (%d affinity tags)",
            account_id, len(page), page_size, len(weights),
        )
        return page


async def get_global_listing(
    db: AsyncSession,
    mode: Union[str, ListingMode] = ListingMode.popularity,
    skip: int = 0,
    take: Optional[int] = None,
    search_phrase: Optional[str] = None,
) -> list[PictureSummary]:
    """Non-personalised listing: no seen exclusion, no affinity weighting."""
    mode = _parse_mode(mode)
    take = settings.feed_default_page_size if take is None else take
    if skip < 0:
        raise InvalidInput("skip must not be negative")
    _check_page_size(take, "take")

    with tracer.start_as_current_span("get_global_listing") as span:
        span.set_attribute("listing.mode", mode.value)

        stmt = select(Picture).where(Picture.is_deleted.is_(False))
        clause = _search_clause(search_phrase)
        if clause is not None:
            stmt = stmt.where(clause)
        stmt = (
            stmt.order_by(
                _LISTING_ORDER[mode].desc(),
                Picture.created_at.desc(),
                Picture.picture_id.desc(),
            )
            .offset(skip)
            .limit(take)
        )
        pictures = list((await db.execute(stmt)).scalars().all())
        span.set_attribute("listing.pictures_returned", len(pictures))
        return await summarize(db, pictures)


async def count_pictures(db: AsyncSession, search_phrase: Optional[str] = None) -> int:
    stmt = select(func.count()).select_from(Picture).where(Picture.is_deleted.is_(False))
    clause = _search_clause(search_phrase)
    if clause is not None:
        stmt = stmt.where(clause)
    return (await db.execute(stmt)).scalar_one()
