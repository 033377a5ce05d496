"""
Picture endpoints:
  GET    /pictures                — global listing (popularity | newest | most-liked)
  POST   /pictures                — register an uploaded picture with its tags
  GET    /pictures/{id}           — fetch a single picture
  PUT    /pictures/{id}           — edit name / description / url / tags
  DELETE /pictures/{id}           — tombstone a picture
  GET    /pictures/{id}/votes     — live votes on a picture
  PATCH  /pictures/{id}/voteup    — like (toggle)
  PATCH  /pictures/{id}/votedown  — dislike (toggle)
  PUT    /pictures/{id}/vote      — like / dislike by polarity
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from opentelemetry import trace
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from picfeed.config import settings
from picfeed.database import get_db, run_with_timeout
from picfeed.errors import Conflict
from picfeed.models import Picture, PictureTag, Tag, utcnow
from picfeed.ranking.feed import count_pictures, get_global_listing, summarize
from picfeed.ranking.lookups import require_account, require_picture
from picfeed.ranking.scoring import popularity_score
from picfeed.ranking.votes import list_votes, set_vote
from picfeed.schemas import (
    ListingResponse,
    PictureCreate,
    PictureSummary,
    PictureUpdate,
    Polarity,
    VoteRequest,
    VoteResponse,
    VoteResult,
    VoteSetRequest,
)

logger = logging.getLogger(__name__)
router = APIRouter()
tracer = trace.get_tracer(__name__)


def normalize_tags(tags: list[str]) -> list[str]:
    """Lower-case, strip, drop blanks and duplicates (first occurrence wins)."""
    cleaned = (t.strip().lower() for t in tags)
    return list(dict.fromkeys(t for t in cleaned if t))


async def _replace_tags(db: AsyncSession, picture_id: str, tags: list[str]) -> None:
    names = normalize_tags(tags)
    await db.execute(delete(PictureTag).where(PictureTag.picture_id == picture_id))
    if not names:
        return

    rows = await db.execute(select(Tag).where(Tag.name.in_(names)))
    by_name = {t.name: t for t in rows.scalars().all()}
    for name in names:
        if name not in by_name:
            tag = Tag(name=name)
            db.add(tag)
            by_name[name] = tag
    try:
        await db.flush()  # materialise tag ids
    except IntegrityError as exc:
        raise Conflict("tag created concurrently; retry the request") from exc

    db.add_all(PictureTag(picture_id=picture_id, tag_id=by_name[n].tag_id) for n in names)
    await db.flush()


async def _summary(db: AsyncSession, picture: Picture) -> PictureSummary:
    return (await summarize(db, [picture]))[0]


@router.get("/", response_model=ListingResponse)
async def list_pictures(
    mode: str = Query("popularity", description="popularity | newest | most-liked"),
    skip: int = Query(0),
    take: int = Query(settings.feed_default_page_size),
    search: Optional[str] = Query(None, description="Case-insensitive name filter"),
    db: AsyncSession = Depends(get_db),
):
    pictures = await run_with_timeout(get_global_listing(db, mode, skip, take, search))
    total = await run_with_timeout(count_pictures(db, search))
    return ListingResponse(mode=mode, skip=skip, take=take, total=total, pictures=pictures)


async def _insert_picture(db: AsyncSession, body: PictureCreate) -> PictureSummary:
    await require_account(db, body.account_id)

    created_at = utcnow()
    picture = Picture(
        account_id=body.account_id,
        name=body.name,
        description=body.description,
        url=body.url,
        created_at=created_at,
        popularity_score=popularity_score(0, 0, created_at),
    )
    db.add(picture)
    await db.flush()  # materialise picture_id
    await _replace_tags(db, picture.picture_id, body.tags)
    return await _summary(db, picture)


async def _read_picture(db: AsyncSession, picture_id: str) -> PictureSummary:
    return await _summary(db, await require_picture(db, picture_id))


async def _edit_picture(
    db: AsyncSession, picture_id: str, body: PictureUpdate
) -> PictureSummary:
    picture = await require_picture(db, picture_id, for_update=True)
    if body.name is not None:
        picture.name = body.name
    if body.description is not None:
        picture.description = body.description
    if body.url is not None:
        picture.url = body.url
    if body.tags is not None:
        await _replace_tags(db, picture_id, body.tags)
    await db.flush()
    return await _summary(db, picture)


async def _tombstone_picture(db: AsyncSession, picture_id: str) -> None:
    picture = await require_picture(db, picture_id, for_update=True)
    picture.is_deleted = True
    await db.flush()


@router.post("/", response_model=PictureSummary, status_code=status.HTTP_201_CREATED)
async def create_picture(body: PictureCreate, db: AsyncSession = Depends(get_db)):
    """
    Register a picture the storage service has already accepted.

    The popularity score is seeded from zero votes and the creation time,
    so fresh pictures enter the rankings immediately.
    """
    with tracer.start_as_current_span("create_picture") as span:
        summary = await run_with_timeout(_insert_picture(db, body))
        span.set_attribute("picture.id", summary.picture_id)
        logger.info("Picture created: %s by account %s", summary.picture_id, body.account_id)
        return summary


@router.get("/{picture_id}", response_model=PictureSummary)
async def get_picture(picture_id: str, db: AsyncSession = Depends(get_db)):
    return await run_with_timeout(_read_picture(db, picture_id))


@router.put("/{picture_id}", response_model=PictureSummary)
async def update_picture(
    picture_id: str, body: PictureUpdate, db: AsyncSession = Depends(get_db)
):
    with tracer.start_as_current_span("update_picture"):
        return await run_with_timeout(_edit_picture(db, picture_id, body))


@router.delete("/{picture_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_picture(picture_id: str, db: AsyncSession = Depends(get_db)):
    """Tombstone only: votes, affinity history and seen records stay in place."""
    await run_with_timeout(_tombstone_picture(db, picture_id))
    logger.warning("Picture %s tombstoned", picture_id)


@router.get("/{picture_id}/votes", response_model=list[VoteResponse])
async def get_picture_votes(picture_id: str, db: AsyncSession = Depends(get_db)):
    return await run_with_timeout(list_votes(db, picture_id))


@router.patch("/{picture_id}/voteup", response_model=VoteResult)
async def vote_up(picture_id: str, body: VoteRequest, db: AsyncSession = Depends(get_db)):
    return await run_with_timeout(set_vote(db, body.account_id, picture_id, Polarity.like))


@router.patch("/{picture_id}/votedown", response_model=VoteResult)
async def vote_down(picture_id: str, body: VoteRequest, db: AsyncSession = Depends(get_db)):
    return await run_with_timeout(set_vote(db, body.account_id, picture_id, Polarity.dislike))


@router.put("/{picture_id}/vote", response_model=VoteResult)
async def put_vote(picture_id: str, body: VoteSetRequest, db: AsyncSession = Depends(get_db)):
    return await run_with_timeout(set_vote(db, body.account_id, picture_id, body.polarity))
