"""
Personalised feed endpoints:
  GET    /feed?account_id=<id>           — next page of unseen pictures
  GET    /feed/affinity?account_id=<id>  — current tag affinity weights
  DELETE /feed/seen?account_id=<id>      — administrative seen-set reset
"""
import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from picfeed.config import settings
from picfeed.database import get_db, run_with_timeout
from picfeed.ranking.affinity import get_affinity_weights
from picfeed.ranking.feed import get_feed
from picfeed.ranking.lookups import require_account
from picfeed.ranking.seen import reset_seen
from picfeed.schemas import AffinityResponse, FeedResponse, SeenResetResponse

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/", response_model=FeedResponse)
async def read_feed(
    account_id: str = Query(..., description="ID of the requesting account"),
    page_size: int = Query(settings.feed_default_page_size),
    db: AsyncSession = Depends(get_db),
):
    pictures = await run_with_timeout(get_feed(db, account_id, page_size))
    return FeedResponse(account_id=account_id, pictures=pictures)


@router.get("/affinity", response_model=AffinityResponse)
async def read_affinity(
    account_id: str = Query(...),
    db: AsyncSession = Depends(get_db),
):
    await run_with_timeout(require_account(db, account_id))
    weights = await run_with_timeout(get_affinity_weights(db, account_id))
    return AffinityResponse(account_id=account_id, weights=weights)


@router.delete("/seen", response_model=SeenResetResponse)
async def reset_feed(
    account_id: str = Query(...),
    db: AsyncSession = Depends(get_db),
):
    """Let the account see every live picture again."""
    await run_with_timeout(require_account(db, account_id))
    removed = await run_with_timeout(reset_seen(db, account_id))
    return SeenResetResponse(account_id=account_id, removed=removed)
