"""
Tag affinity tracker.

Every time an account starts liking a picture, one entry per picture tag is
appended to `account_tag_affinities`. The ledger is never unwound: removing
a like keeps the history.

Only the most recent `affinity_window` entries (newest first, id as the
tie-breaker) carry weight:

  weight(tag) = occurrences of tag in the window × affinity_multiplier

Weights are computed on read; nothing is cached between requests.
"""
import logging
from collections import Counter
from datetime import datetime
from typing import Iterable, Optional

from opentelemetry import trace
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from picfeed.config import settings
from picfeed.models import AccountTagAffinity, Tag, utcnow

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


async def record_like(
    db: AsyncSession,
    account_id: str,
    tag_ids: Iterable[int],
    at: Optional[datetime] = None,
) -> int:
    """Append one affinity entry per tag. Returns the number of entries added."""
    at = at or utcnow()
    entries = [
        AccountTagAffinity(account_id=account_id, tag_id=tag_id, created_at=at)
        for tag_id in sorted(set(tag_ids))
    ]
    db.add_all(entries)
    if entries:
        await db.flush()
        logger.debug("Recorded %d affinity entries for account %s", len(entries), account_id)
    return len(entries)


async def get_affinity_weights(
    db: AsyncSession,
    account_id: str,
    window: Optional[int] = None,
    multiplier: Optional[float] = None,
) -> dict[str, float]:
    """Return {tag name: weight} for the account's current affinity window."""
    window = window or settings.affinity_window
    multiplier = settings.affinity_multiplier if multiplier is None else multiplier

    with tracer.start_as_current_span("get_affinity_weights") as span:
        span.set_attribute("account.id", account_id)

        recent = (
            select(AccountTagAffinity.tag_id)
            .where(AccountTagAffinity.account_id == account_id)
            .order_by(AccountTagAffinity.created_at.desc(), AccountTagAffinity.id.desc())
            .limit(window)
            .subquery()
        )
        rows = await db.execute(
            select(Tag.name).join(recent, recent.c.tag_id == Tag.tag_id)
        )
        counts = Counter(name for (name,) in rows.all())

        span.set_attribute("affinity.tags", len(counts))
        return {name: count * multiplier for name, count in counts.items()}
