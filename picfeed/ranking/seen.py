"""
Seen-set filter.

An account's seen set only grows: the feed ranker marks every picture it
returns, and marking is an insert-ignore against the (account, picture)
unique key, so repeated or concurrent marks of the same picture are absorbed.
`reset_seen` is the single administrative escape hatch.
"""
import logging
from typing import Iterable, Sequence

from sqlalchemy import delete, exists, insert, select
from sqlalchemy.dialects.mysql import insert as mysql_insert
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from picfeed.models import Picture, PictureSeen, utcnow
from picfeed.telemetry import SEEN_MARKED_TOTAL

logger = logging.getLogger(__name__)


def seen_exclusion_clause(account_id: str):
    """NOT EXISTS predicate dropping pictures the account has already been served."""
    return ~exists().where(
        PictureSeen.account_id == account_id,
        PictureSeen.picture_id == Picture.picture_id,
    )


def _insert_ignore(dialect_name: str):
    if dialect_name == "mysql":
        return mysql_insert(PictureSeen.__table__).prefix_with("IGNORE")
    if dialect_name == "sqlite":
        return sqlite_insert(PictureSeen.__table__).on_conflict_do_nothing(
            index_elements=["account_id", "picture_id"]
        )
    if dialect_name == "postgresql":
        return pg_insert(PictureSeen.__table__).on_conflict_do_nothing(
            index_elements=["account_id", "picture_id"]
        )
    return None


async def exclude(
    db: AsyncSession, account_id: str, candidate_ids: Sequence[str]
) -> list[str]:
    """Return candidate_ids minus those already seen, keeping input order."""
    if not candidate_ids:
        return []
    rows = await db.execute(
        select(PictureSeen.picture_id).where(
            PictureSeen.account_id == account_id,
            PictureSeen.picture_id.in_(set(candidate_ids)),
        )
    )
    seen = {r[0] for r in rows.all()}
    return [pid for pid in candidate_ids if pid not in seen]


async def mark_seen(db: AsyncSession, account_id: str, picture_ids: Iterable[str]) -> None:
    """Record picture_ids as seen by account_id. Duplicates are no-ops."""
    unique_ids = list(dict.fromkeys(picture_ids))
    if not unique_ids:
        return

    now = utcnow()
    rows = [
        {"account_id": account_id, "picture_id": pid, "created_at": now}
        for pid in unique_ids
    ]
    stmt = _insert_ignore(db.get_bind().dialect.name)
    if stmt is None:
        # No native insert-ignore: skip what is already recorded
        missing = set(await exclude(db, account_id, unique_ids))
        rows = [r for r in rows if r["picture_id"] in missing]
        stmt = insert(PictureSeen.__table__)
    if rows:
        await db.execute(stmt, rows)

    SEEN_MARKED_TOTAL.inc(len(unique_ids))
    logger.debug("Marked %d pictures seen for account %s", len(unique_ids), account_id)


async def reset_seen(db: AsyncSession, account_id: str) -> int:
    """Forget every picture served to the account. Returns rows removed."""
    result = await db.execute(delete(PictureSeen).where(PictureSeen.account_id == account_id))
    removed = result.rowcount or 0
    logger.info("Seen set reset for account %s (%d records removed)", account_id, removed)
    return removed
