"""Existence checks shared by the ranking core. Tombstoned rows count as missing."""
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from picfeed.errors import NotFound
from picfeed.models import Account, Picture


async def require_account(db: AsyncSession, account_id: str) -> Account:
    account = await db.get(Account, account_id)
    if account is None or account.is_deleted:
        raise NotFound(f"account {account_id} not found")
    return account


async def require_picture(
    db: AsyncSession, picture_id: str, *, for_update: bool = False
) -> Picture:
    stmt = (
        select(Picture)
        .where(Picture.picture_id == picture_id, Picture.is_deleted.is_(False))
        .execution_options(populate_existing=True)
    )
    if for_update:
        # Rendered as FOR UPDATE where the dialect supports row locks
        stmt = stmt.with_for_update()
    picture = (await db.execute(stmt)).scalar_one_or_none()
    if picture is None:
        raise NotFound(f"picture {picture_id} not found")
    return picture
