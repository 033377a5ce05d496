"""
Account endpoints (existence collaborator for the ranking core):
  POST   /accounts      — create an account
  GET    /accounts/{id} — fetch an account
  DELETE /accounts/{id} — tombstone an account
"""
import logging

from fastapi import APIRouter, Depends, status
from opentelemetry import trace
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from picfeed.database import get_db, run_with_timeout
from picfeed.errors import Conflict
from picfeed.models import Account
from picfeed.ranking.lookups import require_account
from picfeed.schemas import AccountCreate, AccountResponse

logger = logging.getLogger(__name__)
router = APIRouter()
tracer = trace.get_tracer(__name__)


async def _insert_account(db: AsyncSession, nickname: str) -> Account:
    existing = await db.execute(select(Account).where(Account.nickname == nickname))
    if existing.scalar_one_or_none():
        raise Conflict(f"Nickname '{nickname}' already taken")

    account = Account(nickname=nickname)
    db.add(account)
    try:
        await db.flush()  # materialise account_id and created_at
    except IntegrityError as exc:
        # Lost a race with another request for the same nickname
        raise Conflict(f"Nickname '{nickname}' already taken") from exc
    return account


@router.post("/", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
async def create_account(body: AccountCreate, db: AsyncSession = Depends(get_db)):
    with tracer.start_as_current_span("create_account"):
        account = await run_with_timeout(_insert_account(db, body.nickname))
        logger.info("Created account %s (id=%s)", account.nickname, account.account_id)
        return account


@router.get("/{account_id}", response_model=AccountResponse)
async def get_account(account_id: str, db: AsyncSession = Depends(get_db)):
    return await run_with_timeout(require_account(db, account_id))


@router.delete("/{account_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_account(account_id: str, db: AsyncSession = Depends(get_db)):
    account = await run_with_timeout(require_account(db, account_id))
    account.is_deleted = True
    await run_with_timeout(db.flush())
    logger.warning("Account %s tombstoned", account_id)
