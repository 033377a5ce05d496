"""Tests for the store deadline wrapper and the API error mapping."""

import asyncio

import pytest
from sqlalchemy.exc import OperationalError

from picfeed.database import run_with_timeout
from picfeed.errors import Conflict, InvalidInput, NotFound, Unavailable


async def test_result_passes_through():
    async def answer():
        return 42

    assert await run_with_timeout(answer(), timeout=1) == 42


async def test_deadline_becomes_unavailable():
    with pytest.raises(Unavailable):
        await run_with_timeout(asyncio.sleep(1), timeout=0.01)


async def test_operational_error_becomes_unavailable():
    async def broken():
        raise OperationalError("SELECT 1", {}, Exception("server has gone away"))

    with pytest.raises(Unavailable) as excinfo:
        await run_with_timeout(broken(), timeout=1)
    assert excinfo.value.status_code == 503


async def test_domain_errors_are_not_translated():
    async def missing():
        raise NotFound("picture x not found")

    with pytest.raises(NotFound):
        await run_with_timeout(missing(), timeout=1)


@pytest.mark.parametrize(
    "error, status, code",
    [
        (NotFound, 404, "not_found"),
        (Conflict, 409, "conflict"),
        (InvalidInput, 400, "invalid_input"),
        (Unavailable, 503, "unavailable"),
    ],
)
def test_error_taxonomy(error, status, code):
    exc = error()
    assert exc.status_code == status
    assert exc.error == code
    assert exc.detail == code
