from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from auction_engine.core.retry import RetryConfig
from auction_engine.services import (
    AuctionClosedError,
    ContentionError,
    StoreUnavailableError,
    run_transaction,
)
from auction_engine.services.transaction import is_conflict, is_unavailable

FAST = RetryConfig(max_retries=3, initial_delay=0.001, max_delay=0.002, jitter=False)


def operational_error(message: str) -> OperationalError:
    return OperationalError("UPDATE listings", {}, Exception(message))


def test_conflict_classification():
    assert is_conflict(StaleDataError("version mismatch"))
    assert is_conflict(IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed")))
    assert is_conflict(operational_error("database is locked"))
    assert not is_conflict(operational_error("connection refused"))
    assert not is_conflict(ValueError("boom"))


def test_serialization_failure_sqlstate_is_conflict():
    orig = Exception("could not serialize access")
    orig.sqlstate = "40001"
    assert is_conflict(OperationalError("UPDATE", {}, orig))


def test_unavailable_classification():
    assert is_unavailable(operational_error("connection refused"))
    assert is_unavailable(ConnectionRefusedError())
    assert not is_unavailable(ValueError("boom"))


def test_retry_delays_grow_and_cap():
    config = RetryConfig(initial_delay=0.01, max_delay=0.03, jitter=False)
    assert [config.get_delay(i) for i in range(4)] == [0.01, 0.02, 0.03, 0.03]


@pytest.mark.asyncio
async def test_commits_and_returns_result(session_factory):
    async def work(session):
        return 42

    assert await run_transaction(session_factory, work, retry=FAST) == 42


@pytest.mark.asyncio
async def test_conflict_is_retried_until_success(session_factory):
    attempts = []

    async def work(session):
        attempts.append(1)
        if len(attempts) < 3:
            raise StaleDataError("someone else won")
        return "ok"

    assert await run_transaction(session_factory, work, retry=FAST) == "ok"
    assert len(attempts) == 3


@pytest.mark.asyncio
async def test_persistent_conflict_becomes_contention(session_factory):
    work = MagicMock(side_effect=StaleDataError("always stale"))

    async def always_stale(session):
        work()

    with pytest.raises(ContentionError):
        await run_transaction(session_factory, always_stale, retry=FAST)

    assert work.call_count == FAST.max_retries + 1


@pytest.mark.asyncio
async def test_persistent_store_fault_becomes_unavailable(session_factory):
    async def broken(session):
        raise operational_error("server closed the connection unexpectedly")

    with pytest.raises(StoreUnavailableError):
        await run_transaction(session_factory, broken, retry=FAST)


@pytest.mark.asyncio
async def test_domain_errors_are_not_retried(session_factory):
    attempts = []

    async def closed(session):
        attempts.append(1)
        raise AuctionClosedError("closed")

    with pytest.raises(AuctionClosedError):
        await run_transaction(session_factory, closed, retry=FAST)

    assert len(attempts) == 1


@pytest.mark.asyncio
async def test_unexpected_errors_propagate(session_factory):
    async def buggy(session):
        raise KeyError("oops")

    with pytest.raises(KeyError):
        await run_transaction(session_factory, buggy, retry=FAST)
