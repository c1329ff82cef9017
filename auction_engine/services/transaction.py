"""
Transactional read-modify-write primitive

Every write path (bids, cancellations, settlement, buy-now, payments) goes
through run_transaction. The callable receives a fresh session inside an open
transaction; if the commit loses to a concurrent writer the whole
read-validate-write cycle runs again against the newly committed state.

Conflicts detected:
- StaleDataError: the listing `version` changed since it was read
- IntegrityError: a partial unique index (one leader, one open order) fired
- serialization failures / deadlocks / "database is locked"
"""
import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import DBAPIError, IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from auction_engine.core.config import get_settings
from auction_engine.core.metrics import transaction_retries_total
from auction_engine.core.retry import RetryConfig
from auction_engine.services.exceptions import (
    AuctionServiceError,
    ContentionError,
    StoreUnavailableError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# PostgreSQL serialization_failure / deadlock_detected
_CONFLICT_SQLSTATES = {"40001", "40P01"}
_CONFLICT_MESSAGES = ("database is locked", "deadlock", "could not serialize")


def is_conflict(exc: BaseException) -> bool:
    """True when the failure means another writer committed first"""
    if isinstance(exc, (StaleDataError, IntegrityError)):
        return True

    if isinstance(exc, DBAPIError):
        orig = exc.orig
        sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
        if sqlstate in _CONFLICT_SQLSTATES:
            return True
        message = str(orig).lower()
        return any(marker in message for marker in _CONFLICT_MESSAGES)

    return False


def is_unavailable(exc: BaseException) -> bool:
    """True for connection-level faults worth retrying"""
    if isinstance(exc, (OperationalError, InterfaceError)):
        return True
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return True
    return isinstance(exc, (ConnectionError, OSError, asyncio.TimeoutError))


async def run_transaction(
    session_factory: async_sessionmaker,
    work: Callable[[AsyncSession], Awaitable[T]],
    *,
    operation: str = "transaction",
    retry: Optional[RetryConfig] = None,
) -> T:
    """
    Run `work` in its own transaction, retrying on conflict

    Args:
        session_factory: Factory producing AsyncSession objects
        work: Coroutine function doing reads, validation and writes
        operation: Name used in logs and metrics
        retry: Retry budget (defaults to TX_* settings)

    Returns:
        Whatever `work` returned, once committed

    Raises:
        AuctionServiceError: Domain errors raised by `work`, never retried
        ContentionError: Conflicts persisted past the retry budget
        StoreUnavailableError: Store faults persisted past the retry budget
    """
    if retry is None:
        retry = RetryConfig.from_settings(get_settings())

    for attempt in range(retry.max_retries + 1):
        try:
            async with session_factory() as session:
                async with session.begin():
                    return await work(session)

        except AuctionServiceError:
            raise

        except Exception as e:
            if is_conflict(e):
                reason = "conflict"
            elif is_unavailable(e):
                reason = "unavailable"
            else:
                raise

            transaction_retries_total.labels(operation=operation, reason=reason).inc()

            if attempt >= retry.max_retries:
                logger.error(
                    f"❌ {operation} gave up after {attempt + 1} attempts ({reason}): {e}"
                )
                if reason == "conflict":
                    raise ContentionError(
                        "Someone else is updating this auction, please try again"
                    ) from e
                raise StoreUnavailableError("Auction store is unavailable") from e

            delay = retry.get_delay(attempt)
            logger.warning(
                f"🔁 {operation} attempt {attempt + 1} hit a {reason}, "
                f"retrying in {delay:.3f}s"
            )
            await asyncio.sleep(delay)

    # Should never reach here, but just in case
    raise RuntimeError("Retry logic error")
