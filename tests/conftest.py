import asyncio
from datetime import timedelta
from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select

from auction_engine.core.config import Settings
from auction_engine.core.database import (
    create_engine_from_settings,
    create_session_factory,
    init_db,
    utcnow,
)
from auction_engine.core.retry import RetryConfig
from auction_engine.models import Account, Bid, Listing, ListingStatus, Order
from auction_engine.services import (
    AuctionScheduler,
    BiddingService,
    CancellationService,
    RecordingNotifier,
    SettlementService,
)

SELLER_ID = 1


class FakeClock:
    """Controllable replacement for utcnow"""

    def __init__(self):
        self.now = utcnow()

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'auction.db'}",
        NOTIFICATIONS_ENABLED=False,
        SCHEDULER_ENABLED=False,
        LOG_JSON=False,
        TX_MAX_RETRIES=50,
        TX_RETRY_INITIAL_DELAY=0.001,
        TX_RETRY_MAX_DELAY=0.02,
    )


@pytest_asyncio.fixture
async def session_factory(settings):
    """Fresh SQLite file database per test"""
    engine = create_engine_from_settings(settings)
    await init_db(engine)

    yield create_session_factory(engine)

    await engine.dispose()


@pytest.fixture
def clock():
    return FakeClock()


class FailingNotifier(RecordingNotifier):
    """Transport that is always down"""

    async def _send(self, channel, message):
        raise ConnectionError("redis unavailable")


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def retry(settings):
    return RetryConfig.from_settings(settings)


@pytest.fixture
def bidding(session_factory, notifier, retry, clock):
    return BiddingService(session_factory, notifier, retry=retry, clock=clock)


@pytest.fixture
def cancellation(session_factory, notifier, retry, clock):
    return CancellationService(session_factory, notifier, retry=retry, clock=clock)


@pytest.fixture
def settlement(session_factory, notifier, settings, retry, clock):
    return SettlementService(session_factory, notifier, settings=settings, retry=retry, clock=clock)


@pytest.fixture
def scheduler(session_factory, settlement, clock):
    return AuctionScheduler(session_factory, settlement, interval_seconds=3600, batch_size=100, clock=clock)


@pytest.fixture
def make_listing(session_factory, clock):
    """Insert an ACTIVE listing; keyword arguments override the defaults"""
    async def _make(**overrides) -> Listing:
        data = {
            "seller_id": SELLER_ID,
            "title": "Test listing",
            "starting_price": Decimal("100.00"),
            "increment_amount": Decimal("5.00"),
            "buy_now_price": None,
            "end_at": clock.now + timedelta(hours=1),
            "status": ListingStatus.ACTIVE,
            "total_bids": 0,
            "unique_bidder_count": 0,
        }
        data.update(overrides)
        data.setdefault("current_price", data["starting_price"])

        async with session_factory() as session:
            async with session.begin():
                listing = Listing(**data)
                session.add(listing)
            return listing

    return _make


@pytest.fixture
def make_account(session_factory):
    async def _make(user_id: int, balance="1000.00", pending_balance="0") -> Account:
        async with session_factory() as session:
            async with session.begin():
                account = Account(
                    user_id=user_id,
                    balance=Decimal(balance),
                    pending_balance=Decimal(pending_balance),
                )
                session.add(account)
            return account

    return _make


@pytest.fixture
def funded_bidders(make_account):
    """Accounts 2..n with plenty of balance"""
    async def _fund(*user_ids, balance="10000.00"):
        for user_id in user_ids:
            await make_account(user_id, balance)

    return _fund


@pytest.fixture
def fetch(session_factory):
    """Read-back helpers that always hit the database"""

    class Fetch:
        async def listing(self, listing_id: int) -> Listing:
            async with session_factory() as session:
                return await session.get(Listing, listing_id)

        async def bid(self, bid_id: int) -> Bid:
            async with session_factory() as session:
                return await session.get(Bid, bid_id)

        async def bids(self, listing_id: int):
            async with session_factory() as session:
                result = await session.execute(
                    select(Bid).where(Bid.listing_id == listing_id).order_by(Bid.id)
                )
                return list(result.scalars().all())

        async def orders(self, listing_id: int):
            async with session_factory() as session:
                result = await session.execute(
                    select(Order).where(Order.listing_id == listing_id).order_by(Order.id)
                )
                return list(result.scalars().all())

        async def account(self, user_id: int) -> Account:
            async with session_factory() as session:
                return await session.get(Account, user_id)

    return Fetch()


@pytest_asyncio.fixture
async def app(settings, session_factory, notifier):
    from auction_engine.main import create_app

    application = create_app(settings=settings, session_factory=session_factory, notifier=notifier)
    yield application
    await notifier.drain()


@pytest_asyncio.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


def user_headers(user_id: int, role: str = "user"):
    return {"X-User-Id": str(user_id), "X-User-Role": role}


async def gather_outcomes(*coros):
    """Run coroutines concurrently, returning results and exceptions alike"""
    return await asyncio.gather(*coros, return_exceptions=True)
