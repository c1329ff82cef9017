"""
Bidding Engine

Handles:
- Bid placement (validate + write in one transaction)
- Leader / outbid bookkeeping
- Bid history and per-user bid queries
"""
import logging
import time
from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from auction_engine.core.database import utcnow
from auction_engine.core.metrics import (
    bid_placement_duration_seconds,
    bid_rejections_total,
    bids_placed_total,
)
from auction_engine.core.retry import RetryConfig
from auction_engine.models import Bid, BidStatus, Listing, ListingStatus
from auction_engine.services.accounts import get_balance
from auction_engine.services.exceptions import AuctionServiceError, NotFoundError
from auction_engine.services.notifier import EventNotifier, EventType
from auction_engine.services.transaction import run_transaction
from auction_engine.services.validator import AuctionExpiredError, validate_bid

logger = logging.getLogger(__name__)


async def get_leading_bid(session: AsyncSession, listing_id: int) -> Optional[Bid]:
    """The single ACTIVE bid of a listing, if any"""
    result = await session.execute(
        select(Bid).where(Bid.listing_id == listing_id, Bid.status == BidStatus.ACTIVE)
    )
    return result.scalar_one_or_none()


class BiddingService:
    """Places bids and answers bid queries"""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        notifier: EventNotifier,
        retry: Optional[RetryConfig] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory
        self.notifier = notifier
        self.retry = retry
        self.clock = clock

    async def place_bid(self, listing_id: int, bidder_id: int, amount: Decimal) -> Bid:
        """
        Place a bid

        Flow (single transaction, retried as a whole on conflict):
        1. Re-read listing and bidder balance
        2. Validate
        3. Flip current leader to OUTBID
        4. Insert new ACTIVE bid and update listing price/counters

        After commit: new-bid to the listing, outbid to the previous leader.

        Raises:
            AuctionServiceError subclasses from the validator,
            ContentionError / StoreUnavailableError from the transaction
        """
        amount = Decimal(str(amount))
        start_time = time.perf_counter()

        async def _place(session: AsyncSession) -> Tuple[Bid, Optional[int]]:
            now = self.clock()
            listing = await session.get(Listing, listing_id)
            balance = await get_balance(session, bidder_id)

            validate_bid(listing, bidder_id, amount, balance, now)

            leader = await get_leading_bid(session, listing_id)
            prior_bids = await session.scalar(
                select(func.count(Bid.id)).where(
                    Bid.listing_id == listing_id,
                    Bid.bidder_id == bidder_id,
                )
            )

            previous_leader_id = None
            if leader is not None:
                leader.status = BidStatus.OUTBID
                previous_leader_id = leader.bidder_id
                # Old leader must leave ACTIVE before the new one is inserted
                await session.flush()

            bid = Bid(
                listing_id=listing_id,
                bidder_id=bidder_id,
                amount=amount,
                status=BidStatus.ACTIVE,
                placed_at=now,
            )
            session.add(bid)

            listing.current_price = amount
            listing.total_bids += 1
            if not prior_bids:
                listing.unique_bidder_count += 1

            await session.flush()
            return bid, previous_leader_id

        try:
            bid, previous_leader_id = await run_transaction(
                self.session_factory, _place, operation="place_bid", retry=self.retry
            )
        except AuctionExpiredError as e:
            bid_rejections_total.labels(reason=e.code).inc()
            await self._close_expired(listing_id)
            raise
        except AuctionServiceError as e:
            bid_rejections_total.labels(reason=e.code).inc()
            logger.info(
                f"🚫 Bid rejected on listing {listing_id}: {e.message}",
                extra={'listing_id': listing_id, 'user_id': bidder_id}
            )
            raise
        finally:
            bid_placement_duration_seconds.observe(time.perf_counter() - start_time)

        bids_placed_total.inc()
        logger.info(
            f"✅ Bid {bid.id} placed: {amount} on listing {listing_id}",
            extra={'listing_id': listing_id, 'bid_id': bid.id, 'user_id': bidder_id}
        )

        self.notifier.publish_nowait(
            EventType.NEW_BID,
            {"listing_id": listing_id, "bid_id": bid.id, "amount": amount, "bidder_id": bidder_id},
        )
        if previous_leader_id is not None and previous_leader_id != bidder_id:
            self.notifier.publish_nowait(
                EventType.OUTBID,
                {"listing_id": listing_id, "amount": amount, "outbid_user_id": previous_leader_id},
                user_id=previous_leader_id,
            )

        return bid

    async def _close_expired(self, listing_id: int):
        """
        Flip an expired listing to ENDED so later bids fail fast

        Best effort only; the scheduler settles ENDED listings either way.
        """
        async def _flip(session: AsyncSession) -> bool:
            listing = await session.get(Listing, listing_id)
            if listing is None or listing.status != ListingStatus.ACTIVE:
                return False
            if not listing.is_expired(self.clock()):
                return False
            listing.status = ListingStatus.ENDED
            return True

        try:
            flipped = await run_transaction(
                self.session_factory, _flip, operation="close_expired", retry=self.retry
            )
        except Exception as e:
            logger.warning(
                f"⚠️  Could not mark listing {listing_id} ended: {e}",
                extra={'listing_id': listing_id}
            )
            return

        if flipped:
            logger.info(f"⏰ Listing {listing_id} marked ENDED on late bid", extra={'listing_id': listing_id})

    # ==================== Queries ====================

    async def get_listing_state(self, listing_id: int) -> Tuple[Listing, Optional[Bid]]:
        """Listing plus its current leading bid"""
        async with self.session_factory() as session:
            listing = await session.get(Listing, listing_id)
            if listing is None:
                raise NotFoundError("Listing not found")
            leader = await get_leading_bid(session, listing_id)
            return listing, leader

    async def get_bid_history(self, listing_id: int, limit: int = 50) -> List[Bid]:
        """Bids on a listing, highest first"""
        async with self.session_factory() as session:
            listing = await session.get(Listing, listing_id)
            if listing is None:
                raise NotFoundError("Listing not found")

            result = await session.execute(
                select(Bid)
                .where(Bid.listing_id == listing_id)
                .order_by(Bid.amount.desc(), Bid.placed_at.asc())
                .limit(limit)
            )
            return list(result.scalars().all())

    async def get_user_bids(
        self,
        user_id: int,
        status: Optional[BidStatus] = None,
        limit: int = 50,
    ) -> List[Bid]:
        """A user's bids, newest first"""
        async with self.session_factory() as session:
            query = select(Bid).where(Bid.bidder_id == user_id)
            if status is not None:
                query = query.where(Bid.status == status)
            query = query.order_by(Bid.placed_at.desc(), Bid.id.desc()).limit(limit)

            result = await session.execute(query)
            return list(result.scalars().all())

    async def is_highest_bidder(self, listing_id: int, user_id: int) -> bool:
        _, leader = await self.get_listing_state(listing_id)
        return leader is not None and leader.bidder_id == user_id
