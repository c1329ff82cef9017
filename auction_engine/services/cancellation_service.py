"""
Bid cancellation with promotion of the next-highest outbid bid
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from auction_engine.core.database import utcnow
from auction_engine.core.metrics import bids_cancelled_total
from auction_engine.core.retry import RetryConfig
from auction_engine.models import Bid, BidStatus, Listing, ListingStatus
from auction_engine.services.exceptions import (
    AlreadyProcessedError,
    AuctionClosedError,
    NotFoundError,
    UnauthorizedError,
)
from auction_engine.services.notifier import EventNotifier, EventType
from auction_engine.services.transaction import run_transaction

logger = logging.getLogger(__name__)


class CancellationService:
    """Cancels leading bids and hands the lead to the next outbid bid"""

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

    async def cancel_bid(self, bid_id: int, requester_id: int) -> Bid:
        """
        Cancel the requester's leading bid

        Only the current leader can cancel. The highest OUTBID bid (never a
        previously cancelled one) becomes the new leader; with none left the
        price falls back to the starting price.

        Raises:
            NotFoundError: Bid or listing missing
            UnauthorizedError: Bid belongs to someone else
            AlreadyProcessedError: Bid is not the active leader
            AuctionClosedError: Listing no longer open
        """
        async def _cancel(session: AsyncSession) -> Tuple[Bid, Listing, Optional[Bid]]:
            now = self.clock()
            bid = await session.get(Bid, bid_id)
            if bid is None:
                raise NotFoundError("Bid not found")

            if bid.bidder_id != requester_id:
                raise UnauthorizedError("You can only cancel your own bids")

            if bid.status != BidStatus.ACTIVE:
                raise AlreadyProcessedError(f"Bid is already {bid.status.value}")

            listing = await session.get(Listing, bid.listing_id)
            if listing is None:
                raise NotFoundError("Listing not found")

            if listing.status != ListingStatus.ACTIVE or listing.is_expired(now):
                raise AuctionClosedError("Cannot cancel a bid on a closed auction")

            higher = await session.scalar(
                select(Bid.id).where(
                    Bid.listing_id == listing.id,
                    Bid.status == BidStatus.ACTIVE,
                    Bid.amount > bid.amount,
                ).limit(1)
            )
            if higher is not None:
                raise AlreadyProcessedError("A higher bid is already leading")

            bid.status = BidStatus.CANCELLED
            bid.cancelled_at = now
            # Leave ACTIVE before anything else can take it
            await session.flush()

            result = await session.execute(
                select(Bid)
                .where(Bid.listing_id == listing.id, Bid.status == BidStatus.OUTBID)
                .order_by(Bid.amount.desc(), Bid.placed_at.asc())
                .limit(1)
            )
            promoted = result.scalar_one_or_none()

            if promoted is not None:
                promoted.status = BidStatus.ACTIVE
                listing.current_price = promoted.amount
            else:
                listing.current_price = listing.starting_price
                listing.total_bids = max(0, listing.total_bids - 1)

            await session.flush()
            return bid, listing, promoted

        bid, listing, promoted = await run_transaction(
            self.session_factory, _cancel, operation="cancel_bid", retry=self.retry
        )

        outcome = "promoted" if promoted is not None else "reset"
        bids_cancelled_total.labels(outcome=outcome).inc()
        logger.info(
            f"🗑️ Bid {bid_id} cancelled on listing {listing.id}, price now {listing.current_price} ({outcome})",
            extra={'listing_id': listing.id, 'bid_id': bid_id, 'user_id': requester_id}
        )

        self.notifier.publish_nowait(
            EventType.BID_CANCELLED,
            {
                "listing_id": listing.id,
                "bid_id": bid_id,
                "current_price": Decimal(listing.current_price),
                "leader_id": promoted.bidder_id if promoted is not None else None,
            },
        )
        return bid
