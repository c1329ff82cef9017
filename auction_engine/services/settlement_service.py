"""
Settlement Handoff

Turns a closed auction (or a buy-now purchase) into an Order, and consumes
payment confirmations for those orders.

Listing lifecycle handled here:
    ACTIVE/ENDED --settle--> SOLD | ENDED_NO_BIDS
    ACTIVE --buy now--> RESERVED --paid--> SOLD
                                 --failed / expired--> ACTIVE --late payment--> SOLD
"""
import logging
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from auction_engine.core.config import Settings, get_settings
from auction_engine.core.database import utcnow
from auction_engine.core.metrics import (
    orders_created_total,
    payments_confirmed_total,
    settlements_total,
)
from auction_engine.core.retry import RetryConfig
from auction_engine.models import (
    OPEN_ORDER_STATUSES,
    Bid,
    BidStatus,
    Listing,
    ListingStatus,
    Order,
    OrderStatus,
    OrderType,
    PaymentOutcome,
)
from auction_engine.schemas.settlement import SettlementOutcome
from auction_engine.services.accounts import credit_pending, release_pending, reverse_pending
from auction_engine.services.bid_service import get_leading_bid
from auction_engine.services.exceptions import (
    AuctionClosedError,
    BuyNowUnavailableError,
    NotFoundError,
    PriceMismatchError,
    SelfBidForbiddenError,
)
from auction_engine.services.notifier import EventNotifier, EventType
from auction_engine.services.transaction import run_transaction

logger = logging.getLogger(__name__)

# Listings the settlement sweep may still close. ENDED means bidding was
# closed early by a late bid but nobody has settled it yet.
SETTLEABLE_STATUSES = (ListingStatus.ACTIVE, ListingStatus.ENDED)

CENT = Decimal("0.01")


async def _mark_losing_bids(session: AsyncSession, listing_id: int, winning_bid_id: Optional[int]):
    """Every ACTIVE/OUTBID bid other than the winner becomes LOST"""
    result = await session.execute(
        select(Bid).where(
            Bid.listing_id == listing_id,
            Bid.status.in_([BidStatus.ACTIVE, BidStatus.OUTBID]),
        )
    )
    for bid in result.scalars().all():
        if bid.id != winning_bid_id:
            bid.status = BidStatus.LOST


class SettlementService:
    """Closes auctions, reserves buy-now purchases, and settles payments"""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        notifier: EventNotifier,
        settings: Optional[Settings] = None,
        retry: Optional[RetryConfig] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory
        self.notifier = notifier
        self.settings = settings or get_settings()
        self.retry = retry
        self.clock = clock

    def platform_fee(self, amount: Decimal) -> Decimal:
        return (Decimal(amount) * self.settings.PLATFORM_FEE_RATE).quantize(CENT, rounding=ROUND_HALF_UP)

    # ==================== Auction close ====================

    async def settle_listing(self, listing_id: int) -> SettlementOutcome:
        """
        Close a listing and hand the win to an order

        Idempotent: a listing that is already closed yields a "noop" outcome
        and nothing is written. The caller decides whether end_at has passed.

        Raises:
            NotFoundError: Listing doesn't exist
        """
        async def _settle(session: AsyncSession) -> Tuple[SettlementOutcome, Optional[Order]]:
            now = self.clock()
            listing = await session.get(Listing, listing_id)
            if listing is None:
                raise NotFoundError("Listing not found")

            if listing.status not in SETTLEABLE_STATUSES:
                return SettlementOutcome(
                    listing_id=listing.id,
                    outcome="noop",
                    status=listing.status,
                    winner_id=listing.winner_id,
                    final_price=listing.final_price,
                ), None

            leader = await get_leading_bid(session, listing_id)
            listing.ended_at = now

            if leader is None:
                listing.status = ListingStatus.ENDED_NO_BIDS
                await session.flush()
                return SettlementOutcome(
                    listing_id=listing.id,
                    outcome="ended_no_bids",
                    status=listing.status,
                ), None

            listing.status = ListingStatus.SOLD
            listing.winner_id = leader.bidder_id
            listing.final_price = leader.amount
            leader.status = BidStatus.WON
            await _mark_losing_bids(session, listing_id, leader.id)

            amount = Decimal(leader.amount)
            fee = self.platform_fee(amount)
            order = Order(
                listing_id=listing.id,
                buyer_id=leader.bidder_id,
                seller_id=listing.seller_id,
                amount=amount,
                platform_fee=fee,
                type=OrderType.AUCTION_WIN,
                status=OrderStatus.PENDING_PAYMENT,
                created_at=now,
            )
            session.add(order)
            await credit_pending(session, listing.seller_id, amount - fee)
            await session.flush()

            return SettlementOutcome(
                listing_id=listing.id,
                outcome="sold",
                status=listing.status,
                winner_id=listing.winner_id,
                final_price=amount,
                order_id=order.id,
            ), order

        outcome, order = await run_transaction(
            self.session_factory, _settle, operation="settle_listing", retry=self.retry
        )
        settlements_total.labels(outcome=outcome.outcome).inc()

        if not outcome.settled:
            logger.debug(f"Listing {listing_id} already closed ({outcome.status.value})")
            return outcome

        if order is not None:
            orders_created_total.labels(type=order.type.value).inc()
            logger.info(
                f"🏆 Listing {listing_id} sold to {outcome.winner_id} for {outcome.final_price}, order {order.id}",
                extra={'listing_id': listing_id, 'order_id': order.id}
            )
            self.notifier.publish_nowait(
                EventType.AUCTION_WON,
                {
                    "listing_id": listing_id,
                    "order_id": order.id,
                    "amount": outcome.final_price,
                    "winner_id": outcome.winner_id,
                },
                user_id=outcome.winner_id,
            )
        else:
            logger.info(f"📭 Listing {listing_id} ended with no bids", extra={'listing_id': listing_id})

        self.notifier.publish_nowait(
            EventType.AUCTION_ENDED,
            {
                "listing_id": listing_id,
                "status": outcome.status.value,
                "winner_id": outcome.winner_id,
                "final_price": outcome.final_price,
            },
        )
        return outcome

    # ==================== Buy now ====================

    async def buy_now(self, listing_id: int, buyer_id: int, amount: Decimal) -> Order:
        """
        Reserve a listing at its buy-now price

        The listing moves ACTIVE -> RESERVED in the same transaction that
        creates the order, so a second buyer sees RESERVED and is turned away.

        Raises:
            NotFoundError, AuctionClosedError, SelfBidForbiddenError,
            BuyNowUnavailableError, PriceMismatchError
        """
        amount = Decimal(str(amount))

        async def _reserve(session: AsyncSession) -> Order:
            now = self.clock()
            listing = await session.get(Listing, listing_id)
            if listing is None:
                raise NotFoundError("Listing not found")

            if listing.status != ListingStatus.ACTIVE or listing.is_expired(now):
                raise AuctionClosedError("This listing is no longer available")

            if buyer_id == listing.seller_id:
                raise SelfBidForbiddenError("You cannot buy your own listing")

            if listing.buy_now_price is None:
                raise BuyNowUnavailableError("Buy now is not available for this listing")

            buy_now_price = Decimal(listing.buy_now_price)
            if amount != buy_now_price:
                raise PriceMismatchError(f"Buy now price is {buy_now_price:.2f}")

            fee = self.platform_fee(buy_now_price)
            listing.status = ListingStatus.RESERVED
            order = Order(
                listing_id=listing.id,
                buyer_id=buyer_id,
                seller_id=listing.seller_id,
                amount=buy_now_price,
                platform_fee=fee,
                type=OrderType.BUY_NOW,
                status=OrderStatus.PENDING_PAYMENT,
                expires_at=now + timedelta(minutes=self.settings.BUY_NOW_RESERVATION_MINUTES),
                created_at=now,
            )
            session.add(order)
            await credit_pending(session, listing.seller_id, buy_now_price - fee)
            await session.flush()
            return order

        order = await run_transaction(
            self.session_factory, _reserve, operation="buy_now", retry=self.retry
        )

        orders_created_total.labels(type=order.type.value).inc()
        logger.info(
            f"🛒 Listing {listing_id} reserved for buyer {buyer_id}, order {order.id}",
            extra={'listing_id': listing_id, 'order_id': order.id, 'user_id': buyer_id}
        )
        self.notifier.publish_nowait(
            EventType.BUY_NOW_RESERVED,
            {"listing_id": listing_id, "order_id": order.id, "expires_at": order.expires_at.isoformat()},
        )
        return order

    # ==================== Payments ====================

    async def confirm_payment(
        self,
        order_id: int,
        status: PaymentOutcome,
        reference: Optional[str] = None,
    ) -> Order:
        """
        Apply a payment gateway result to an order

        Duplicate deliveries are harmless: once an order leaves
        PENDING_PAYMENT every later confirmation returns it unchanged.

        A `completed` result for a buy-now order whose reservation already
        expired still completes the sale while the listing is back on sale
        with no other open order. Otherwise the buyer paid for something
        they can no longer get: the order is left as is and a
        refund-required event goes to the buyer.

        Raises:
            NotFoundError: Order doesn't exist
        """
        status = PaymentOutcome(status)

        async def _confirm(session: AsyncSession) -> Tuple[Order, str]:
            now = self.clock()
            order = await session.get(Order, order_id)
            if order is None:
                raise NotFoundError("Order not found")

            if order.is_terminal:
                if status == PaymentOutcome.COMPLETED and order.status != OrderStatus.PAID:
                    return order, await self._apply_late_payment(session, order, reference, now)
                return order, "duplicate"

            listing = await session.get(Listing, order.listing_id)
            proceeds = Decimal(order.seller_proceeds)
            order.payment_reference = reference

            if status == PaymentOutcome.COMPLETED:
                order.status = OrderStatus.PAID
                order.paid_at = now
                await release_pending(session, order.seller_id, proceeds)

                if listing is not None and listing.status == ListingStatus.RESERVED:
                    await self._sell_to_buyer(session, listing, order, now)
            else:
                order.status = OrderStatus.PAYMENT_FAILED
                await reverse_pending(session, order.seller_id, proceeds)

                if listing is not None and listing.status == ListingStatus.RESERVED:
                    listing.status = ListingStatus.ACTIVE

            await session.flush()
            return order, "applied"

        order, result = await run_transaction(
            self.session_factory, _confirm, operation="confirm_payment", retry=self.retry
        )

        if result == "duplicate":
            logger.info(
                f"🔁 Duplicate payment confirmation for order {order_id} ignored ({order.status.value})",
                extra={'order_id': order_id}
            )
            return order

        if result == "refund_required":
            payments_confirmed_total.labels(status="refund_required").inc()
            logger.error(
                f"❌ Payment {reference} for order {order_id} arrived after the order was "
                f"{order.status.value}, buyer {order.buyer_id} needs a refund",
                extra={'order_id': order_id, 'listing_id': order.listing_id, 'user_id': order.buyer_id}
            )
            self.notifier.publish_nowait(
                EventType.REFUND_REQUIRED,
                {
                    "listing_id": order.listing_id,
                    "order_id": order.id,
                    "amount": order.amount,
                    "reference": reference,
                },
                user_id=order.buyer_id,
            )
            return order

        if result == "revived":
            logger.warning(
                f"⚠️  Late payment for expired order {order_id} completed the sale",
                extra={'order_id': order_id, 'listing_id': order.listing_id}
            )

        payments_confirmed_total.labels(status=status.value).inc()
        logger.info(
            f"💳 Order {order_id} payment {status.value}",
            extra={'order_id': order_id, 'listing_id': order.listing_id}
        )

        if status == PaymentOutcome.COMPLETED and order.type == OrderType.BUY_NOW:
            self.notifier.publish_nowait(
                EventType.AUCTION_ENDED,
                {
                    "listing_id": order.listing_id,
                    "status": ListingStatus.SOLD.value,
                    "winner_id": order.buyer_id,
                    "final_price": order.amount,
                },
            )
        return order

    async def _sell_to_buyer(self, session: AsyncSession, listing: Listing, order: Order, now: datetime):
        listing.status = ListingStatus.SOLD
        listing.winner_id = order.buyer_id
        listing.final_price = order.amount
        listing.ended_at = now
        await _mark_losing_bids(session, listing.id, None)

    async def _apply_late_payment(
        self,
        session: AsyncSession,
        order: Order,
        reference: Optional[str],
        now: datetime,
    ) -> str:
        """Completed payment on an EXPIRED or PAYMENT_FAILED order: "revived" or "refund_required" """
        if order.status != OrderStatus.EXPIRED:
            return "refund_required"

        listing = await session.get(Listing, order.listing_id)
        if listing is None or listing.status != ListingStatus.ACTIVE or listing.is_expired(now):
            return "refund_required"

        open_order_id = await session.scalar(
            select(Order.id).where(
                Order.listing_id == listing.id,
                Order.status.in_(OPEN_ORDER_STATUSES),
            ).limit(1)
        )
        if open_order_id is not None:
            return "refund_required"

        proceeds = Decimal(order.seller_proceeds)
        order.status = OrderStatus.PAID
        order.paid_at = now
        order.payment_reference = reference
        # Expiry already reversed the earmark, so earmark again and release
        await credit_pending(session, order.seller_id, proceeds)
        await release_pending(session, order.seller_id, proceeds)

        await self._sell_to_buyer(session, listing, order, now)
        await session.flush()
        return "revived"

    # ==================== Reservation expiry ====================

    async def find_expired_reservations(self, limit: int = 100) -> List[int]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(Order.id)
                .where(
                    Order.type == OrderType.BUY_NOW,
                    Order.status == OrderStatus.PENDING_PAYMENT,
                    Order.expires_at <= self.clock(),
                )
                .order_by(Order.expires_at.asc())
                .limit(limit)
            )
            return list(result.scalars().all())

    async def expire_reservation(self, order_id: int) -> bool:
        """
        Give up on an unpaid buy-now order and reopen its listing

        Returns False when the order was paid or expired in the meantime.
        """
        async def _expire(session: AsyncSession) -> Optional[int]:
            now = self.clock()
            order = await session.get(Order, order_id)
            if order is None or order.is_terminal:
                return None
            if order.expires_at is None or order.expires_at > now:
                return None

            order.status = OrderStatus.EXPIRED
            await reverse_pending(session, order.seller_id, Decimal(order.seller_proceeds))

            listing = await session.get(Listing, order.listing_id)
            if listing is not None and listing.status == ListingStatus.RESERVED:
                listing.status = ListingStatus.ACTIVE

            await session.flush()
            return order.listing_id

        listing_id = await run_transaction(
            self.session_factory, _expire, operation="expire_reservation", retry=self.retry
        )
        if listing_id is None:
            return False

        logger.info(
            f"⏰ Buy-now order {order_id} expired, listing {listing_id} reopened",
            extra={'order_id': order_id, 'listing_id': listing_id}
        )
        return True

    async def release_expired_reservations(self, limit: int = 100) -> int:
        """Expire every overdue buy-now reservation; returns how many were released"""
        released = 0
        for order_id in await self.find_expired_reservations(limit):
            try:
                if await self.expire_reservation(order_id):
                    released += 1
            except Exception as e:
                logger.error(f"❌ Failed to expire order {order_id}: {e}", extra={'order_id': order_id})
        return released

    # ==================== Queries ====================

    async def get_order(self, order_id: int) -> Order:
        async with self.session_factory() as session:
            order = await session.get(Order, order_id)
            if order is None:
                raise NotFoundError("Order not found")
            return order
