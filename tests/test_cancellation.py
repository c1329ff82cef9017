from decimal import Decimal

import pytest
import pytest_asyncio

from conftest import gather_outcomes

from auction_engine.models import Bid, BidStatus, ListingStatus
from auction_engine.services import (
    AlreadyProcessedError,
    AuctionClosedError,
    EventType,
    NotFoundError,
    UnauthorizedError,
)


@pytest_asyncio.fixture
async def three_bids(bidding, make_listing, funded_bidders):
    """Listing starting at 50 with bids 80 (user 2), 90 (user 3), 100 (user 4)"""
    listing = await make_listing(starting_price=Decimal("50.00"))
    await funded_bidders(2, 3, 4)
    bids = [
        await bidding.place_bid(listing.id, 2, Decimal("80.00")),
        await bidding.place_bid(listing.id, 3, Decimal("90.00")),
        await bidding.place_bid(listing.id, 4, Decimal("100.00")),
    ]
    return listing, bids


@pytest.mark.asyncio
async def test_cancel_promotes_next_highest(cancellation, three_bids, fetch, notifier):
    listing, (b80, b90, b100) = three_bids

    cancelled = await cancellation.cancel_bid(b100.id, 4)

    assert cancelled.status == BidStatus.CANCELLED
    assert cancelled.cancelled_at is not None
    assert (await fetch.bid(b90.id)).status == BidStatus.ACTIVE
    assert (await fetch.bid(b80.id)).status == BidStatus.OUTBID
    stored = await fetch.listing(listing.id)
    assert stored.current_price == Decimal("90.00")
    assert stored.total_bids == 3

    await notifier.drain()
    [event] = notifier.of_type(EventType.BID_CANCELLED)
    assert event["current_price"] == Decimal("90.00")
    assert event["leader_id"] == 3


@pytest.mark.asyncio
async def test_cancelled_bids_are_never_promoted(cancellation, three_bids, fetch):
    listing, (b80, b90, b100) = three_bids

    await cancellation.cancel_bid(b100.id, 4)
    await cancellation.cancel_bid(b90.id, 3)

    assert (await fetch.bid(b100.id)).status == BidStatus.CANCELLED
    assert (await fetch.bid(b80.id)).status == BidStatus.ACTIVE
    assert (await fetch.listing(listing.id)).current_price == Decimal("80.00")


@pytest.mark.asyncio
async def test_cancel_only_bid_resets_price(bidding, cancellation, make_listing, funded_bidders, fetch):
    listing = await make_listing()
    await funded_bidders(2)
    bid = await bidding.place_bid(listing.id, 2, Decimal("105.00"))

    await cancellation.cancel_bid(bid.id, 2)

    stored = await fetch.listing(listing.id)
    assert stored.current_price == Decimal("100.00")
    assert stored.total_bids == 0
    assert [b.status for b in await fetch.bids(listing.id)] == [BidStatus.CANCELLED]


@pytest.mark.asyncio
async def test_bidding_continues_from_promoted_price(bidding, cancellation, three_bids, funded_bidders):
    listing, (_, _, b100) = three_bids
    await cancellation.cancel_bid(b100.id, 4)
    await funded_bidders(5)

    bid = await bidding.place_bid(listing.id, 5, Decimal("95.00"))
    assert bid.status == BidStatus.ACTIVE


@pytest.mark.asyncio
async def test_only_owner_can_cancel(cancellation, three_bids):
    _, (_, _, b100) = three_bids

    with pytest.raises(UnauthorizedError):
        await cancellation.cancel_bid(b100.id, 2)


@pytest.mark.asyncio
async def test_outbid_bid_cannot_be_cancelled(cancellation, three_bids):
    _, (b80, _, _) = three_bids

    with pytest.raises(AlreadyProcessedError):
        await cancellation.cancel_bid(b80.id, 2)


@pytest.mark.asyncio
async def test_double_cancel_rejected(cancellation, three_bids):
    _, (_, _, b100) = three_bids
    await cancellation.cancel_bid(b100.id, 4)

    with pytest.raises(AlreadyProcessedError):
        await cancellation.cancel_bid(b100.id, 4)


@pytest.mark.asyncio
async def test_unknown_bid(cancellation):
    with pytest.raises(NotFoundError):
        await cancellation.cancel_bid(999, 2)


@pytest.mark.asyncio
async def test_cannot_cancel_after_auction_closed(cancellation, settlement, three_bids, fetch):
    listing, (_, _, b100) = three_bids
    await settlement.settle_listing(listing.id)

    with pytest.raises(AlreadyProcessedError):
        # Winning bid is WON now, no longer ACTIVE
        await cancellation.cancel_bid(b100.id, 4)

    assert (await fetch.listing(listing.id)).status == ListingStatus.SOLD


@pytest.mark.asyncio
async def test_cannot_cancel_after_end_time(cancellation, three_bids, clock):
    listing, (_, _, b100) = three_bids
    clock.advance(hours=2)

    with pytest.raises(AuctionClosedError):
        await cancellation.cancel_bid(b100.id, 4)


@pytest.mark.asyncio
async def test_cancel_racing_new_bid_keeps_single_leader(bidding, cancellation, three_bids, funded_bidders, fetch):
    listing, (b80, b90, b100) = three_bids
    await funded_bidders(5)

    cancel_outcome, bid_outcome = await gather_outcomes(
        cancellation.cancel_bid(b100.id, 4),
        bidding.place_bid(listing.id, 5, Decimal("110.00")),
    )

    # 110 clears the price whichever commits first; the cancel only
    # loses if the new bid already pushed b100 out of the lead
    assert isinstance(bid_outcome, Bid)
    assert isinstance(cancel_outcome, (Bid, AlreadyProcessedError))

    bids = await fetch.bids(listing.id)
    [leader] = [b for b in bids if b.status == BidStatus.ACTIVE]
    assert leader.bidder_id == 5
    assert (await fetch.listing(listing.id)).current_price == leader.amount
