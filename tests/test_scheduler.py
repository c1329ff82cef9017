import asyncio
from datetime import timedelta
from decimal import Decimal

import pytest

from auction_engine.models import ListingStatus, OrderStatus
from auction_engine.services import AuctionClosedError, AuctionScheduler


@pytest.mark.asyncio
async def test_sweep_settles_only_expired_listings(scheduler, bidding, make_listing, funded_bidders, fetch, clock):
    with_bids = await make_listing(end_at=clock.now + timedelta(minutes=5))
    without_bids = await make_listing(end_at=clock.now + timedelta(minutes=5))
    still_open = await make_listing(end_at=clock.now + timedelta(hours=5))
    await funded_bidders(2)
    await bidding.place_bid(with_bids.id, 2, Decimal("105.00"))

    clock.advance(minutes=10)
    result = await scheduler.run_sweep()

    assert sorted(o.listing_id for o in result.settled) == sorted([with_bids.id, without_bids.id])
    assert result.failed_listing_ids == []
    assert (await fetch.listing(with_bids.id)).status == ListingStatus.SOLD
    assert (await fetch.listing(without_bids.id)).status == ListingStatus.ENDED_NO_BIDS
    assert (await fetch.listing(still_open.id)).status == ListingStatus.ACTIVE


@pytest.mark.asyncio
async def test_repeated_sweeps_do_not_resettle(scheduler, bidding, make_listing, funded_bidders, fetch, clock):
    listing = await make_listing(end_at=clock.now + timedelta(minutes=1))
    await funded_bidders(2)
    await bidding.place_bid(listing.id, 2, Decimal("105.00"))
    clock.advance(minutes=2)

    first = await scheduler.run_sweep()
    second = await scheduler.run_sweep()

    assert len(first.settled) == 1
    assert second.settled == []
    assert len(await fetch.orders(listing.id)) == 1


@pytest.mark.asyncio
async def test_sweep_settles_listing_closed_by_late_bid(scheduler, bidding, make_listing, funded_bidders, fetch, clock):
    listing = await make_listing(end_at=clock.now + timedelta(minutes=1))
    await funded_bidders(2, 3)
    await bidding.place_bid(listing.id, 2, Decimal("105.00"))
    clock.advance(minutes=2)

    with pytest.raises(AuctionClosedError):
        await bidding.place_bid(listing.id, 3, Decimal("110.00"))
    assert (await fetch.listing(listing.id)).status == ListingStatus.ENDED

    result = await scheduler.run_sweep()

    assert [o.winner_id for o in result.settled] == [2]
    assert (await fetch.listing(listing.id)).status == ListingStatus.SOLD


@pytest.mark.asyncio
async def test_failed_listing_does_not_stop_batch(scheduler, settlement, make_listing, fetch, clock):
    broken = await make_listing(end_at=clock.now + timedelta(minutes=1))
    healthy = await make_listing(end_at=clock.now + timedelta(minutes=2))
    clock.advance(minutes=5)

    real_settle = settlement.settle_listing

    async def flaky_settle(listing_id):
        if listing_id == broken.id:
            raise RuntimeError("store hiccup")
        return await real_settle(listing_id)

    settlement.settle_listing = flaky_settle
    result = await scheduler.run_sweep()

    assert result.failed_listing_ids == [broken.id]
    assert [o.listing_id for o in result.settled] == [healthy.id]
    assert (await fetch.listing(broken.id)).status == ListingStatus.ACTIVE

    # Picked up again on the next sweep
    settlement.settle_listing = real_settle
    retry = await scheduler.run_sweep()
    assert [o.listing_id for o in retry.settled] == [broken.id]


@pytest.mark.asyncio
async def test_sweep_respects_batch_size(session_factory, settlement, make_listing, clock):
    for minutes in (1, 2, 3):
        await make_listing(end_at=clock.now + timedelta(minutes=minutes))
    clock.advance(minutes=10)
    small_batches = AuctionScheduler(session_factory, settlement, batch_size=2, clock=clock)

    first = await small_batches.run_sweep()
    second = await small_batches.run_sweep()

    assert len(first.settled) == 2
    assert len(second.settled) == 1


@pytest.mark.asyncio
async def test_overlapping_sweep_is_skipped(scheduler, make_listing, clock):
    await make_listing(end_at=clock.now + timedelta(minutes=1))
    clock.advance(minutes=2)

    first, second = await asyncio.gather(scheduler.run_sweep(), scheduler.run_sweep())

    assert not first.skipped
    assert second.skipped
    assert len(first.settled) == 1


@pytest.mark.asyncio
async def test_sweep_releases_expired_reservations(scheduler, settlement, make_listing, fetch, clock, settings):
    listing = await make_listing(buy_now_price=Decimal("400.00"), end_at=clock.now + timedelta(days=1))
    order = await settlement.buy_now(listing.id, 2, Decimal("400.00"))
    clock.advance(minutes=settings.BUY_NOW_RESERVATION_MINUTES + 1)

    result = await scheduler.run_sweep()

    assert result.released_reservations == 1
    assert (await settlement.get_order(order.id)).status == OrderStatus.EXPIRED
    assert (await fetch.listing(listing.id)).status == ListingStatus.ACTIVE


@pytest.mark.asyncio
async def test_force_end_ignores_end_time(scheduler, bidding, make_listing, funded_bidders, fetch):
    listing = await make_listing()
    await funded_bidders(2)
    await bidding.place_bid(listing.id, 2, Decimal("105.00"))

    outcome = await scheduler.force_end(listing.id)

    assert outcome.outcome == "sold"
    assert (await fetch.listing(listing.id)).status == ListingStatus.SOLD

    again = await scheduler.force_end(listing.id)
    assert again.outcome == "noop"


@pytest.mark.asyncio
async def test_start_runs_initial_sweep_and_stops(scheduler, make_listing, fetch, clock):
    listing = await make_listing(end_at=clock.now + timedelta(minutes=1))
    clock.advance(minutes=2)

    await scheduler.start()
    assert scheduler.running

    for _ in range(100):
        if scheduler.sweeps_completed:
            break
        await asyncio.sleep(0.02)

    await scheduler.stop()

    assert not scheduler.running
    assert scheduler.sweeps_completed >= 1
    assert (await fetch.listing(listing.id)).status == ListingStatus.ENDED_NO_BIDS


@pytest.mark.asyncio
async def test_failing_listings_do_not_starve_later_ones(session_factory, settlement, make_listing, fetch, clock):
    broken = [
        (await make_listing(end_at=clock.now + timedelta(minutes=1))).id,
        (await make_listing(end_at=clock.now + timedelta(minutes=2))).id,
    ]
    healthy = await make_listing(end_at=clock.now + timedelta(minutes=3))
    clock.advance(minutes=10)

    real_settle = settlement.settle_listing

    async def always_failing(listing_id):
        if listing_id in broken:
            raise RuntimeError("store hiccup")
        return await real_settle(listing_id)

    settlement.settle_listing = always_failing
    small_batches = AuctionScheduler(session_factory, settlement, batch_size=2, clock=clock)

    first = await small_batches.run_sweep()
    second = await small_batches.run_sweep()

    assert sorted(first.failed_listing_ids) == broken
    assert [o.listing_id for o in second.settled] == [healthy.id]
    assert (await fetch.listing(healthy.id)).status == ListingStatus.ENDED_NO_BIDS

    # The broken ones are still retried once they recover
    settlement.settle_listing = real_settle
    third = await small_batches.run_sweep()
    assert sorted(o.listing_id for o in third.settled) == broken
