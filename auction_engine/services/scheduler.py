"""
Background scheduler that closes expired auctions
"""
import asyncio
import logging
import time
from datetime import datetime
from typing import Callable, Iterable, List, Optional, Set

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from auction_engine.core.database import utcnow
from auction_engine.core.metrics import sweep_duration_seconds, sweep_failures_total
from auction_engine.models import Listing
from auction_engine.schemas.settlement import SettlementOutcome, SweepResult
from auction_engine.services.settlement_service import SETTLEABLE_STATUSES, SettlementService

logger = logging.getLogger(__name__)


class AuctionScheduler:
    """
    Periodically settles listings whose end time has passed

    - One sweep at startup, then every `interval_seconds`
    - Sweeps never overlap; a sweep requested while one runs is skipped
    - A listing that fails to settle is logged and retried on later sweeps,
      after the fresh expired listings, so repeat failures cannot fill the batch
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        settlement: SettlementService,
        interval_seconds: float = 60,
        batch_size: int = 100,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory
        self.settlement = settlement
        self.interval_seconds = interval_seconds
        self.batch_size = batch_size
        self.clock = clock

        self.task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()
        self._sweep_lock = asyncio.Lock()
        self.sweeps_completed = 0
        self._failed_ids: Set[int] = set()

    @property
    def running(self) -> bool:
        return self.task is not None and not self.task.done()

    async def start(self):
        """Start the background loop"""
        if self.running:
            logger.warning("⚠️  Auction scheduler already running")
            return

        self._stop_event.clear()
        self.task = asyncio.create_task(self._run())
        logger.info(f"✅ Auction scheduler started (interval: {self.interval_seconds}s)")

    async def stop(self):
        """Signal the loop and wait for an in-flight sweep to finish"""
        if self.task is None:
            return

        self._stop_event.set()
        await self.task
        self.task = None
        logger.info("🛑 Auction scheduler stopped")

    async def _run(self):
        """Main scheduler loop"""
        while not self._stop_event.is_set():
            try:
                await self.run_sweep()
            except Exception as e:
                logger.error(f"❌ Error in auction scheduler: {e}", exc_info=True)

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass

    async def find_expired_listings(self, exclude: Iterable[int] = ()) -> List[int]:
        """Oldest expired, still settleable listings, skipping `exclude`"""
        query = select(Listing.id).where(
            Listing.status.in_(SETTLEABLE_STATUSES),
            Listing.end_at <= self.clock(),
        )
        exclude = list(exclude)
        if exclude:
            query = query.where(Listing.id.notin_(exclude))

        async with self.session_factory() as session:
            result = await session.execute(
                query.order_by(Listing.end_at.asc(), Listing.id.asc()).limit(self.batch_size)
            )
            return list(result.scalars().all())

    async def run_sweep(self) -> SweepResult:
        """
        Settle one batch of expired listings and release abandoned checkouts
        """
        if self._sweep_lock.locked():
            logger.info("⏭️  Sweep already in progress, skipping")
            return SweepResult(skipped=True)

        async with self._sweep_lock:
            start_time = time.perf_counter()
            result = SweepResult()

            listing_ids = await self.find_expired_listings(exclude=self._failed_ids)
            room = self.batch_size - len(listing_ids)
            if room > 0 and self._failed_ids:
                # Earlier failures get whatever room fresh work left over
                listing_ids += sorted(self._failed_ids)[:room]
            if listing_ids:
                logger.info(f"⏰ Found {len(listing_ids)} expired auctions to process")

            for listing_id in listing_ids:
                try:
                    outcome = await self.settlement.settle_listing(listing_id)
                except Exception as e:
                    sweep_failures_total.inc()
                    self._failed_ids.add(listing_id)
                    result.failed_listing_ids.append(listing_id)
                    logger.error(
                        f"❌ Failed to settle listing {listing_id}: {e}",
                        extra={'listing_id': listing_id}
                    )
                    continue

                self._failed_ids.discard(listing_id)
                if outcome.settled:
                    result.settled.append(outcome)

            result.released_reservations = await self.settlement.release_expired_reservations(self.batch_size)

            self.sweeps_completed += 1
            sweep_duration_seconds.observe(time.perf_counter() - start_time)

            if result.settled or result.failed_listing_ids or result.released_reservations:
                logger.info(
                    f"✅ Sweep done: {len(result.settled)} settled, "
                    f"{len(result.failed_listing_ids)} failed, "
                    f"{result.released_reservations} reservations released"
                )
            return result

    async def force_end(self, listing_id: int) -> SettlementOutcome:
        """Settle a listing now, regardless of its end time"""
        logger.info(f"🔨 Force-ending listing {listing_id}", extra={'listing_id': listing_id})
        return await self.settlement.settle_listing(listing_id)
