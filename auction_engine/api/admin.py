"""
Admin API Routes - auction management
"""
from fastapi import APIRouter, Depends, Request

from auction_engine.api.dependencies import CurrentUser, get_scheduler, require_admin
from auction_engine.schemas import SettlementOutcome, SweepResult
from auction_engine.services import AuctionScheduler

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/listings/{listing_id}/end", response_model=SettlementOutcome)
async def force_end_listing(
    listing_id: int,
    admin: CurrentUser = Depends(require_admin),
    scheduler: AuctionScheduler = Depends(get_scheduler),
):
    """End an auction now, ignoring its end time"""
    return await scheduler.force_end(listing_id)


@router.post("/scheduler/sweep", response_model=SweepResult)
async def trigger_sweep(
    admin: CurrentUser = Depends(require_admin),
    scheduler: AuctionScheduler = Depends(get_scheduler),
):
    """Run a settlement sweep immediately"""
    return await scheduler.run_sweep()


@router.get("/stats")
async def get_stats(
    request: Request,
    admin: CurrentUser = Depends(require_admin),
    scheduler: AuctionScheduler = Depends(get_scheduler),
):
    """Scheduler and notifier statistics"""
    return {
        "scheduler": {
            "running": scheduler.running,
            "interval_seconds": scheduler.interval_seconds,
            "sweeps_completed": scheduler.sweeps_completed,
        },
        "notifier": request.app.state.notifier.get_stats(),
    }
