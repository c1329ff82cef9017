"""Bid API Routes"""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from auction_engine.api.dependencies import (
    CurrentUser,
    get_bidding_service,
    get_cancellation_service,
    get_current_user,
)
from auction_engine.models.bid import BidStatus
from auction_engine.schemas import BidListResponse, BidResponse
from auction_engine.services import BiddingService, CancellationService

router = APIRouter(tags=["bids"])


@router.delete("/bids/{bid_id}", response_model=BidResponse)
async def cancel_bid(
    bid_id: int,
    user: CurrentUser = Depends(get_current_user),
    cancellation: CancellationService = Depends(get_cancellation_service),
):
    """Cancel your leading bid; the next-highest outbid bid takes over"""
    bid = await cancellation.cancel_bid(bid_id, user.id)
    return BidResponse.model_validate(bid)


@router.get("/users/me/bids", response_model=BidListResponse)
async def list_my_bids(
    status: Optional[BidStatus] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    user: CurrentUser = Depends(get_current_user),
    bidding: BiddingService = Depends(get_bidding_service),
):
    """All bids of the current user, newest first"""
    bids = await bidding.get_user_bids(user.id, status=status, limit=limit)
    return BidListResponse(
        bids=[BidResponse.model_validate(b) for b in bids],
        total=len(bids),
    )
