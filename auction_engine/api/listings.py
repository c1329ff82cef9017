"""
Listing API Routes

Handles:
- Listing state (price, leader, time remaining)
- Placing bids
- Bid history
"""
from fastapi import APIRouter, Depends, Query

from auction_engine.api.dependencies import CurrentUser, get_bidding_service, get_current_user
from auction_engine.schemas import (
    BidCreate,
    BidListResponse,
    BidResponse,
    HighestBidderResponse,
    ListingStateResponse,
)
from auction_engine.services import BiddingService

router = APIRouter(prefix="/listings", tags=["listings"])


@router.get("/{listing_id}", response_model=ListingStateResponse)
async def get_listing(
    listing_id: int,
    bidding: BiddingService = Depends(get_bidding_service),
):
    """Current auction state"""
    listing, leader = await bidding.get_listing_state(listing_id)
    return ListingStateResponse.from_listing(listing, leader, bidding.clock())


@router.post("/{listing_id}/bids", response_model=BidResponse, status_code=201)
async def place_bid(
    listing_id: int,
    bid_data: BidCreate,
    user: CurrentUser = Depends(get_current_user),
    bidding: BiddingService = Depends(get_bidding_service),
):
    """
    Place a bid

    Errors:
    - 400 bid_too_low (with minimum_bid), use_buy_now_instead
    - 402 insufficient_funds
    - 403 self_bid_forbidden
    - 409 auction_closed, contention
    """
    bid = await bidding.place_bid(listing_id, user.id, bid_data.amount)
    return BidResponse.model_validate(bid)


@router.get("/{listing_id}/bids", response_model=BidListResponse)
async def get_bid_history(
    listing_id: int,
    limit: int = Query(50, ge=1, le=200),
    bidding: BiddingService = Depends(get_bidding_service),
):
    """Bid history, highest first"""
    bids = await bidding.get_bid_history(listing_id, limit=limit)
    return BidListResponse(
        bids=[BidResponse.model_validate(b) for b in bids],
        total=len(bids),
    )


@router.get("/{listing_id}/highest", response_model=HighestBidderResponse)
async def is_highest_bidder(
    listing_id: int,
    user: CurrentUser = Depends(get_current_user),
    bidding: BiddingService = Depends(get_bidding_service),
):
    highest = await bidding.is_highest_bidder(listing_id, user.id)
    return HighestBidderResponse(listing_id=listing_id, user_id=user.id, is_highest_bidder=highest)
