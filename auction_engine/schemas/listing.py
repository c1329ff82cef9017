"""Pydantic schemas for Listing state"""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel

from auction_engine.models.listing import ListingStatus


class ListingStateResponse(BaseModel):
    id: int
    seller_id: int
    title: str
    status: ListingStatus
    starting_price: Decimal
    current_price: Decimal
    increment_amount: Decimal
    minimum_next_bid: Decimal
    buy_now_price: Optional[Decimal] = None
    end_at: datetime
    time_remaining_seconds: int = 0
    total_bids: int
    unique_bidder_count: int
    leader_id: Optional[int] = None
    winner_id: Optional[int] = None
    final_price: Optional[Decimal] = None
    ended_at: Optional[datetime] = None

    @classmethod
    def from_listing(cls, listing, leader, now: datetime):
        """Convert Listing ORM model (plus its leading bid) to response"""
        return cls(
            id=listing.id,
            seller_id=listing.seller_id,
            title=listing.title,
            status=listing.status,
            starting_price=listing.starting_price,
            current_price=listing.current_price,
            increment_amount=listing.increment_amount,
            minimum_next_bid=listing.minimum_next_bid,
            buy_now_price=listing.buy_now_price,
            end_at=listing.end_at,
            time_remaining_seconds=listing.time_remaining_seconds(now),
            total_bids=listing.total_bids,
            unique_bidder_count=listing.unique_bidder_count,
            leader_id=leader.bidder_id if leader is not None else None,
            winner_id=listing.winner_id,
            final_price=listing.final_price,
            ended_at=listing.ended_at,
        )


class HighestBidderResponse(BaseModel):
    listing_id: int
    user_id: int
    is_highest_bidder: bool
