"""Pydantic schemas for Bid resources"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from auction_engine.models.bid import BidStatus


class BidCreate(BaseModel):
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)


class BidResponse(BaseModel):
    id: int
    listing_id: int
    bidder_id: int
    amount: Decimal
    status: BidStatus
    placed_at: datetime
    cancelled_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BidListResponse(BaseModel):
    bids: List[BidResponse]
    total: int
