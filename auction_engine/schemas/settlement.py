"""Settlement and sweep results"""
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from auction_engine.models.listing import ListingStatus


class SettlementOutcome(BaseModel):
    listing_id: int
    # sold, ended_no_bids, or noop when the listing was already closed
    outcome: str
    status: ListingStatus
    winner_id: Optional[int] = None
    final_price: Optional[Decimal] = None
    order_id: Optional[int] = None

    @property
    def settled(self) -> bool:
        return self.outcome != "noop"


class SweepResult(BaseModel):
    settled: List[SettlementOutcome] = Field(default_factory=list)
    failed_listing_ids: List[int] = Field(default_factory=list)
    released_reservations: int = 0
    skipped: bool = False  # another sweep was already running
