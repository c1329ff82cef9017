"""
Pydantic schemas for API request/response validation
"""
from auction_engine.schemas.bid import BidCreate, BidListResponse, BidResponse
from auction_engine.schemas.listing import HighestBidderResponse, ListingStateResponse
from auction_engine.schemas.order import BuyNowRequest, OrderResponse
from auction_engine.schemas.payment import PaymentConfirmation
from auction_engine.schemas.settlement import SettlementOutcome, SweepResult

__all__ = [
    # Bids
    "BidCreate",
    "BidResponse",
    "BidListResponse",
    # Listings
    "ListingStateResponse",
    "HighestBidderResponse",
    # Orders
    "BuyNowRequest",
    "OrderResponse",
    "PaymentConfirmation",
    # Settlement
    "SettlementOutcome",
    "SweepResult",
]
