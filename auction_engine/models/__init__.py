"""
Database Models

Import all models here so they register with Base.metadata.
"""
from auction_engine.core.database import Base

from auction_engine.models.listing import Listing, ListingStatus
from auction_engine.models.bid import Bid, BidStatus
from auction_engine.models.order import (
    OPEN_ORDER_STATUSES,
    Order,
    OrderStatus,
    OrderType,
    PaymentOutcome,
)
from auction_engine.models.account import Account

__all__ = [
    "Base",
    "Listing",
    "ListingStatus",
    "Bid",
    "BidStatus",
    "Order",
    "OrderStatus",
    "OrderType",
    "OPEN_ORDER_STATUSES",
    "PaymentOutcome",
    "Account",
]
