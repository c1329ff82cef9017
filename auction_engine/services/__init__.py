"""
Services package exports
"""
from auction_engine.services.bid_service import BiddingService
from auction_engine.services.cancellation_service import CancellationService
from auction_engine.services.exceptions import (
    AlreadyProcessedError,
    AuctionClosedError,
    AuctionServiceError,
    BidTooLowError,
    BuyNowUnavailableError,
    ContentionError,
    InsufficientFundsError,
    NotFoundError,
    PriceMismatchError,
    SelfBidForbiddenError,
    StoreUnavailableError,
    UnauthorizedError,
    UseBuyNowInsteadError,
)
from auction_engine.services.notifier import (
    EventNotifier,
    EventType,
    RecordingNotifier,
    RedisEventNotifier,
    create_notifier,
)
from auction_engine.services.scheduler import AuctionScheduler
from auction_engine.services.settlement_service import SettlementService
from auction_engine.services.transaction import run_transaction
from auction_engine.services.validator import AuctionExpiredError, validate_bid

__all__ = [
    "BiddingService",
    "CancellationService",
    "SettlementService",
    "AuctionScheduler",
    "validate_bid",
    "run_transaction",
    # Notifier
    "EventNotifier",
    "EventType",
    "RecordingNotifier",
    "RedisEventNotifier",
    "create_notifier",
    # Errors
    "AuctionServiceError",
    "NotFoundError",
    "AuctionClosedError",
    "AuctionExpiredError",
    "SelfBidForbiddenError",
    "BidTooLowError",
    "UseBuyNowInsteadError",
    "InsufficientFundsError",
    "UnauthorizedError",
    "AlreadyProcessedError",
    "BuyNowUnavailableError",
    "PriceMismatchError",
    "ContentionError",
    "StoreUnavailableError",
]
