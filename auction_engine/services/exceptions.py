"""
Auction service exceptions

Every error carries a stable `code` and the HTTP status the API maps it to.
Validation errors are terminal; ContentionError and StoreUnavailableError are
only raised after the transaction retry budget is spent.
"""
from decimal import Decimal
from typing import Any, Dict


class AuctionServiceError(Exception):
    """Base exception for auction engine errors"""
    code = "auction_error"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "message": self.message}


class NotFoundError(AuctionServiceError):
    """Raised when a listing, bid or order doesn't exist"""
    code = "not_found"
    status_code = 404


class AuctionClosedError(AuctionServiceError):
    """Raised when the listing no longer accepts bids or purchases"""
    code = "auction_closed"
    status_code = 409


class SelfBidForbiddenError(AuctionServiceError):
    """Raised when a seller bids on (or buys) their own listing"""
    code = "self_bid_forbidden"
    status_code = 403


class BidTooLowError(AuctionServiceError):
    """Raised when the bid does not beat current price + increment"""
    code = "bid_too_low"
    status_code = 400

    def __init__(self, minimum_bid: Decimal):
        super().__init__(f"Bid must be at least {minimum_bid:.2f}")
        self.minimum_bid = minimum_bid

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["minimum_bid"] = str(self.minimum_bid)
        return data


class UseBuyNowInsteadError(AuctionServiceError):
    """Raised when a bid reaches the buy-now price"""
    code = "use_buy_now_instead"
    status_code = 400


class InsufficientFundsError(AuctionServiceError):
    code = "insufficient_funds"
    status_code = 402


class UnauthorizedError(AuctionServiceError):
    """Raised when a user acts on a bid they don't own"""
    code = "unauthorized"
    status_code = 403


class AlreadyProcessedError(AuctionServiceError):
    """Raised when the bid is no longer in a cancellable state"""
    code = "already_processed"
    status_code = 409


class BuyNowUnavailableError(AuctionServiceError):
    code = "buy_now_unavailable"
    status_code = 400


class PriceMismatchError(AuctionServiceError):
    code = "price_mismatch"
    status_code = 400


class ContentionError(AuctionServiceError):
    """Raised when a transaction keeps losing to concurrent writers"""
    code = "contention"
    status_code = 409


class StoreUnavailableError(AuctionServiceError):
    """Raised when the database cannot be reached"""
    code = "store_unavailable"
    status_code = 503
