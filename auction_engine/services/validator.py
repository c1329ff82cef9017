"""
Bid Validator

Pure checks run against a consistent snapshot of the listing and the
bidder's spendable balance. The first failing check wins.
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from auction_engine.models import Listing, ListingStatus
from auction_engine.services.exceptions import (
    AuctionClosedError,
    BidTooLowError,
    InsufficientFundsError,
    NotFoundError,
    SelfBidForbiddenError,
    UseBuyNowInsteadError,
)


class AuctionExpiredError(AuctionClosedError):
    """Listing is still ACTIVE but its end time has passed"""


def validate_bid(
    listing: Optional[Listing],
    bidder_id: int,
    amount: Decimal,
    balance: Decimal,
    now: datetime,
) -> None:
    """
    Validate a bid before it is written

    Checks, in order:
    1. Listing exists
    2. Listing is ACTIVE
    3. Listing has not passed its end time
    4. Bidder is not the seller
    5. Amount reaches current price + increment
    6. Amount stays below the buy-now price
    7. Bidder can cover the amount

    Raises:
        NotFoundError, AuctionClosedError, AuctionExpiredError,
        SelfBidForbiddenError, BidTooLowError, UseBuyNowInsteadError,
        InsufficientFundsError
    """
    if listing is None:
        raise NotFoundError("Listing not found")

    if listing.status != ListingStatus.ACTIVE:
        raise AuctionClosedError(f"Auction is {listing.status.value}")

    if listing.is_expired(now):
        raise AuctionExpiredError("This auction has ended")

    if bidder_id == listing.seller_id:
        raise SelfBidForbiddenError("You cannot bid on your own listing")

    minimum_bid = listing.minimum_next_bid
    if amount < minimum_bid:
        raise BidTooLowError(minimum_bid)

    if listing.buy_now_price is not None and amount >= listing.buy_now_price:
        raise UseBuyNowInsteadError(
            f"Bid reaches the buy-now price of {Decimal(listing.buy_now_price):.2f}, use buy now instead"
        )

    if balance < amount:
        raise InsufficientFundsError("Insufficient balance to place this bid")
