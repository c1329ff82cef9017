"""
Listing Model - the auction itself
"""
import enum
from decimal import Decimal

from sqlalchemy import Column, DateTime, Enum as SQLEnum, Integer, Numeric, String

from auction_engine.core.database import Base, utcnow


class ListingStatus(str, enum.Enum):
    """Listing status enum"""
    ACTIVE = "ACTIVE"
    RESERVED = "RESERVED"  # buy-now checkout awaiting payment
    ENDED = "ENDED"
    SOLD = "SOLD"
    ENDED_NO_BIDS = "ENDED_NO_BIDS"
    CANCELLED = "CANCELLED"


class Listing(Base):
    """
    Listing database model

    `version` is bumped by SQLAlchemy on every UPDATE and checked in the
    WHERE clause, so two writers that read the same row cannot both commit.
    """

    __tablename__ = "listings"

    id = Column(Integer, primary_key=True, index=True)
    seller_id = Column(Integer, nullable=False, index=True)
    title = Column(String(255), nullable=False, default="")
    starting_price = Column(Numeric(12, 2), nullable=False)
    current_price = Column(Numeric(12, 2), nullable=False)
    increment_amount = Column(Numeric(12, 2), nullable=False)
    buy_now_price = Column(Numeric(12, 2), nullable=True)
    end_at = Column(DateTime, nullable=False, index=True)
    status = Column(SQLEnum(ListingStatus), nullable=False, default=ListingStatus.ACTIVE, index=True)
    total_bids = Column(Integer, nullable=False, default=0)
    unique_bidder_count = Column(Integer, nullable=False, default=0)
    winner_id = Column(Integer, nullable=True)
    final_price = Column(Numeric(12, 2), nullable=True)
    ended_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return (f"<Listing(id={self.id}, status='{self.status.value}', "
                f"current_price={self.current_price}, version={self.version})>")

    @property
    def minimum_next_bid(self) -> Decimal:
        """Smallest amount the next bid must reach"""
        return Decimal(self.current_price) + Decimal(self.increment_amount)

    def is_expired(self, now) -> bool:
        return now >= self.end_at

    def time_remaining_seconds(self, now) -> int:
        if self.status != ListingStatus.ACTIVE:
            return 0
        return max(0, int((self.end_at - now).total_seconds()))
