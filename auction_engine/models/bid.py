"""
Bid Model
"""
import enum

from sqlalchemy import (
    Column,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    text,
)

from auction_engine.core.database import Base, utcnow


class BidStatus(str, enum.Enum):
    """Bid status enum"""
    ACTIVE = "ACTIVE"  # current leader
    OUTBID = "OUTBID"
    CANCELLED = "CANCELLED"
    WON = "WON"
    LOST = "LOST"


class Bid(Base):
    """Bid database model"""

    __tablename__ = "bids"

    id = Column(Integer, primary_key=True, index=True)
    listing_id = Column(Integer, ForeignKey("listings.id", ondelete="CASCADE"), nullable=False, index=True)
    bidder_id = Column(Integer, nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    status = Column(SQLEnum(BidStatus), nullable=False, default=BidStatus.ACTIVE, index=True)
    placed_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    cancelled_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        # One leader per listing, enforced by the store itself
        Index(
            "uq_bids_one_active_per_listing",
            "listing_id",
            unique=True,
            sqlite_where=text("status = 'ACTIVE'"),
            postgresql_where=text("status = 'ACTIVE'"),
        ),
    )

    def __repr__(self):
        return (f"<Bid(id={self.id}, listing_id={self.listing_id}, bidder_id={self.bidder_id}, "
                f"amount={self.amount}, status='{self.status.value}')>")
