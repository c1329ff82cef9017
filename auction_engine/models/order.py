"""
Order model - created once per won or purchased listing
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
    String,
    text,
)

from auction_engine.core.database import Base, utcnow


class OrderType(str, enum.Enum):
    BUY_NOW = "BUY_NOW"
    AUCTION_WIN = "AUCTION_WIN"


class OrderStatus(str, enum.Enum):
    PENDING_PAYMENT = "PENDING_PAYMENT"
    PAID = "PAID"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    EXPIRED = "EXPIRED"  # buy-now reservation ran out before payment


OPEN_ORDER_STATUSES = (OrderStatus.PENDING_PAYMENT, OrderStatus.PAID)

_OPEN_ORDER_PREDICATE = "status IN ({})".format(
    ", ".join(f"'{s.value}'" for s in OPEN_ORDER_STATUSES)
)


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    listing_id = Column(Integer, ForeignKey("listings.id", ondelete="CASCADE"), nullable=False, index=True)
    buyer_id = Column(Integer, nullable=False, index=True)
    seller_id = Column(Integer, nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    platform_fee = Column(Numeric(12, 2), nullable=False)
    type = Column(SQLEnum(OrderType), nullable=False)
    status = Column(SQLEnum(OrderStatus), nullable=False, default=OrderStatus.PENDING_PAYMENT, index=True)
    payment_reference = Column(String(255), nullable=True)
    expires_at = Column(DateTime, nullable=True, index=True)  # buy-now only
    paid_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    version = Column(Integer, nullable=False)

    __table_args__ = (
        # A listing can only ever have one open order
        Index(
            "uq_orders_one_open_per_listing",
            "listing_id",
            unique=True,
            sqlite_where=text(_OPEN_ORDER_PREDICATE),
            postgresql_where=text(_OPEN_ORDER_PREDICATE),
        ),
    )

    # Concurrent confirmations of the same order cannot both apply
    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return (f"<Order(id={self.id}, listing_id={self.listing_id}, type='{self.type.value}', "
                f"status='{self.status.value}', amount={self.amount})>")

    @property
    def seller_proceeds(self):
        """Amount the seller receives after the platform fee"""
        return self.amount - self.platform_fee

    @property
    def is_terminal(self) -> bool:
        return self.status != OrderStatus.PENDING_PAYMENT


class PaymentOutcome(str, enum.Enum):
    """Result reported by the payment gateway for an order"""
    COMPLETED = "completed"
    FAILED = "failed"
