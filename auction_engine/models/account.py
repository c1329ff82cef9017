"""
Account model - the slice of a user's wallet the engine reads and writes
"""
from decimal import Decimal

from sqlalchemy import Column, DateTime, Integer, Numeric

from auction_engine.core.database import Base, utcnow


class Account(Base):
    __tablename__ = "accounts"

    user_id = Column(Integer, primary_key=True, autoincrement=False)
    balance = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    pending_balance = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    version = Column(Integer, nullable=False)

    # Balances are read-modify-write; stale writers retry
    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return (f"<Account(user_id={self.user_id}, balance={self.balance}, "
                f"pending_balance={self.pending_balance})>")
