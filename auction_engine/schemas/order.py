"""Pydantic schemas for Order resources"""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from auction_engine.models.order import OrderStatus, OrderType


class BuyNowRequest(BaseModel):
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)


class OrderResponse(BaseModel):
    id: int
    listing_id: int
    buyer_id: int
    seller_id: int
    amount: Decimal
    platform_fee: Decimal
    type: OrderType
    status: OrderStatus
    payment_reference: Optional[str] = None
    expires_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True
