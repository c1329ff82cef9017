"""Payment confirmation schemas"""
from typing import Optional

from pydantic import BaseModel, Field

from auction_engine.models.order import PaymentOutcome


class PaymentConfirmation(BaseModel):
    order_id: int = Field(..., gt=0)
    status: PaymentOutcome
    reference: Optional[str] = Field(None, max_length=255)
