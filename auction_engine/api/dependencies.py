"""
FastAPI Dependencies

Identity comes from trusted gateway headers:
- X-User-Id: authenticated user
- X-User-Role: "user" (default), "admin" or "payments"
"""
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request
from pydantic import BaseModel

from auction_engine.services import (
    AuctionScheduler,
    BiddingService,
    CancellationService,
    SettlementService,
)

ADMIN_ROLE = "admin"
PAYMENTS_ROLE = "payments"


class CurrentUser(BaseModel):
    id: int
    role: str = "user"

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE


async def get_current_user(
    user_id: Optional[int] = Header(None, alias="X-User-Id"),
    role: Optional[str] = Header(None, alias="X-User-Role"),
) -> CurrentUser:
    if user_id is None:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return CurrentUser(id=user_id, role=(role or "user").lower())


async def require_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Admin role required")
    return user


async def require_payments(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    """Payment confirmations come from the gateway integration (or an admin)"""
    if user.role not in (PAYMENTS_ROLE, ADMIN_ROLE):
        raise HTTPException(status_code=403, detail="Payments role required")
    return user


def get_bidding_service(request: Request) -> BiddingService:
    return request.app.state.bidding


def get_cancellation_service(request: Request) -> CancellationService:
    return request.app.state.cancellation


def get_settlement_service(request: Request) -> SettlementService:
    return request.app.state.settlement


def get_scheduler(request: Request) -> AuctionScheduler:
    return request.app.state.scheduler
