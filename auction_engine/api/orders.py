"""Order API Routes - buy now and order lookup"""
from fastapi import APIRouter, Depends

from auction_engine.api.dependencies import CurrentUser, get_current_user, get_settlement_service
from auction_engine.schemas import BuyNowRequest, OrderResponse
from auction_engine.services import SettlementService, UnauthorizedError

router = APIRouter(tags=["orders"])


@router.post("/listings/{listing_id}/buy-now", response_model=OrderResponse, status_code=201)
async def buy_now(
    listing_id: int,
    request: BuyNowRequest,
    user: CurrentUser = Depends(get_current_user),
    settlement: SettlementService = Depends(get_settlement_service),
):
    """
    Reserve the listing at its buy-now price

    The order stays PENDING_PAYMENT until the payment gateway confirms it
    or the reservation runs out.
    """
    order = await settlement.buy_now(listing_id, user.id, request.amount)
    return OrderResponse.model_validate(order)


@router.get("/orders/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: int,
    user: CurrentUser = Depends(get_current_user),
    settlement: SettlementService = Depends(get_settlement_service),
):
    order = await settlement.get_order(order_id)
    if not user.is_admin and user.id not in (order.buyer_id, order.seller_id):
        raise UnauthorizedError("You can only view your own orders")
    return OrderResponse.model_validate(order)
