"""Payment confirmation webhook"""
from fastapi import APIRouter, Depends

from auction_engine.api.dependencies import CurrentUser, get_settlement_service, require_payments
from auction_engine.schemas import OrderResponse, PaymentConfirmation
from auction_engine.services import SettlementService

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/confirmations", response_model=OrderResponse)
async def confirm_payment(
    confirmation: PaymentConfirmation,
    user: CurrentUser = Depends(require_payments),
    settlement: SettlementService = Depends(get_settlement_service),
):
    """
    Consume a payment result

    Idempotent: repeated deliveries return the order unchanged.
    """
    order = await settlement.confirm_payment(
        confirmation.order_id,
        confirmation.status,
        confirmation.reference,
    )
    return OrderResponse.model_validate(order)
