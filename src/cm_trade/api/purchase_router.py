"""Listing purchase endpoint: buy a listing outright from the wallet (JWT required)."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.cm_common.database import get_db_session
from src.cm_common.money import cents_to_display
from src.cm_common.response import ApiResponse, success_response
from src.cm_gateway.auth.dependencies import get_current_user_id
from src.cm_trade.application.schemas import PurchaseResponse
from src.cm_trade.application.settlement import SettlementOrchestrator

router = APIRouter(prefix="/listings", tags=["purchases"])

_orchestrator = SettlementOrchestrator()


@router.post("/{listing_id}/purchase", status_code=201)
async def purchase_listing(
    listing_id: str,
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    result = await _orchestrator.purchase(db, listing_id, user_id)
    settlement = result.purchase.settlement
    data = PurchaseResponse(
        order_id=result.order_id,
        listing_id=result.listing.id,
        listing_status=result.listing.status,
        buyer_id=result.buyer_id,
        seller_id=result.listing.owner_id,
        price_cents=result.listing.price_cents,
        price_display=cents_to_display(result.listing.price_cents),
        fee_amount_cents=settlement.fee_amount,
        seller_net_cents=settlement.net_amount,
        settlement_id=settlement.id,
        hold_until=settlement.hold_until,
        debit_transaction_id=result.purchase.debit_entry.id,
        buyer_available_balance_cents=result.purchase.buyer_account.available_balance,
    )
    return success_response(data.model_dump(mode="json"), request)
