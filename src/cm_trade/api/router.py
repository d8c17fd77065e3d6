"""cm_trade REST API: trade offer negotiation, all require JWT authentication."""

from typing import Annotated, Literal

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.cm_common.database import get_db_session
from src.cm_common.response import ApiResponse, success_response
from src.cm_gateway.auth.dependencies import get_current_user_id
from src.cm_trade.application.schemas import (
    AcceptOfferResponse,
    CounterOfferRequest,
    CreateOfferRequest,
    OfferMutationResponse,
    OfferResponse,
)
from src.cm_trade.application.service import TradeOfferService
from src.cm_trade.application.settlement import SettlementOrchestrator
from src.cm_valuation.application.schemas import FairnessResponse

router = APIRouter(prefix="/trade-offers", tags=["trade-offers"])

_service = TradeOfferService()
_orchestrator = SettlementOrchestrator()


@router.post("", status_code=201)
async def create_offer(
    body: CreateOfferRequest,
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    offer, fairness = await _service.create_offer(
        db,
        user_id,
        body.target_listing_id,
        body.cash_amount_cents,
        [item.to_domain() for item in body.offered_items],
        body.notes,
    )
    data = OfferMutationResponse(
        offer=OfferResponse.from_offer(offer),
        fairness=FairnessResponse.from_result(fairness),
    )
    return success_response(data.model_dump(mode="json"), request)


@router.get("")
async def list_offers(
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
    role: Literal["proposer", "counterparty"] | None = Query(None),
    status: str | None = Query(None, description="Filter by OfferStatus"),
    cursor: str | None = Query(None, description="Pagination cursor (opaque Base64)"),
    limit: int = Query(20, ge=1, le=100, description="Items per page"),
) -> ApiResponse:
    data = await _service.list_offers(db, user_id, role, status, cursor, limit)
    return success_response(data.model_dump(mode="json"), request)


@router.get("/{offer_id}")
async def get_offer(
    offer_id: str,
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    offer = await _service.get_offer(db, offer_id, user_id)
    return success_response(OfferResponse.from_offer(offer).model_dump(mode="json"), request)


@router.get("/{offer_id}/history")
async def get_history(
    offer_id: str,
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.get_history(db, offer_id, user_id)
    return success_response(data.model_dump(mode="json"), request)


@router.post("/{offer_id}/accept")
async def accept_offer(
    offer_id: str,
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    result = await _orchestrator.accept(db, offer_id, user_id)
    transfer = result.transfer
    data = AcceptOfferResponse(
        offer=OfferResponse.from_offer(result.offer),
        traded_listing_ids=result.traded_listing_ids,
        cash_transferred_cents=result.offer.cash_amount_cents if transfer else 0,
        debit_transaction_id=transfer.debit_entry.id if transfer else None,
        credit_transaction_id=transfer.credit_entry.id if transfer else None,
    )
    return success_response(data.model_dump(mode="json"), request)


@router.post("/{offer_id}/reject")
async def reject_offer(
    offer_id: str,
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    offer, changed = await _service.reject_offer(db, offer_id, user_id)
    data = OfferMutationResponse(offer=OfferResponse.from_offer(offer), changed=changed)
    return success_response(data.model_dump(mode="json"), request)


@router.post("/{offer_id}/counter")
async def counter_offer(
    offer_id: str,
    body: CounterOfferRequest,
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    items = (
        [item.to_domain() for item in body.offered_items]
        if body.offered_items is not None
        else None
    )
    offer, fairness = await _service.counter_offer(
        db, offer_id, user_id, body.cash_amount_cents, items, body.notes
    )
    data = OfferMutationResponse(
        offer=OfferResponse.from_offer(offer),
        fairness=FairnessResponse.from_result(fairness),
    )
    return success_response(data.model_dump(mode="json"), request)
