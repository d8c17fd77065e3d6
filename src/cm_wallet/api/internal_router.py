"""Service-to-service wallet endpoints (deposit webhooks, order settlement,
hold release, ledger audit).

Guarded by the X-Internal-Key header instead of a user JWT.
"""

from datetime import timedelta
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.cm_common.database import get_db_session
from src.cm_common.response import ApiResponse, success_response
from src.cm_gateway.auth.dependencies import require_internal_caller
from src.cm_wallet.application.schemas import ConfirmDepositRequest, SettleRequest
from src.cm_wallet.application.service import WalletApplicationService

router = APIRouter(
    prefix="/internal",
    tags=["internal"],
    dependencies=[Depends(require_internal_caller)],
)

_service = WalletApplicationService()


@router.post("/deposits/{payment_intent_id}/confirm")
async def confirm_deposit(
    payment_intent_id: str,
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
    body: ConfirmDepositRequest | None = None,
) -> ApiResponse:
    amount = body.amount_received_cents if body is not None else None
    data = await _service.confirm_deposit(db, payment_intent_id, amount)
    return success_response(data.model_dump(mode="json"), request)


@router.post("/deposits/{payment_intent_id}/fail")
async def fail_deposit(
    payment_intent_id: str,
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.fail_deposit(db, payment_intent_id)
    return success_response(data.model_dump(mode="json"), request)


@router.post("/settlements")
async def settle(
    body: SettleRequest,
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    hold = timedelta(seconds=body.hold_seconds) if body.hold_seconds is not None else None
    data = await _service.settle(
        db, body.order_id, body.seller_id, body.gross_amount_cents, body.fee_amount_cents, hold
    )
    return success_response(data.model_dump(mode="json"), request)


@router.post("/settlements/release")
async def release_settlements(
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
    limit: int = Query(100, ge=1, le=1000),
) -> ApiResponse:
    data = await _service.release_settlements(db, limit=limit)
    return success_response(data.model_dump(), request)


@router.get("/ledger/verify/{user_id}")
async def verify_ledger(
    user_id: str,
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.verify_ledger(db, user_id)
    return success_response(data.model_dump(), request)
