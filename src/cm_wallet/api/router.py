"""cm_wallet REST API: 5 endpoints, all require JWT authentication.

POST /deposit only opens a card payment; the balance is credited by the
internal deposit confirmation once the provider reports success.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.cm_common.database import get_db_session
from src.cm_common.response import ApiResponse, success_response
from src.cm_gateway.auth.dependencies import get_current_user_id
from src.cm_wallet.application.schemas import DepositRequest, TransferRequest, WithdrawRequest
from src.cm_wallet.application.service import WalletApplicationService

router = APIRouter(prefix="/wallet", tags=["wallet"])

_service = WalletApplicationService()


@router.get("/balance")
async def get_balance(
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.get_balance(db, user_id)
    return success_response(data.model_dump(), request)


@router.post("/deposit", status_code=202)
async def deposit(
    body: DepositRequest,
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.request_deposit(db, user_id, body.amount_cents)
    return success_response(data.model_dump(), request)


@router.post("/withdraw")
async def withdraw(
    body: WithdrawRequest,
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.debit(db, user_id, body.amount_cents)
    return success_response(data.model_dump(), request)


@router.post("/transfer")
async def transfer(
    body: TransferRequest,
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.transfer(db, user_id, body.to_user_id, body.amount_cents, body.note)
    return success_response(data.model_dump(), request)


@router.get("/transactions")
async def list_transactions(
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
    cursor: str | None = Query(None, description="Pagination cursor (opaque Base64)"),
    limit: int = Query(20, ge=1, le=100, description="Items per page"),
    tx_type: str | None = Query(None, description="Filter by WalletTxType"),
) -> ApiResponse:
    data = await _service.list_transactions(db, user_id, cursor, limit, tx_type)
    return success_response(data.model_dump(), request)
