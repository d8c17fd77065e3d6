"""Service-to-service trade endpoints (manual expiry sweep)."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.cm_common.database import get_db_session
from src.cm_common.response import ApiResponse, success_response
from src.cm_gateway.auth.dependencies import require_internal_caller
from src.cm_trade.application.schemas import ExpireSweepResponse
from src.cm_trade.application.service import TradeOfferService

router = APIRouter(
    prefix="/internal/trade-offers",
    tags=["internal"],
    dependencies=[Depends(require_internal_caller)],
)

_service = TradeOfferService()


@router.post("/expire")
async def expire_offers(
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
    limit: int = Query(500, ge=1, le=5000),
) -> ApiResponse:
    expired = await _service.expire_due_offers(db, limit=limit)
    data = ExpireSweepResponse(expired_count=len(expired), offer_ids=[o.id for o in expired])
    return success_response(data.model_dump(), request)
