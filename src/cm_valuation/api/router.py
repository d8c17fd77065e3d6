"""cm_valuation REST API: value estimates and fairness scores (JWT required)."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.cm_common.database import get_db_session
from src.cm_common.response import ApiResponse, success_response
from src.cm_gateway.auth.dependencies import get_current_user_id
from src.cm_valuation.application.schemas import (
    EstimateRequest,
    FairnessRequest,
    FairnessResponse,
    ValuationResponse,
)
from src.cm_valuation.application.service import ValuationApplicationService
from src.cm_valuation.domain.models import CardIdentity

router = APIRouter(prefix="/valuations", tags=["valuations"])

_service = ValuationApplicationService()


@router.post("/estimate")
async def estimate_value(
    body: EstimateRequest,
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    card = CardIdentity(name=body.card_name, set_code=body.set_code, rarity=body.rarity)
    result = await _service.estimate(db, card, body.condition.value)
    return success_response(ValuationResponse.from_result(result).model_dump(), request)


@router.post("/fairness")
async def score_fairness(
    body: FairnessRequest,
    user_id: Annotated[str, Depends(get_current_user_id)],
    request: Request,
) -> ApiResponse:
    result = _service.score(body.offered_value_cents, body.requested_value_cents)
    return success_response(FairnessResponse.from_result(result).model_dump(), request)
