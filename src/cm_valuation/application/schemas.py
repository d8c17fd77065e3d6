"""Pydantic schemas for cm_valuation API."""

from pydantic import BaseModel, Field

from src.cm_common.enums import CardCondition
from src.cm_common.money import cents_to_display
from src.cm_valuation.domain.models import FairnessResult, ValuationResult

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class EstimateRequest(BaseModel):
    # Blank names are rejected by the domain as CardNotFound, not here
    card_name: str = Field(..., max_length=200)
    set_code: str | None = Field(None, max_length=50)
    rarity: str | None = Field(None, max_length=50)
    condition: CardCondition = CardCondition.NEAR_MINT


class FairnessRequest(BaseModel):
    offered_value_cents: int
    requested_value_cents: int


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class ValuationResponse(BaseModel):
    value_cents: int
    value_display: str
    low_cents: int
    high_cents: int
    confidence: str
    confidence_score: float
    sample_size: int
    is_fallback: bool
    rationale: str

    @classmethod
    def from_result(cls, result: ValuationResult) -> "ValuationResponse":
        return cls(
            value_cents=result.value_cents,
            value_display=cents_to_display(result.value_cents),
            low_cents=result.low_cents,
            high_cents=result.high_cents,
            confidence=result.confidence,
            confidence_score=result.confidence_score,
            sample_size=result.sample_size,
            is_fallback=result.is_fallback,
            rationale=result.rationale,
        )


class FairnessResponse(BaseModel):
    score: float
    label: str
    ratio: float
    difference_cents: int
    reasoning: str
    suggestions: list[str]

    @classmethod
    def from_result(cls, result: FairnessResult) -> "FairnessResponse":
        return cls(
            score=result.score,
            label=result.label,
            ratio=result.ratio,
            difference_cents=result.difference_cents,
            reasoning=result.reasoning,
            suggestions=list(result.suggestions),
        )
