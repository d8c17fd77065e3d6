"""Domain models for cm_valuation: pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class CardIdentity:
    name: str
    set_code: str | None = None
    rarity: str | None = None


@dataclass
class ComparableSale:
    price_cents: int
    condition: str              # CardCondition value the card sold in
    sold_at: datetime
    source: str | None = None


@dataclass
class ValuationResult:
    value_cents: int
    low_cents: int
    high_cents: int
    confidence: str             # ConfidenceLevel value
    confidence_score: float     # 0-100
    sample_size: int
    is_fallback: bool
    rationale: str


@dataclass
class FairnessResult:
    score: float                # 0-100, two decimals
    label: str
    ratio: float
    difference_cents: int       # offered - requested
    reasoning: str
    suggestions: list[str] = field(default_factory=list)

    @property
    def normalized_score(self) -> float:
        """Score on the 0.0-1.0 scale stored on trade offers."""
        return round(self.score / 100, 4)
