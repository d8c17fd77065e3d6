"""Fair-market value estimation from comparable sales.

Pure functions: the application layer fetches comparables and hands them in.

Algorithm:
  1. Normalise every comparable to the requested condition
     (price * target_multiplier / sold_multiplier).
  2. value = median of normalised prices.
  3. confidence_score (0-100) = 60% sample size (saturates at 20 sales)
     + 40% price consistency (1 - coefficient of variation).
  4. Band half-width: variance = max(0.05, 0.5 - score/200), so
     low = value * (1 - variance), high = value * (1 + variance).

No comparables: rarity table price * condition multiplier, flagged as a
fallback with low confidence. A usable number is always returned for a
well-formed identity.
"""

import statistics
from decimal import ROUND_CEILING, ROUND_FLOOR, ROUND_HALF_UP, Decimal

from src.cm_common.enums import CardCondition, ConfidenceLevel
from src.cm_common.errors import CardNotFoundError
from src.cm_common.money import cents_to_display
from src.cm_valuation.domain.models import CardIdentity, ComparableSale, ValuationResult

# Relative to near mint
CONDITION_MULTIPLIERS: dict[str, Decimal] = {
    CardCondition.MINT.value: Decimal("1.20"),
    CardCondition.NEAR_MINT.value: Decimal("1.00"),
    CardCondition.EXCELLENT.value: Decimal("0.85"),
    CardCondition.GOOD.value: Decimal("0.70"),
    CardCondition.LIGHT_PLAYED.value: Decimal("0.60"),
    CardCondition.PLAYED.value: Decimal("0.45"),
    CardCondition.POOR.value: Decimal("0.30"),
}

# Conservative near-mint prices in cents when no sales data exists
RARITY_FALLBACK_CENTS: dict[str, int] = {
    "common": 25,
    "uncommon": 50,
    "rare": 150,
    "holo rare": 400,
    "double rare": 600,
    "ultra rare": 1200,
    "illustration rare": 1500,
    "secret rare": 2500,
    "special illustration rare": 5000,
    "hyper rare": 4000,
}
DEFAULT_FALLBACK_CENTS = 100

FALLBACK_CONFIDENCE_SCORE = 20.0
_SAMPLE_SATURATION = 20
_MIN_VARIANCE = Decimal("0.05")


def condition_multiplier(condition: str | None) -> Decimal:
    if condition is None:
        return Decimal("1.00")
    return CONDITION_MULTIPLIERS.get(condition, Decimal("1.00"))


def _to_cents(value: Decimal, rounding: str = ROUND_HALF_UP) -> int:
    return int(value.quantize(Decimal("1"), rounding=rounding))


def normalise_price(price_cents: int, sold_condition: str | None, target_condition: str) -> Decimal:
    return (
        Decimal(price_cents)
        * condition_multiplier(target_condition)
        / condition_multiplier(sold_condition)
    )


def confidence_from_prices(prices: list[Decimal]) -> tuple[str, float]:
    """Return (ConfidenceLevel value, score 0-100) for a set of normalised prices."""
    if not prices:
        return ConfidenceLevel.LOW.value, FALLBACK_CONFIDENCE_SCORE

    sample_factor = min(1.0, len(prices) / _SAMPLE_SATURATION)
    if len(prices) > 1:
        floats = [float(p) for p in prices]
        mean = statistics.mean(floats)
        consistency = max(0.0, 1.0 - statistics.pstdev(floats) / mean) if mean > 0 else 0.5
    else:
        consistency = 0.5

    score = round(100 * (0.6 * sample_factor + 0.4 * consistency), 1)
    if score >= 75:
        level = ConfidenceLevel.HIGH
    elif score >= 45:
        level = ConfidenceLevel.MEDIUM
    else:
        level = ConfidenceLevel.LOW
    return level.value, score


def confidence_band(value_cents: int, confidence_score: float) -> tuple[int, int]:
    """(low, high) around value; always low <= value <= high."""
    variance = max(_MIN_VARIANCE, Decimal("0.5") - Decimal(str(confidence_score)) / 200)
    low = _to_cents(Decimal(value_cents) * (1 - variance), ROUND_FLOOR)
    high = _to_cents(Decimal(value_cents) * (1 + variance), ROUND_CEILING)
    return max(0, min(low, value_cents)), max(high, value_cents)


def fallback_value_cents(rarity: str | None, condition: str) -> int:
    base = RARITY_FALLBACK_CENTS.get((rarity or "").strip().lower(), DEFAULT_FALLBACK_CENTS)
    return max(1, _to_cents(Decimal(base) * condition_multiplier(condition)))


def estimate_value(
    card: CardIdentity,
    condition: str,
    comparables: list[ComparableSale],
) -> ValuationResult:
    """Estimate fair-market value in cents for `card` in `condition`.

    Raises:
        CardNotFoundError: card identity has no name.
    """
    if not card.name or not card.name.strip():
        raise CardNotFoundError("card identity requires a name")

    usable = [c for c in comparables if c.price_cents > 0]
    if not usable:
        value = fallback_value_cents(card.rarity, condition)
        low, high = confidence_band(value, FALLBACK_CONFIDENCE_SCORE)
        return ValuationResult(
            value_cents=value,
            low_cents=low,
            high_cents=high,
            confidence=ConfidenceLevel.LOW.value,
            confidence_score=FALLBACK_CONFIDENCE_SCORE,
            sample_size=0,
            is_fallback=True,
            rationale=(
                f"No recent sales for {card.name}; using {card.rarity or 'default'} "
                f"rarity baseline {cents_to_display(value)} in {condition} condition"
            ),
        )

    prices = [normalise_price(c.price_cents, c.condition, condition) for c in usable]
    value = max(1, _to_cents(statistics.median(prices)))
    level, score = confidence_from_prices(prices)
    low, high = confidence_band(value, score)
    return ValuationResult(
        value_cents=value,
        low_cents=low,
        high_cents=high,
        confidence=level,
        confidence_score=score,
        sample_size=len(usable),
        is_fallback=False,
        rationale=(
            f"Median of {len(usable)} comparable sale(s) normalised to {condition}: "
            f"{cents_to_display(value)} (range {cents_to_display(low)} - {cents_to_display(high)})"
        ),
    )


def reconcile_value(declared_cents: int | None, estimate: ValuationResult) -> int:
    """Clamp a user-declared value into the estimate's confidence band."""
    if declared_cents is None:
        return estimate.value_cents
    return min(max(declared_cents, estimate.low_cents), estimate.high_cents)
