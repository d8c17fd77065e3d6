"""Fairness scoring: banded ratio -> 0-100 score policy.

d = |1 - offered/requested|, computed in Decimal so band edges are exact:

    d <= 0.05   score = 100 - 5 * d / 0.05             [95, 100]   Very Fair
    d <= 0.15   score = 95 - 15 * (d - 0.05) / 0.10    [80, 95)    Fair
    d <= 0.30   score = 80 - 20 * (d - 0.15) / 0.15    [60, 80)    Slightly Unbalanced (>= 70)
                                                                    Unbalanced (< 70)
    otherwise   score = max(0, 60 * (1 - d))                        Very Unbalanced

Scores are truncated to two decimals, which keeps each band's upper bound
exclusive and preserves monotonicity.
"""

from decimal import ROUND_DOWN, Decimal

from src.cm_common.errors import InvalidArgumentError
from src.cm_common.money import cents_to_display
from src.cm_valuation.domain.models import FairnessResult

LABEL_VERY_FAIR = "Very Fair"
LABEL_FAIR = "Fair"
LABEL_SLIGHTLY_UNBALANCED = "Slightly Unbalanced"
LABEL_UNBALANCED = "Unbalanced"
LABEL_VERY_UNBALANCED = "Very Unbalanced"

FAIR_THRESHOLD = Decimal("80")

_BAND_VERY_FAIR = Decimal("0.05")
_BAND_FAIR = Decimal("0.15")
_BAND_UNBALANCED = Decimal("0.30")
_TWO_PLACES = Decimal("0.01")


def _band_score(d: Decimal) -> tuple[Decimal, str]:
    if d <= _BAND_VERY_FAIR:
        return Decimal(100) - 5 * d / _BAND_VERY_FAIR, LABEL_VERY_FAIR
    if d <= _BAND_FAIR:
        return Decimal(95) - 15 * (d - _BAND_VERY_FAIR) / Decimal("0.10"), LABEL_FAIR
    if d <= _BAND_UNBALANCED:
        score = Decimal(80) - 20 * (d - _BAND_FAIR) / Decimal("0.15")
        label = LABEL_SLIGHTLY_UNBALANCED if score >= 70 else LABEL_UNBALANCED
        return score, label
    return max(Decimal(0), 60 * (1 - d)), LABEL_VERY_UNBALANCED


def score_fairness(offered_cents: int, requested_cents: int) -> FairnessResult:
    """Score how balanced a trade is. Pure; values are in cents.

    Raises:
        InvalidArgumentError: requested value <= 0 or offered value < 0.
    """
    if requested_cents <= 0:
        raise InvalidArgumentError("requested value must be positive")
    if offered_cents < 0:
        raise InvalidArgumentError("offered value must not be negative")

    ratio = Decimal(offered_cents) / Decimal(requested_cents)
    d = abs(1 - ratio)
    raw, label = _band_score(d)
    score = raw.quantize(_TWO_PLACES, rounding=ROUND_DOWN)
    difference = offered_cents - requested_cents

    if difference == 0:
        reasoning = f"Both sides are valued at {cents_to_display(requested_cents)}."
    else:
        direction = "above" if difference > 0 else "below"
        pct = (d * 100).quantize(Decimal("0.1"), rounding=ROUND_DOWN)
        reasoning = (
            f"The offer ({cents_to_display(offered_cents)}) is {pct}% {direction} "
            f"the requested value ({cents_to_display(requested_cents)})."
        )

    suggestions: list[str] = []
    if difference < 0:
        suggestions.append(f"Add {cents_to_display(-difference)} cash to balance this trade")
    if score >= FAIR_THRESHOLD:
        suggestions.append("This trade is already fair")
    elif difference > 0:
        suggestions.append(f"Consider reducing your offer by {cents_to_display(difference)}")

    return FairnessResult(
        score=float(score),
        label=label,
        ratio=float(ratio.quantize(Decimal("0.0001"), rounding=ROUND_DOWN)),
        difference_cents=difference,
        reasoning=reasoning,
        suggestions=suggestions,
    )
