"""Unit tests for comparable-sales valuation (pure functions)."""

from datetime import UTC, datetime
from decimal import Decimal

import pytest

from src.cm_common.errors import CardNotFoundError
from src.cm_valuation.domain.models import CardIdentity, ComparableSale
from src.cm_valuation.domain.valuation import (
    condition_multiplier,
    confidence_band,
    confidence_from_prices,
    estimate_value,
    fallback_value_cents,
    normalise_price,
    reconcile_value,
)


def _sale(price: int, condition: str = "near_mint") -> ComparableSale:
    return ComparableSale(price_cents=price, condition=condition, sold_at=datetime.now(UTC))


CHARIZARD = CardIdentity(name="Charizard", set_code="base1", rarity="holo rare")


class TestConditionMultiplier:
    def test_known_conditions(self) -> None:
        assert condition_multiplier("mint") == Decimal("1.20")
        assert condition_multiplier("near_mint") == Decimal("1.00")
        assert condition_multiplier("poor") == Decimal("0.30")

    def test_missing_or_unknown_is_neutral(self) -> None:
        assert condition_multiplier(None) == Decimal("1.00")
        assert condition_multiplier("water_damaged") == Decimal("1.00")

    def test_normalise_played_sale_to_near_mint(self) -> None:
        assert normalise_price(450, "played", "near_mint") == Decimal("1000")


class TestFallback:
    def test_rarity_table_price(self) -> None:
        assert fallback_value_cents("rare", "near_mint") == 150

    def test_rarity_lookup_is_case_insensitive(self) -> None:
        assert fallback_value_cents("  Holo Rare ", "near_mint") == 400

    def test_unknown_rarity_uses_default(self) -> None:
        assert fallback_value_cents("promo", "mint") == 120
        assert fallback_value_cents(None, "near_mint") == 100

    def test_condition_scales_fallback(self) -> None:
        assert fallback_value_cents("common", "poor") == 8  # 7.5 rounds half up

    def test_no_comparables_returns_low_confidence_fallback(self) -> None:
        result = estimate_value(CardIdentity(name="Oddish", rarity="rare"), "near_mint", [])
        assert result.is_fallback is True
        assert result.value_cents == 150
        assert result.confidence == "low"
        assert result.confidence_score == 20.0
        assert result.sample_size == 0
        assert (result.low_cents, result.high_cents) == (90, 210)

    def test_zero_priced_comparables_are_ignored(self) -> None:
        result = estimate_value(CHARIZARD, "near_mint", [_sale(0), _sale(0)])
        assert result.is_fallback is True
        assert result.value_cents == 400


class TestEstimateFromComparables:
    def test_median_of_comparables(self) -> None:
        result = estimate_value(CHARIZARD, "near_mint", [_sale(1200), _sale(1000), _sale(1100)])
        assert result.is_fallback is False
        assert result.value_cents == 1100
        assert result.sample_size == 3
        assert result.confidence == "medium"
        assert result.low_cents <= result.value_cents <= result.high_cents

    def test_comparables_normalised_to_requested_condition(self) -> None:
        result = estimate_value(CHARIZARD, "near_mint", [_sale(450, "played")])
        assert result.value_cents == 1000
        assert result.confidence == "low"
        assert result.confidence_score == 23.0
        assert (result.low_cents, result.high_cents) == (615, 1385)

    def test_many_consistent_sales_give_high_confidence_narrow_band(self) -> None:
        result = estimate_value(CHARIZARD, "near_mint", [_sale(1000)] * 20)
        assert result.confidence == "high"
        assert result.confidence_score == 100.0
        assert (result.low_cents, result.high_cents) == (950, 1050)

    def test_rationale_mentions_sample(self) -> None:
        result = estimate_value(CHARIZARD, "near_mint", [_sale(1000)] * 4)
        assert "4 comparable sale(s)" in result.rationale

    @pytest.mark.parametrize("name", ["", "   "])
    def test_blank_name_is_card_not_found(self, name: str) -> None:
        with pytest.raises(CardNotFoundError):
            estimate_value(CardIdentity(name=name), "near_mint", [_sale(1000)])


class TestConfidence:
    def test_empty_prices_are_low(self) -> None:
        assert confidence_from_prices([]) == ("low", 20.0)

    def test_band_always_brackets_value(self) -> None:
        for score in (0.0, 20.0, 50.0, 99.9, 100.0):
            low, high = confidence_band(777, score)
            assert 0 <= low <= 777 <= high

    def test_band_never_narrower_than_five_percent(self) -> None:
        assert confidence_band(1000, 100.0) == (950, 1050)


class TestReconcile:
    @pytest.fixture
    def estimate(self):  # type: ignore[no-untyped-def]
        return estimate_value(CHARIZARD, "near_mint", [_sale(1000)] * 20)

    def test_missing_declared_value_uses_estimate(self, estimate) -> None:  # type: ignore[no-untyped-def]
        assert reconcile_value(None, estimate) == 1000

    def test_inflated_value_clamped_to_high(self, estimate) -> None:  # type: ignore[no-untyped-def]
        assert reconcile_value(5000, estimate) == 1050

    def test_lowball_value_clamped_to_low(self, estimate) -> None:  # type: ignore[no-untyped-def]
        assert reconcile_value(10, estimate) == 950

    def test_value_inside_band_kept(self, estimate) -> None:  # type: ignore[no-untyped-def]
        assert reconcile_value(990, estimate) == 990
