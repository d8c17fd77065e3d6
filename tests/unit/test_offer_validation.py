"""Unit tests for offer term validation."""

import pytest

from fakes import item
from src.cm_common.errors import InvalidArgumentError, OfferLimitExceededError
from src.cm_trade.domain.validation import validate_offer_terms

MAX_CASH = 1_000_000
MAX_ITEMS = 3


def _validate(cash: int = 0, items=None, target: str = "L-target") -> None:  # type: ignore[no-untyped-def]
    validate_offer_terms(target, cash, items or [], MAX_CASH, MAX_ITEMS)


def test_cash_only_offer_is_valid() -> None:
    _validate(cash=500)


def test_cards_only_offer_is_valid() -> None:
    _validate(items=[item("L1"), item("L2", 300)])


def test_cash_at_maximum_is_valid() -> None:
    _validate(cash=MAX_CASH)


def test_empty_offer_rejected() -> None:
    with pytest.raises(InvalidArgumentError, match="cash or at least one card"):
        _validate()


def test_negative_cash_rejected() -> None:
    with pytest.raises(InvalidArgumentError):
        _validate(cash=-1)


@pytest.mark.parametrize("cash", [10.5, "100", True])
def test_non_integer_cash_rejected(cash: object) -> None:
    with pytest.raises(InvalidArgumentError):
        _validate(cash=cash)  # type: ignore[arg-type]


def test_cash_over_maximum() -> None:
    with pytest.raises(OfferLimitExceededError):
        _validate(cash=MAX_CASH + 1)


def test_too_many_items() -> None:
    with pytest.raises(OfferLimitExceededError):
        _validate(items=[item(f"L{i}") for i in range(MAX_ITEMS + 1)])


def test_target_cannot_be_offered() -> None:
    with pytest.raises(InvalidArgumentError, match="cannot also be offered"):
        _validate(items=[item("L-target")])


def test_duplicate_items_rejected() -> None:
    with pytest.raises(InvalidArgumentError, match="more than once"):
        _validate(items=[item("L1"), item("L1")])


def test_negative_declared_value_rejected() -> None:
    with pytest.raises(InvalidArgumentError):
        _validate(items=[item("L1", -5)])
