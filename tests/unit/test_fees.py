"""Tests for the default seller fee schedule."""

import pytest

from src.cm_wallet.domain.fees import default_seller_fee


@pytest.mark.parametrize(
    ("gross", "expected"),
    [
        (1000, 40),     # base fee only
        (2000, 40),     # threshold itself carries no percentage
        (2001, 41),     # 1% of one cent rounds up
        (10000, 120),   # 40 + 1% of 8000
    ],
)
def test_fee_schedule(gross: int, expected: int) -> None:
    assert default_seller_fee(gross) == expected


def test_fee_never_exceeds_gross() -> None:
    assert default_seller_fee(30) == 30
    assert default_seller_fee(1) == 1
