"""Seller fee schedule for settlements.

fee = 40 cents base + 1% (ceiling) of the amount above 20.00, never more
than the gross amount itself.
"""

from src.cm_common.money import calculate_percentage

BASE_FEE_CENTS = 40
PERCENT_FEE_THRESHOLD_CENTS = 2000
PERCENT_FEE_BPS = 100


def default_seller_fee(gross_cents: int) -> int:
    fee = BASE_FEE_CENTS + calculate_percentage(
        max(0, gross_cents - PERCENT_FEE_THRESHOLD_CENTS), PERCENT_FEE_BPS
    )
    return min(fee, gross_cents)
