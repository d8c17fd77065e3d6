"""Bounds checks for offer terms (create and counter)."""

from src.cm_common.errors import InvalidArgumentError, OfferLimitExceededError
from src.cm_trade.domain.models import OfferedItem


def validate_offer_terms(
    target_listing_id: str,
    cash_amount_cents: int,
    offered_items: list[OfferedItem],
    max_cash_cents: int,
    max_items: int,
) -> None:
    if isinstance(cash_amount_cents, bool) or not isinstance(cash_amount_cents, int):
        raise InvalidArgumentError("cash amount must be an integer number of cents")
    if cash_amount_cents < 0:
        raise InvalidArgumentError("cash amount must not be negative")
    if cash_amount_cents > max_cash_cents:
        raise OfferLimitExceededError(
            f"cash amount {cash_amount_cents} exceeds maximum {max_cash_cents}"
        )
    if len(offered_items) > max_items:
        raise OfferLimitExceededError(
            f"{len(offered_items)} offered items exceeds maximum {max_items}"
        )
    if not offered_items and cash_amount_cents == 0:
        raise InvalidArgumentError("an offer must include cash or at least one card")

    seen: set[str] = set()
    for item in offered_items:
        if item.listing_id == target_listing_id:
            raise InvalidArgumentError("the requested listing cannot also be offered")
        if item.listing_id in seen:
            raise InvalidArgumentError(f"listing {item.listing_id} offered more than once")
        if item.declared_value_cents is not None and item.declared_value_cents < 0:
            raise InvalidArgumentError("declared values must not be negative")
        seen.add(item.listing_id)
