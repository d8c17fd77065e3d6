"""Pydantic schemas for cm_trade API.

Request bodies are validated here before they reach the state machine; the
domain re-checks the same bounds for non-HTTP callers.
"""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from config.settings import settings
from src.cm_common.money import cents_to_display
from src.cm_trade.domain.models import OfferedItem, TradeOffer, TradeOfferEvent
from src.cm_valuation.application.schemas import FairnessResponse

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class OfferedItemIn(BaseModel):
    listing_id: str = Field(..., min_length=1, max_length=64)
    declared_value_cents: int | None = Field(None, ge=0)

    def to_domain(self) -> OfferedItem:
        return OfferedItem(listing_id=self.listing_id, declared_value_cents=self.declared_value_cents)


def _no_duplicate_listings(items: list[OfferedItemIn] | None) -> list[OfferedItemIn] | None:
    if items is None:
        return None
    ids = [item.listing_id for item in items]
    if len(ids) != len(set(ids)):
        raise ValueError("offered_items must not repeat a listing")
    return items


class CreateOfferRequest(BaseModel):
    target_listing_id: str = Field(..., min_length=1, max_length=64)
    cash_amount_cents: int = Field(0, ge=0, le=settings.MAX_OFFER_CASH_CENTS)
    offered_items: list[OfferedItemIn] = Field(
        default_factory=list, max_length=settings.MAX_OFFERED_ITEMS
    )
    notes: str | None = Field(None, max_length=500)

    @field_validator("offered_items")
    @classmethod
    def check_items(cls, v: list[OfferedItemIn]) -> list[OfferedItemIn]:
        _no_duplicate_listings(v)
        return v


class CounterOfferRequest(BaseModel):
    # Omitted fields keep the current terms
    cash_amount_cents: int | None = Field(None, ge=0, le=settings.MAX_OFFER_CASH_CENTS)
    offered_items: list[OfferedItemIn] | None = Field(None, max_length=settings.MAX_OFFERED_ITEMS)
    notes: str | None = Field(None, max_length=500)

    @field_validator("offered_items")
    @classmethod
    def check_items(cls, v: list[OfferedItemIn] | None) -> list[OfferedItemIn] | None:
        return _no_duplicate_listings(v)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class OfferedItemOut(BaseModel):
    listing_id: str
    declared_value_cents: int | None
    reconciled_value_cents: int


class OfferResponse(BaseModel):
    id: str
    proposer_id: str
    counterparty_id: str
    awaiting_party_id: str
    target_listing_id: str
    offered_items: list[OfferedItemOut]
    cash_amount_cents: int
    cash_amount_display: str
    offered_value_cents: int
    requested_value_cents: int
    fairness_score: float
    fairness_label: str
    notes: str | None
    status: str
    negotiation_round: int
    expires_at: datetime | None
    created_at: datetime | None
    updated_at: datetime | None

    @classmethod
    def from_offer(cls, offer: TradeOffer) -> "OfferResponse":
        return cls(
            id=offer.id,
            proposer_id=offer.proposer_id,
            counterparty_id=offer.counterparty_id,
            awaiting_party_id=offer.awaiting_party_id,
            target_listing_id=offer.target_listing_id,
            offered_items=[OfferedItemOut(**item.to_dict()) for item in offer.offered_items],
            cash_amount_cents=offer.cash_amount_cents,
            cash_amount_display=cents_to_display(offer.cash_amount_cents),
            offered_value_cents=offer.offered_value_cents,
            requested_value_cents=offer.requested_value_cents,
            fairness_score=offer.fairness_score,
            fairness_label=offer.fairness_label,
            notes=offer.notes,
            status=offer.status,
            negotiation_round=offer.negotiation_round,
            expires_at=offer.expires_at,
            created_at=offer.created_at,
            updated_at=offer.updated_at,
        )


class OfferMutationResponse(BaseModel):
    offer: OfferResponse
    fairness: FairnessResponse | None = None
    changed: bool = True  # False for an idempotent repeat (e.g. second reject)


class AcceptOfferResponse(BaseModel):
    offer: OfferResponse
    traded_listing_ids: list[str]
    cash_transferred_cents: int
    debit_transaction_id: int | None
    credit_transaction_id: int | None


class PurchaseResponse(BaseModel):
    order_id: str
    listing_id: str
    listing_status: str
    buyer_id: str
    seller_id: str
    price_cents: int
    price_display: str
    fee_amount_cents: int
    seller_net_cents: int
    settlement_id: str
    hold_until: datetime
    debit_transaction_id: int
    buyer_available_balance_cents: int


class OfferListResponse(BaseModel):
    items: list[OfferResponse]
    next_cursor: str | None
    has_more: bool


class OfferHistoryItem(BaseModel):
    id: int
    action: str
    actor_id: str | None
    negotiation_round: int
    cash_amount_cents: int
    fairness_score: float
    created_at: datetime | None

    @classmethod
    def from_event(cls, e: TradeOfferEvent) -> "OfferHistoryItem":
        return cls(
            id=e.id,
            action=e.action,
            actor_id=e.actor_id,
            negotiation_round=e.negotiation_round,
            cash_amount_cents=e.cash_amount_cents,
            fairness_score=e.fairness_score,
            created_at=e.created_at,
        )


class OfferHistoryResponse(BaseModel):
    offer_id: str
    items: list[OfferHistoryItem]


class ExpireSweepResponse(BaseModel):
    expired_count: int
    offer_ids: list[str]
