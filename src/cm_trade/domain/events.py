"""Outbound marketplace events, published after the owning transaction commits."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from src.cm_trade.domain.models import TradeOffer

OFFER_CREATED = "trade_offer.created"
OFFER_COUNTERED = "trade_offer.countered"
OFFER_ACCEPTED = "trade_offer.accepted"
OFFER_REJECTED = "trade_offer.rejected"
OFFER_EXPIRED = "trade_offer.expired"
ORDER_COMPLETED = "order.completed"


@dataclass
class DomainEvent:
    event_type: str
    payload: dict[str, Any]
    occurred_at: datetime
    recipients: list[str] = field(default_factory=list)


def offer_event(event_type: str, offer: TradeOffer, occurred_at: datetime) -> DomainEvent:
    return DomainEvent(
        event_type=event_type,
        payload={
            "offer_id": offer.id,
            "status": offer.status,
            "proposer_id": offer.proposer_id,
            "counterparty_id": offer.counterparty_id,
            "awaiting_party_id": offer.awaiting_party_id,
            "target_listing_id": offer.target_listing_id,
            "cash_amount_cents": offer.cash_amount_cents,
            "negotiation_round": offer.negotiation_round,
            "fairness_score": offer.fairness_score,
        },
        occurred_at=occurred_at,
        recipients=[offer.proposer_id, offer.counterparty_id],
    )


def order_event(
    order_id: str,
    listing_id: str,
    buyer_id: str,
    seller_id: str,
    price_cents: int,
    occurred_at: datetime,
) -> DomainEvent:
    return DomainEvent(
        event_type=ORDER_COMPLETED,
        payload={
            "order_id": order_id,
            "listing_id": listing_id,
            "buyer_id": buyer_id,
            "seller_id": seller_id,
            "price_cents": price_cents,
        },
        occurred_at=occurred_at,
        recipients=[buyer_id, seller_id],
    )
