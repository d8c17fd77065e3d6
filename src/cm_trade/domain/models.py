"""Trade offer domain models: pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from src.cm_common.enums import TERMINAL_OFFER_STATUSES


@dataclass
class OfferedItem:
    listing_id: str
    declared_value_cents: int | None = None   # what the proposer claims it is worth
    reconciled_value_cents: int = 0           # declared value clamped into the estimate band

    def to_dict(self) -> dict[str, Any]:
        return {
            "listing_id": self.listing_id,
            "declared_value_cents": self.declared_value_cents,
            "reconciled_value_cents": self.reconciled_value_cents,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OfferedItem":
        return cls(
            listing_id=str(data["listing_id"]),
            declared_value_cents=data.get("declared_value_cents"),
            reconciled_value_cents=int(data.get("reconciled_value_cents") or 0),
        )


@dataclass
class TradeOffer:
    id: str
    proposer_id: str            # buyer; always the one paying cash_amount_cents
    counterparty_id: str        # owner of the target listing
    awaiting_party_id: str      # whose accept/reject decision is due
    target_listing_id: str
    offered_items: list[OfferedItem] = field(default_factory=list)
    cash_amount_cents: int = 0
    offered_value_cents: int = 0
    requested_value_cents: int = 0
    fairness_score: float = 0.0  # 0.0-1.0
    fairness_label: str = ""
    notes: str | None = None
    status: str = "pending"
    negotiation_round: int = 1
    version: int = 0
    expires_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_OFFER_STATUSES

    @property
    def offered_listing_ids(self) -> list[str]:
        return [item.listing_id for item in self.offered_items]

    @property
    def involved_listing_ids(self) -> list[str]:
        return [self.target_listing_id, *self.offered_listing_ids]

    def is_party(self, user_id: str) -> bool:
        return user_id in (self.proposer_id, self.counterparty_id)

    def other_party(self, user_id: str) -> str:
        return self.counterparty_id if user_id == self.proposer_id else self.proposer_id


@dataclass
class TradeOfferEvent:
    """One row of an offer's append-only negotiation timeline."""

    id: int
    offer_id: str
    action: str                  # OfferAction value
    actor_id: str | None         # None for system-driven expiry
    negotiation_round: int
    cash_amount_cents: int
    fairness_score: float
    created_at: datetime | None = None
