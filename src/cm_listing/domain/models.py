"""Domain models for cm_listing: read-only view of the listing collaborator."""

from dataclasses import dataclass

from src.cm_common.enums import ListingStatus


@dataclass
class Listing:
    id: str
    owner_id: str
    status: str                   # ListingStatus value
    card_name: str
    set_code: str | None = None
    rarity: str | None = None
    condition: str | None = None  # CardCondition value
    price_cents: int = 0

    @property
    def is_tradeable(self) -> bool:
        return self.status == ListingStatus.ACTIVE.value
