"""Listing collaborator Protocol.

The trade core reads listings to validate tradeability and flips their status
on acceptance. Listing CRUD itself lives outside this service.
"""

from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.cm_listing.domain.models import Listing


class ListingRepositoryProtocol(Protocol):
    async def get_listing(self, db: AsyncSession, listing_id: str) -> Listing | None: ...

    async def get_listings(
        self, db: AsyncSession, listing_ids: list[str]
    ) -> dict[str, Listing]: ...

    async def set_listing_status(
        self, db: AsyncSession, listing_id: str, from_status: str, to_status: str
    ) -> bool: ...
