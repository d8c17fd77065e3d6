"""Repository Protocol for trade offers and their history.

All methods run inside the caller's transaction and never commit.
"""

from datetime import datetime
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.cm_trade.domain.models import TradeOffer, TradeOfferEvent


class TradeOfferRepositoryProtocol(Protocol):
    async def insert_offer(self, db: AsyncSession, offer: TradeOffer) -> TradeOffer: ...

    async def get_offer(self, db: AsyncSession, offer_id: str) -> TradeOffer | None: ...

    async def get_offer_for_update(
        self, db: AsyncSession, offer_id: str
    ) -> TradeOffer | None: ...

    async def transition_status(
        self,
        db: AsyncSession,
        offer_id: str,
        from_status: str,
        to_status: str,
        expected_version: int,
    ) -> TradeOffer | None: ...

    async def apply_counter(
        self, db: AsyncSession, offer: TradeOffer, expected_version: int
    ) -> TradeOffer | None: ...

    async def expire_due_offers(
        self, db: AsyncSession, now: datetime, limit: int
    ) -> list[TradeOffer]: ...

    async def append_event(
        self,
        db: AsyncSession,
        offer: TradeOffer,
        action: str,
        actor_id: str | None,
    ) -> TradeOfferEvent: ...

    async def list_events(self, db: AsyncSession, offer_id: str) -> list[TradeOfferEvent]: ...

    async def list_offers(
        self,
        db: AsyncSession,
        user_id: str,
        role: str | None,
        status: str | None,
        cursor_id: str | None,
        limit: int,
    ) -> list[TradeOffer]: ...
