"""Repository Protocol: dependency inversion for testability.

Unit tests inject an in-memory fake that conforms to this Protocol.
Every method runs inside the caller's transaction and never commits.
"""

from datetime import datetime
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.cm_wallet.domain.models import Deposit, Settlement, WalletAccount, WalletTransaction


class WalletRepositoryProtocol(Protocol):
    async def get_wallet(self, db: AsyncSession, user_id: str) -> WalletAccount | None: ...

    async def ensure_wallet(self, db: AsyncSession, user_id: str) -> None: ...

    async def lock_wallets(
        self, db: AsyncSession, user_ids: list[str]
    ) -> dict[str, WalletAccount]: ...

    async def credit(
        self,
        db: AsyncSession,
        user_id: str,
        amount: int,
        bucket: str,
        tx_type: str,
        related_user_id: str | None = None,
        reference_type: str | None = None,
        reference_id: str | None = None,
        description: str | None = None,
    ) -> tuple[WalletAccount, WalletTransaction]: ...

    async def debit(
        self,
        db: AsyncSession,
        user_id: str,
        amount: int,
        tx_type: str,
        related_user_id: str | None = None,
        reference_type: str | None = None,
        reference_id: str | None = None,
        description: str | None = None,
    ) -> tuple[WalletAccount, WalletTransaction]: ...

    async def release_pending(
        self,
        db: AsyncSession,
        user_id: str,
        amount: int,
        reference_id: str,
    ) -> tuple[WalletAccount, list[WalletTransaction]]: ...

    async def get_settlement_by_order(
        self, db: AsyncSession, order_id: str
    ) -> Settlement | None: ...

    async def insert_settlement(
        self, db: AsyncSession, settlement: Settlement
    ) -> Settlement | None: ...

    async def claim_due_settlements(
        self, db: AsyncSession, now: datetime, limit: int
    ) -> list[Settlement]: ...

    async def mark_settlement_released(
        self, db: AsyncSession, settlement_id: str, released_at: datetime
    ) -> bool: ...

    async def list_transactions(
        self,
        db: AsyncSession,
        user_id: str,
        cursor_id: int | None,
        limit: int,
        tx_type: str | None,
    ) -> list[WalletTransaction]: ...

    async def list_wallet_entries(
        self, db: AsyncSession, wallet_id: str
    ) -> list[WalletTransaction]: ...

    async def insert_deposit(self, db: AsyncSession, deposit: Deposit) -> Deposit: ...

    async def get_deposit_by_intent_for_update(
        self, db: AsyncSession, payment_intent_id: str
    ) -> Deposit | None: ...

    async def mark_deposit(
        self,
        db: AsyncSession,
        deposit_id: str,
        from_status: str,
        to_status: str,
        completed_at: datetime | None,
    ) -> bool: ...
