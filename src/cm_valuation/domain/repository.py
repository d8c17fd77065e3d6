"""Comparable-sales oracle Protocol (read-only)."""

from datetime import datetime
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.cm_valuation.domain.models import ComparableSale


class ComparableSalesRepositoryProtocol(Protocol):
    async def list_comparable_sales(
        self,
        db: AsyncSession,
        card_name: str,
        set_code: str | None,
        since: datetime,
    ) -> list[ComparableSale]: ...
