"""ComparableSalesRepository: read-only access to the card_sales oracle table."""

from datetime import datetime

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.cm_valuation.domain.models import ComparableSale

# set_code is optional: without it every printing of the card name is a comparable
_LIST_COMPARABLES_SQL = text("""
    SELECT price_cents, condition, sold_at, source
    FROM card_sales
    WHERE lower(card_name) = lower(:card_name)
      AND (CAST(:set_code AS VARCHAR) IS NULL OR set_code = :set_code)
      AND sold_at >= :since
    ORDER BY sold_at DESC
    LIMIT 200
""")


class ComparableSalesRepository:
    async def list_comparable_sales(
        self,
        db: AsyncSession,
        card_name: str,
        set_code: str | None,
        since: datetime,
    ) -> list[ComparableSale]:
        result = await db.execute(
            _LIST_COMPARABLES_SQL,
            {"card_name": card_name.strip(), "set_code": set_code, "since": since},
        )
        return [
            ComparableSale(
                price_cents=row.price_cents,
                condition=row.condition,
                sold_at=row.sold_at,
                source=row.source,
            )
            for row in result.fetchall()
        ]
