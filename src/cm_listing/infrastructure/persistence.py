"""ListingRepository: concrete implementation of ListingRepositoryProtocol.

Status flips are guarded: `UPDATE ... WHERE status = :from_status`. A result of
0 rows means someone else already moved the listing (sold, traded, delisted).

Transaction ownership: the CALLER commits or rolls back.
"""

from sqlalchemy import bindparam, text
from sqlalchemy.ext.asyncio import AsyncSession

from src.cm_listing.domain.models import Listing

_LISTING_COLUMNS = "id, owner_id, status, card_name, set_code, rarity, condition, price_cents"

_GET_LISTING_SQL = text(f"""
    SELECT {_LISTING_COLUMNS}
    FROM listings
    WHERE id = :listing_id
""")

_GET_LISTINGS_SQL = text(f"""
    SELECT {_LISTING_COLUMNS}
    FROM listings
    WHERE id IN :listing_ids
""").bindparams(bindparam("listing_ids", expanding=True))

_SET_STATUS_SQL = text("""
    UPDATE listings
    SET status = :to_status,
        updated_at = NOW()
    WHERE id = :listing_id AND status = :from_status
    RETURNING id
""")


def _row_to_listing(row: object) -> Listing:
    return Listing(
        id=row.id,  # type: ignore[attr-defined]
        owner_id=row.owner_id,  # type: ignore[attr-defined]
        status=row.status,  # type: ignore[attr-defined]
        card_name=row.card_name,  # type: ignore[attr-defined]
        set_code=row.set_code,  # type: ignore[attr-defined]
        rarity=row.rarity,  # type: ignore[attr-defined]
        condition=row.condition,  # type: ignore[attr-defined]
        price_cents=row.price_cents,  # type: ignore[attr-defined]
    )


class ListingRepository:
    async def get_listing(self, db: AsyncSession, listing_id: str) -> Listing | None:
        result = await db.execute(_GET_LISTING_SQL, {"listing_id": listing_id})
        row = result.fetchone()
        return _row_to_listing(row) if row else None

    async def get_listings(
        self, db: AsyncSession, listing_ids: list[str]
    ) -> dict[str, Listing]:
        if not listing_ids:
            return {}
        result = await db.execute(_GET_LISTINGS_SQL, {"listing_ids": list(listing_ids)})
        return {row.id: _row_to_listing(row) for row in result.fetchall()}

    async def set_listing_status(
        self, db: AsyncSession, listing_id: str, from_status: str, to_status: str
    ) -> bool:
        result = await db.execute(
            _SET_STATUS_SQL,
            {"listing_id": listing_id, "from_status": from_status, "to_status": to_status},
        )
        return result.fetchone() is not None
