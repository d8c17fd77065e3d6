"""Integration-test fixtures.

All integration tests share a single event-loop so that the module-level
SQLAlchemy async engine pool (created at import time) remains valid across
the entire test session. Requires a migrated PostgreSQL (alembic upgrade head);
the whole directory is skipped when the database is not reachable. Redis is
optional: event publishing failures are logged and swallowed.
"""

import uuid
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from src.cm_common.database import async_session_factory, engine
from src.main import app

SeedListing = Callable[..., Awaitable[str]]


@pytest_asyncio.fixture(loop_scope="session", scope="session")
async def client() -> AsyncClient:  # type: ignore[override]
    """Session-scoped async HTTP client: keeps the engine pool alive."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1 FROM trade_offers LIMIT 1"))
    except (OSError, SQLAlchemyError) as exc:
        pytest.skip(f"migrated PostgreSQL not reachable: {exc}")
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture(loop_scope="session")
async def seed_listing(client: AsyncClient) -> SeedListing:
    """Insert a listing (plus steady comparable sales for its card) directly."""

    async def _seed(owner_id: str, price_cents: int, comparable_cents: int | None = None) -> str:
        listing_id = f"lst_{uuid.uuid4().hex[:12]}"
        card_name = f"Card {uuid.uuid4().hex[:8]}"
        sold_at = datetime.now(timezone.utc) - timedelta(days=1)
        async with async_session_factory() as db:
            await db.execute(
                text(
                    """
                    INSERT INTO listings
                        (id, owner_id, status, card_name, set_code, rarity, condition, price_cents)
                    VALUES
                        (:id, :owner_id, 'active', :card_name, 'base1', 'rare', 'near_mint', :price)
                    """
                ),
                {"id": listing_id, "owner_id": owner_id, "card_name": card_name, "price": price_cents},
            )
            for _ in range(20):
                await db.execute(
                    text(
                        """
                        INSERT INTO card_sales (card_name, set_code, condition, price_cents, sold_at)
                        VALUES (:card_name, 'base1', 'near_mint', :price, :sold_at)
                        """
                    ),
                    {
                        "card_name": card_name,
                        "price": comparable_cents or price_cents,
                        "sold_at": sold_at,
                    },
                )
            await db.commit()
        return listing_id

    return _seed
