"""Shared helpers for integration tests."""

import uuid
from datetime import datetime, timedelta, timezone

from httpx import AsyncClient
from jose import jwt

from config.settings import settings
from src.cm_common.database import async_session_factory
from src.cm_wallet.domain.models import Deposit
from src.cm_wallet.infrastructure.persistence import WalletRepository

INTERNAL = {"X-Internal-Key": settings.INTERNAL_API_KEY}


def new_user() -> str:
    return f"user_{uuid.uuid4().hex[:10]}"


def auth(user_id: str) -> dict[str, str]:
    """Bearer header for a token as the identity provider would issue it."""
    token = jwt.encode(
        {
            "sub": user_id,
            "type": "access",
            "exp": datetime.now(timezone.utc) + timedelta(minutes=30),
        },
        settings.JWT_SECRET,
        algorithm=settings.JWT_ALGORITHM,
    )
    return {"Authorization": f"Bearer {token}"}


async def seed_pending_deposit(user_id: str, amount_cents: int) -> str:
    """Record a pending deposit as if the provider had opened an intent for it."""
    repo = WalletRepository()
    payment_intent_id = f"pi_{uuid.uuid4().hex[:16]}"
    async with async_session_factory() as db:
        await repo.ensure_wallet(db, user_id)
        wallet = await repo.get_wallet(db, user_id)
        assert wallet is not None
        await repo.insert_deposit(
            db,
            Deposit(
                id=f"dep_{uuid.uuid4().hex[:12]}",
                wallet_id=wallet.id,
                user_id=user_id,
                amount=amount_cents,
                currency=settings.PAYMENTS_CURRENCY,
                payment_intent_id=payment_intent_id,
            ),
        )
        await db.commit()
    return payment_intent_id


async def fund(client: AsyncClient, user_id: str, amount_cents: int) -> None:
    """Credit a wallet through the provider confirmation webhook."""
    payment_intent_id = await seed_pending_deposit(user_id, amount_cents)
    resp = await client.post(
        f"/api/v1/internal/deposits/{payment_intent_id}/confirm",
        json={"amount_received_cents": amount_cents},
        headers=INTERNAL,
    )
    assert resp.status_code == 200, resp.text
    assert resp.json()["data"]["credited"] is True
