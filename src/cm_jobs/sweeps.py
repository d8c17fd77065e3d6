"""Periodic sweeps: offer expiry and settlement hold release.

Each run opens its own session; the services own commit/rollback. Errors
propagate to APScheduler, which logs them and tries again on the next tick.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.cm_common.database import async_session_factory
from src.cm_trade.application.service import TradeOfferService
from src.cm_wallet.application.service import WalletApplicationService

logger = logging.getLogger(__name__)

_trade_service = TradeOfferService()
_wallet_service = WalletApplicationService()


async def run_expiry_sweep(
    service: TradeOfferService | None = None,
    session_factory: async_sessionmaker[AsyncSession] = async_session_factory,
) -> int:
    svc = service or _trade_service
    async with session_factory() as db:
        expired = await svc.expire_due_offers(db)
    logger.debug("Expiry sweep done: %d offer(s) expired", len(expired))
    return len(expired)


async def run_release_sweep(
    service: WalletApplicationService | None = None,
    session_factory: async_sessionmaker[AsyncSession] = async_session_factory,
) -> int:
    svc = service or _wallet_service
    async with session_factory() as db:
        result = await svc.release_settlements(db)
    logger.debug("Release sweep done: %d settlement(s) released", result.released_count)
    return result.released_count
