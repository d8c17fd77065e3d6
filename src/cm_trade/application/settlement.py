"""SettlementOrchestrator: accept a trade offer or complete a listing purchase
as one atomic unit.

Accept, single DB transaction:
  1. SELECT the offer FOR UPDATE (serializes accept/reject/counter per offer)
  2. state machine decision (actor, status, deadline)
  3. flip target + offered listings active -> traded (guarded UPDATEs)
  4. if cash > 0: ledger transfer proposer -> counterparty (guarded debit)
  5. CAS offer pending -> accepted on (status, version), history row
  6. COMMIT, then publish trade_offer.accepted

Purchase, single DB transaction:
  1. flip the listing active -> sold (guarded UPDATE)
  2. debit the buyer the listing price (guarded debit)
  3. settlement: seller net to pending behind the hold, fee to PLATFORM_FEE
  4. COMMIT, then publish order.completed

Any failure rolls the whole transaction back, so no listing or balance
changes. Transient storage failures (deadlock, serialization failure, lock
timeout, dropped connection) are retried with exponential backoff; exhaustion
surfaces SettlementFailedError (500). Business rejections surface
SettlementFailedError with a 4xx status.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.cm_common.database import is_transient_db_error
from src.cm_common.datetime_utils import utc_now
from src.cm_common.enums import ListingStatus, OfferAction, OfferStatus
from src.cm_common.errors import (
    AppError,
    ConcurrentModificationError,
    InsufficientFundsError,
    InvalidArgumentError,
    ListingNotFoundError,
    ListingNotTradeableError,
    OfferExpiredError,
    OfferNotFoundError,
    SelfTradeError,
    SettlementFailedError,
)
from src.cm_common.id_generator import generate_id
from src.cm_listing.domain.models import Listing
from src.cm_listing.domain.repository import ListingRepositoryProtocol
from src.cm_listing.infrastructure.persistence import ListingRepository
from src.cm_notify.publisher import EventPublisherProtocol, RedisEventPublisher
from src.cm_trade.domain.events import OFFER_ACCEPTED, OFFER_EXPIRED, offer_event, order_event
from src.cm_trade.domain.models import TradeOffer
from src.cm_trade.domain.repository import TradeOfferRepositoryProtocol
from src.cm_trade.domain.state_machine import Decision, decide_accept
from src.cm_trade.infrastructure.persistence import TradeOfferRepository
from src.cm_wallet.application.service import WalletApplicationService
from src.cm_wallet.domain.constants import REF_TRADE_OFFER
from src.cm_wallet.domain.models import PurchaseSettlement, TransferResult

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class AcceptResult:
    offer: TradeOffer
    traded_listing_ids: list[str]
    transfer: TransferResult | None


@dataclass
class PurchaseResult:
    order_id: str
    listing: Listing
    buyer_id: str
    purchase: PurchaseSettlement


def _listing_gone(listing_id: str) -> SettlementFailedError:
    return SettlementFailedError(f"listing {listing_id} is no longer available", http_status=409)


def _short_of_funds(who: str, exc: InsufficientFundsError) -> SettlementFailedError:
    return SettlementFailedError(f"{who} has insufficient funds ({exc.message})", http_status=422)


class SettlementOrchestrator:
    def __init__(
        self,
        repo: TradeOfferRepositoryProtocol | None = None,
        listings: ListingRepositoryProtocol | None = None,
        wallet: WalletApplicationService | None = None,
        publisher: EventPublisherProtocol | None = None,
        max_attempts: int | None = None,
        base_delay_ms: int | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._repo: TradeOfferRepositoryProtocol = repo or TradeOfferRepository()
        self._listings: ListingRepositoryProtocol = listings or ListingRepository()
        self._wallet = wallet or WalletApplicationService()
        self._publisher: EventPublisherProtocol = publisher or RedisEventPublisher()
        self._max_attempts = max_attempts or settings.SETTLEMENT_MAX_ATTEMPTS
        self._base_delay_ms = (
            settings.SETTLEMENT_RETRY_BASE_DELAY_MS if base_delay_ms is None else base_delay_ms
        )
        self._sleep = sleep

    async def accept(self, db: AsyncSession, offer_id: str, actor_id: str) -> AcceptResult:
        return await self._with_retries(
            f"Offer {offer_id}", lambda: self._accept_once(db, offer_id, actor_id)
        )

    async def purchase(self, db: AsyncSession, listing_id: str, buyer_id: str) -> PurchaseResult:
        return await self._with_retries(
            f"Purchase of {listing_id}", lambda: self._purchase_once(db, listing_id, buyer_id)
        )

    async def _with_retries(self, label: str, attempt_once: Callable[[], Awaitable[T]]) -> T:
        last_exc: BaseException | None = None
        for attempt in range(1, self._max_attempts + 1):
            try:
                return await attempt_once()
            except AppError:
                raise
            except Exception as exc:
                if not is_transient_db_error(exc):
                    if isinstance(exc, SQLAlchemyError):
                        logger.exception("%s settlement hit a storage error", label)
                        raise SettlementFailedError("storage error during settlement") from exc
                    raise
                last_exc = exc
                logger.warning(
                    "%s settlement attempt %d/%d failed transiently: %s",
                    label, attempt, self._max_attempts, exc,
                )
                if attempt < self._max_attempts:
                    await self._sleep(self._base_delay_ms * (2 ** (attempt - 1)) / 1000)

        logger.error("%s settlement gave up after %d attempts", label, self._max_attempts)
        raise SettlementFailedError(
            f"storage unavailable after {self._max_attempts} attempts, please retry"
        ) from last_exc

    # ------------------------------------------------------------------
    # Trade offer acceptance
    # ------------------------------------------------------------------

    async def _accept_once(
        self, db: AsyncSession, offer_id: str, actor_id: str
    ) -> AcceptResult:
        expired: TradeOffer | None = None
        try:
            offer = await self._repo.get_offer_for_update(db, offer_id)
            if offer is None:
                raise OfferNotFoundError(offer_id)

            if decide_accept(offer, actor_id, utc_now()) is Decision.EXPIRE:
                expired = await self._repo.transition_status(
                    db, offer.id, offer.status, OfferStatus.EXPIRED.value, offer.version
                )
                if expired is None:
                    raise ConcurrentModificationError(offer_id)
                await self._repo.append_event(db, expired, OfferAction.EXPIRED.value, None)
            else:
                traded = await self._flip_listings(db, offer)
                transfer = await self._move_cash(db, offer)
                accepted = await self._repo.transition_status(
                    db, offer.id, OfferStatus.PENDING.value, OfferStatus.ACCEPTED.value,
                    offer.version,
                )
                if accepted is None:
                    raise ConcurrentModificationError(offer_id)
                await self._repo.append_event(db, accepted, OfferAction.ACCEPTED.value, actor_id)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        if expired is not None:
            logger.info("Offer %s expired on accept attempt by %s", offer_id, actor_id)
            await self._publisher.publish(offer_event(OFFER_EXPIRED, expired, utc_now()))
            raise OfferExpiredError(offer_id)

        logger.info(
            "Offer %s accepted by %s: %d listing(s) traded, cash %d cents %s -> %s",
            offer_id, actor_id, len(traded), accepted.cash_amount_cents,
            accepted.proposer_id, accepted.counterparty_id,
        )
        await self._publisher.publish(offer_event(OFFER_ACCEPTED, accepted, utc_now()))
        return AcceptResult(offer=accepted, traded_listing_ids=traded, transfer=transfer)

    async def _flip_listings(self, db: AsyncSession, offer: TradeOffer) -> list[str]:
        flipped: list[str] = []
        for listing_id in offer.involved_listing_ids:
            ok = await self._listings.set_listing_status(
                db, listing_id, ListingStatus.ACTIVE.value, ListingStatus.TRADED.value
            )
            if not ok:
                raise _listing_gone(listing_id)
            flipped.append(listing_id)
        return flipped

    async def _move_cash(self, db: AsyncSession, offer: TradeOffer) -> TransferResult | None:
        if offer.cash_amount_cents <= 0:
            return None
        try:
            return await self._wallet.apply_transfer(
                db,
                offer.proposer_id,
                offer.counterparty_id,
                offer.cash_amount_cents,
                reference_type=REF_TRADE_OFFER,
                reference_id=offer.id,
                description=f"Cash for trade offer {offer.id}",
            )
        except InsufficientFundsError as exc:
            raise _short_of_funds("proposer", exc) from exc

    # ------------------------------------------------------------------
    # Listing purchase (order completion)
    # ------------------------------------------------------------------

    async def _purchase_once(
        self, db: AsyncSession, listing_id: str, buyer_id: str
    ) -> PurchaseResult:
        order_id = generate_id()
        try:
            listing = await self._listings.get_listing(db, listing_id)
            if listing is None:
                raise ListingNotFoundError(listing_id)
            if listing.owner_id == buyer_id:
                raise SelfTradeError()
            if not listing.is_tradeable:
                raise ListingNotTradeableError(listing_id, listing.status)
            if listing.price_cents <= 0:
                raise InvalidArgumentError(f"listing {listing_id} has no sale price")

            sold = await self._listings.set_listing_status(
                db, listing_id, ListingStatus.ACTIVE.value, ListingStatus.SOLD.value
            )
            if not sold:
                raise _listing_gone(listing_id)
            listing.status = ListingStatus.SOLD.value
            try:
                purchase = await self._wallet.apply_purchase(
                    db, order_id, buyer_id, listing.owner_id, listing.price_cents,
                    description=f"Purchase of {listing.card_name}",
                )
            except InsufficientFundsError as exc:
                raise _short_of_funds("buyer", exc) from exc
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        settlement = purchase.settlement
        logger.info(
            "Order %s: %s bought listing %s from %s for %d cents (net %d, fee %d)",
            order_id, buyer_id, listing_id, listing.owner_id, listing.price_cents,
            settlement.net_amount, settlement.fee_amount,
        )
        await self._publisher.publish(
            order_event(
                order_id, listing_id, buyer_id, listing.owner_id, listing.price_cents, utc_now()
            )
        )
        return PurchaseResult(
            order_id=order_id, listing=listing, buyer_id=buyer_id, purchase=purchase
        )
