"""TradeOfferService: create / counter / reject / expire and offer queries.

Every mutating call locks the offer row (SELECT ... FOR UPDATE), asks the
pure state machine for a decision, applies it with a compare-and-set on
(status, version), appends a history row and commits. Events are published
only after the commit. Accept lives in SettlementOrchestrator because it also
moves listings and money.
"""

import logging
from dataclasses import replace
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.cm_common.cursor import cursor_decode, cursor_encode
from src.cm_common.datetime_utils import deadline_from, has_passed, utc_now
from src.cm_common.enums import OfferAction, OfferStatus
from src.cm_common.errors import (
    ConcurrentModificationError,
    ListingNotFoundError,
    ListingNotTradeableError,
    OfferExpiredError,
    OfferNotFoundError,
    SelfTradeError,
    UnauthorizedActionError,
)
from src.cm_common.id_generator import generate_id
from src.cm_listing.domain.models import Listing
from src.cm_listing.domain.repository import ListingRepositoryProtocol
from src.cm_listing.infrastructure.persistence import ListingRepository
from src.cm_notify.publisher import EventPublisherProtocol, RedisEventPublisher
from src.cm_trade.application.schemas import (
    OfferHistoryItem,
    OfferHistoryResponse,
    OfferListResponse,
    OfferResponse,
)
from src.cm_trade.domain.events import (
    OFFER_COUNTERED,
    OFFER_CREATED,
    OFFER_EXPIRED,
    OFFER_REJECTED,
    offer_event,
)
from src.cm_trade.domain.models import OfferedItem, TradeOffer
from src.cm_trade.domain.repository import TradeOfferRepositoryProtocol
from src.cm_trade.domain.state_machine import (
    EXPIRABLE_STATUSES,
    Decision,
    decide_counter,
    decide_reject,
)
from src.cm_trade.domain.validation import validate_offer_terms
from src.cm_trade.infrastructure.persistence import TradeOfferRepository
from src.cm_valuation.application.service import ValuationApplicationService
from src.cm_valuation.domain.models import FairnessResult

logger = logging.getLogger(__name__)


class TradeOfferService:
    def __init__(
        self,
        repo: TradeOfferRepositoryProtocol | None = None,
        listings: ListingRepositoryProtocol | None = None,
        valuation: ValuationApplicationService | None = None,
        publisher: EventPublisherProtocol | None = None,
    ) -> None:
        self._repo: TradeOfferRepositoryProtocol = repo or TradeOfferRepository()
        self._listings: ListingRepositoryProtocol = listings or ListingRepository()
        self._valuation = valuation or ValuationApplicationService()
        self._publisher: EventPublisherProtocol = publisher or RedisEventPublisher()

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------

    async def _load_offered_listings(
        self, db: AsyncSession, proposer_id: str, items: list[OfferedItem]
    ) -> dict[str, Listing]:
        listings = await self._listings.get_listings(db, [i.listing_id for i in items])
        for item in items:
            listing = listings.get(item.listing_id)
            if listing is None:
                raise ListingNotFoundError(item.listing_id)
            if listing.owner_id != proposer_id:
                raise UnauthorizedActionError(
                    f"listing {item.listing_id} does not belong to the proposer"
                )
            if not listing.is_tradeable:
                raise ListingNotTradeableError(listing.id, listing.status)
        return listings

    async def _price_offer(
        self,
        db: AsyncSession,
        target: Listing,
        items: list[OfferedItem],
        offered_listings: dict[str, Listing],
        cash_amount_cents: int,
    ) -> tuple[list[OfferedItem], int, int, FairnessResult]:
        """Reconcile every card against its estimate and score the two sides."""
        # The asking price is the owner's declared value for the target
        _, requested = await self._valuation.appraise_listing(
            db, target, target.price_cents or None
        )
        priced: list[OfferedItem] = []
        for item in items:
            _, reconciled = await self._valuation.appraise_listing(
                db, offered_listings[item.listing_id], item.declared_value_cents
            )
            priced.append(replace(item, reconciled_value_cents=reconciled))
        offered = sum(i.reconciled_value_cents for i in priced) + cash_amount_cents
        fairness = self._valuation.score(offered, requested)
        return priced, offered, requested, fairness

    async def _require_tradeable_target(self, db: AsyncSession, listing_id: str) -> Listing:
        target = await self._listings.get_listing(db, listing_id)
        if target is None:
            raise ListingNotFoundError(listing_id)
        if not target.is_tradeable:
            raise ListingNotTradeableError(target.id, target.status)
        return target

    async def _expire_locked(self, db: AsyncSession, offer: TradeOffer) -> TradeOffer:
        """Expire an offer the caller holds FOR UPDATE. Caller commits."""
        expired = await self._repo.transition_status(
            db, offer.id, offer.status, OfferStatus.EXPIRED.value, offer.version
        )
        if expired is None:
            raise ConcurrentModificationError(offer.id)
        await self._repo.append_event(db, expired, OfferAction.EXPIRED.value, None)
        return expired

    async def _publish(self, event_type: str, offer: TradeOffer) -> None:
        await self._publisher.publish(offer_event(event_type, offer, utc_now()))

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def create_offer(
        self,
        db: AsyncSession,
        proposer_id: str,
        target_listing_id: str,
        cash_amount_cents: int,
        offered_items: list[OfferedItem],
        notes: str | None = None,
    ) -> tuple[TradeOffer, FairnessResult]:
        validate_offer_terms(
            target_listing_id,
            cash_amount_cents,
            offered_items,
            settings.MAX_OFFER_CASH_CENTS,
            settings.MAX_OFFERED_ITEMS,
        )
        try:
            target = await self._require_tradeable_target(db, target_listing_id)
            if target.owner_id == proposer_id:
                raise SelfTradeError()
            offered_listings = await self._load_offered_listings(db, proposer_id, offered_items)
            priced, offered, requested, fairness = await self._price_offer(
                db, target, offered_items, offered_listings, cash_amount_cents
            )

            now = utc_now()
            offer = await self._repo.insert_offer(
                db,
                TradeOffer(
                    id=generate_id(),
                    proposer_id=proposer_id,
                    counterparty_id=target.owner_id,
                    awaiting_party_id=target.owner_id,
                    target_listing_id=target.id,
                    offered_items=priced,
                    cash_amount_cents=cash_amount_cents,
                    offered_value_cents=offered,
                    requested_value_cents=requested,
                    fairness_score=fairness.normalized_score,
                    fairness_label=fairness.label,
                    notes=notes,
                    status=OfferStatus.PENDING.value,
                    negotiation_round=1,
                    expires_at=deadline_from(now, days=settings.OFFER_EXPIRY_DAYS),
                ),
            )
            await self._repo.append_event(db, offer, OfferAction.CREATED.value, proposer_id)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info(
            "Offer %s created: %s -> %s for listing %s (cash=%d, fairness=%.2f %s)",
            offer.id, proposer_id, offer.counterparty_id, offer.target_listing_id,
            cash_amount_cents, fairness.score, fairness.label,
        )
        await self._publish(OFFER_CREATED, offer)
        return offer, fairness

    async def counter_offer(
        self,
        db: AsyncSession,
        offer_id: str,
        actor_id: str,
        cash_amount_cents: int | None = None,
        offered_items: list[OfferedItem] | None = None,
        notes: str | None = None,
    ) -> tuple[TradeOffer, FairnessResult]:
        expired: TradeOffer | None = None
        try:
            offer = await self._repo.get_offer_for_update(db, offer_id)
            if offer is None:
                raise OfferNotFoundError(offer_id)

            if decide_counter(offer, actor_id, utc_now()) is Decision.EXPIRE:
                expired = await self._expire_locked(db, offer)
            else:
                new_cash = offer.cash_amount_cents if cash_amount_cents is None else cash_amount_cents
                new_items = offer.offered_items if offered_items is None else offered_items
                validate_offer_terms(
                    offer.target_listing_id,
                    new_cash,
                    new_items,
                    settings.MAX_OFFER_CASH_CENTS,
                    settings.MAX_OFFERED_ITEMS,
                )
                target = await self._require_tradeable_target(db, offer.target_listing_id)
                offered_listings = await self._load_offered_listings(
                    db, offer.proposer_id, new_items
                )
                priced, offered, requested, fairness = await self._price_offer(
                    db, target, new_items, offered_listings, new_cash
                )
                proposal = replace(
                    offer,
                    offered_items=priced,
                    cash_amount_cents=new_cash,
                    offered_value_cents=offered,
                    requested_value_cents=requested,
                    fairness_score=fairness.normalized_score,
                    fairness_label=fairness.label,
                    notes=notes if notes is not None else offer.notes,
                    awaiting_party_id=offer.other_party(actor_id),
                    expires_at=deadline_from(utc_now(), days=settings.OFFER_EXPIRY_DAYS),
                )
                updated = await self._repo.apply_counter(db, proposal, offer.version)
                if updated is None:
                    raise ConcurrentModificationError(offer_id)
                await self._repo.append_event(db, updated, OfferAction.COUNTERED.value, actor_id)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        if expired is not None:
            logger.info("Offer %s expired on counter attempt by %s", offer_id, actor_id)
            await self._publish(OFFER_EXPIRED, expired)
            raise OfferExpiredError(offer_id)

        logger.info(
            "Offer %s countered by %s: round %d, cash=%d, awaiting %s",
            offer_id, actor_id, updated.negotiation_round, updated.cash_amount_cents,
            updated.awaiting_party_id,
        )
        await self._publish(OFFER_COUNTERED, updated)
        return updated, fairness

    async def reject_offer(
        self, db: AsyncSession, offer_id: str, actor_id: str
    ) -> tuple[TradeOffer, bool]:
        """Reject a pending offer. Returns (offer, changed); a repeat reject is a no-op."""
        expired: TradeOffer | None = None
        try:
            offer = await self._repo.get_offer_for_update(db, offer_id)
            if offer is None:
                raise OfferNotFoundError(offer_id)

            decision = decide_reject(offer, actor_id, utc_now())
            if decision is Decision.NOOP:
                await db.rollback()
                return offer, False
            if decision is Decision.EXPIRE:
                expired = await self._expire_locked(db, offer)
            else:
                rejected = await self._repo.transition_status(
                    db, offer.id, offer.status, OfferStatus.REJECTED.value, offer.version
                )
                if rejected is None:
                    raise ConcurrentModificationError(offer_id)
                await self._repo.append_event(db, rejected, OfferAction.REJECTED.value, actor_id)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        if expired is not None:
            await self._publish(OFFER_EXPIRED, expired)
            raise OfferExpiredError(offer_id)

        logger.info("Offer %s rejected by %s", offer_id, actor_id)
        await self._publish(OFFER_REJECTED, rejected)
        return rejected, True

    async def expire_due_offers(
        self, db: AsyncSession, now: datetime | None = None, limit: int = 500
    ) -> list[TradeOffer]:
        """Bulk-expire pending offers whose deadline has passed."""
        as_of = now or utc_now()
        try:
            expired = await self._repo.expire_due_offers(db, as_of, limit)
            for offer in expired:
                await self._repo.append_event(db, offer, OfferAction.EXPIRED.value, None)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        if expired:
            logger.info("Expired %d offer(s)", len(expired))
        for offer in expired:
            await self._publish(OFFER_EXPIRED, offer)
        return expired

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_offer(self, db: AsyncSession, offer_id: str, user_id: str) -> TradeOffer:
        offer = await self._repo.get_offer(db, offer_id)
        if offer is None:
            raise OfferNotFoundError(offer_id)
        if not offer.is_party(user_id):
            raise UnauthorizedActionError("only the parties may view this offer")

        if (
            offer.status in EXPIRABLE_STATUSES
            and offer.expires_at is not None
            and has_passed(offer.expires_at, utc_now())
        ):
            offer = await self._expire_on_read(db, offer_id) or offer
        return offer

    async def _expire_on_read(self, db: AsyncSession, offer_id: str) -> TradeOffer | None:
        expired: TradeOffer | None = None
        try:
            locked = await self._repo.get_offer_for_update(db, offer_id)
            if (
                locked is not None
                and locked.status in EXPIRABLE_STATUSES
                and locked.expires_at is not None
                and has_passed(locked.expires_at, utc_now())
            ):
                expired = await self._expire_locked(db, locked)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        if expired is not None:
            logger.info("Offer %s expired on read", offer_id)
            await self._publish(OFFER_EXPIRED, expired)
            return expired
        return locked

    async def list_offers(
        self,
        db: AsyncSession,
        user_id: str,
        role: str | None,
        status: str | None,
        cursor: str | None,
        limit: int,
    ) -> OfferListResponse:
        decoded = cursor_decode(cursor)
        cursor_id = decoded if isinstance(decoded, str) else None
        # Fetch limit+1 to detect has_more without a COUNT(*) query
        offers = await self._repo.list_offers(db, user_id, role, status, cursor_id, limit + 1)
        has_more = len(offers) > limit
        page = offers[:limit]
        next_cursor = cursor_encode(page[-1].id) if has_more and page else None
        return OfferListResponse(
            items=[OfferResponse.from_offer(o) for o in page],
            next_cursor=next_cursor,
            has_more=has_more,
        )

    async def get_history(
        self, db: AsyncSession, offer_id: str, user_id: str
    ) -> OfferHistoryResponse:
        offer = await self._repo.get_offer(db, offer_id)
        if offer is None:
            raise OfferNotFoundError(offer_id)
        if not offer.is_party(user_id):
            raise UnauthorizedActionError("only the parties may view this offer")
        events = await self._repo.list_events(db, offer_id)
        return OfferHistoryResponse(
            offer_id=offer_id,
            items=[OfferHistoryItem.from_event(e) for e in events],
        )
