"""TradeOfferRepository: concrete implementation of TradeOfferRepositoryProtocol.

Every status change is a compare-and-set on (status, version):
`UPDATE ... WHERE id = :id AND status = :from_status AND version = :expected_version`.
0 rows means another writer got there first and the caller must re-read.

Transaction ownership: the CALLER commits or rolls back.
"""

import json
from datetime import datetime
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.cm_common.errors import InternalError
from src.cm_trade.domain.models import OfferedItem, TradeOffer, TradeOfferEvent

_OFFER_COLUMNS = (
    "id, proposer_id, counterparty_id, awaiting_party_id, target_listing_id, offered_items, "
    "cash_amount_cents, offered_value_cents, requested_value_cents, fairness_score, "
    "fairness_label, notes, status, negotiation_round, version, expires_at, "
    "created_at, updated_at"
)
_EVENT_COLUMNS = (
    "id, offer_id, action, actor_id, negotiation_round, cash_amount_cents, "
    "fairness_score, created_at"
)

_INSERT_OFFER_SQL = text(f"""
    INSERT INTO trade_offers
        (id, proposer_id, counterparty_id, awaiting_party_id, target_listing_id, offered_items,
         cash_amount_cents, offered_value_cents, requested_value_cents, fairness_score,
         fairness_label, notes, status, negotiation_round, version, expires_at)
    VALUES
        (:id, :proposer_id, :counterparty_id, :awaiting_party_id, :target_listing_id,
         CAST(:offered_items AS JSONB), :cash_amount_cents, :offered_value_cents,
         :requested_value_cents, :fairness_score, :fairness_label, :notes, :status,
         :negotiation_round, 0, :expires_at)
    RETURNING {_OFFER_COLUMNS}
""")

_GET_OFFER_SQL = text(f"""
    SELECT {_OFFER_COLUMNS}
    FROM trade_offers
    WHERE id = :offer_id
""")

_GET_OFFER_FOR_UPDATE_SQL = text(f"""
    SELECT {_OFFER_COLUMNS}
    FROM trade_offers
    WHERE id = :offer_id
    FOR UPDATE
""")

_TRANSITION_SQL = text(f"""
    UPDATE trade_offers
    SET status = :to_status,
        version = version + 1,
        updated_at = NOW()
    WHERE id = :offer_id
      AND status = :from_status
      AND version = :expected_version
    RETURNING {_OFFER_COLUMNS}
""")

# Counter: pending -> countered -> pending collapses into one guarded write
_APPLY_COUNTER_SQL = text(f"""
    UPDATE trade_offers
    SET offered_items = CAST(:offered_items AS JSONB),
        cash_amount_cents = :cash_amount_cents,
        offered_value_cents = :offered_value_cents,
        requested_value_cents = :requested_value_cents,
        fairness_score = :fairness_score,
        fairness_label = :fairness_label,
        notes = :notes,
        awaiting_party_id = :awaiting_party_id,
        negotiation_round = negotiation_round + 1,
        expires_at = :expires_at,
        status = 'pending',
        version = version + 1,
        updated_at = NOW()
    WHERE id = :offer_id
      AND status = 'pending'
      AND version = :expected_version
    RETURNING {_OFFER_COLUMNS}
""")

# SKIP LOCKED: offers mid-accept are left alone; accept re-checks the deadline itself
_EXPIRE_DUE_SQL = text(f"""
    UPDATE trade_offers
    SET status = 'expired',
        version = version + 1,
        updated_at = NOW()
    WHERE id IN (
        SELECT id FROM trade_offers
        WHERE status IN ('pending', 'countered') AND expires_at <= :now
        ORDER BY expires_at ASC
        LIMIT :limit
        FOR UPDATE SKIP LOCKED
    )
      AND status IN ('pending', 'countered')
    RETURNING {_OFFER_COLUMNS}
""")

_INSERT_EVENT_SQL = text(f"""
    INSERT INTO trade_offer_history
        (offer_id, action, actor_id, negotiation_round, cash_amount_cents, fairness_score)
    VALUES
        (:offer_id, :action, :actor_id, :negotiation_round, :cash_amount_cents, :fairness_score)
    RETURNING {_EVENT_COLUMNS}
""")

_LIST_EVENTS_SQL = text(f"""
    SELECT {_EVENT_COLUMNS}
    FROM trade_offer_history
    WHERE offer_id = :offer_id
    ORDER BY id ASC
""")

_LIST_OFFERS_SQL = text(f"""
    SELECT {_OFFER_COLUMNS}
    FROM trade_offers
    WHERE (
        (:role = 'proposer' AND proposer_id = :user_id)
        OR (:role = 'counterparty' AND counterparty_id = :user_id)
        OR (:role = 'any' AND (proposer_id = :user_id OR counterparty_id = :user_id))
    )
      AND (CAST(:status AS VARCHAR) IS NULL OR status = :status)
      AND (CAST(:cursor_id AS VARCHAR) IS NULL OR id < :cursor_id)
    ORDER BY id DESC
    LIMIT :limit
""")


def _load_items(raw: Any) -> list[OfferedItem]:
    if raw is None:
        return []
    data = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
    return [OfferedItem.from_dict(item) for item in data]


def _dump_items(items: list[OfferedItem]) -> str:
    return json.dumps([item.to_dict() for item in items])


def _row_to_offer(row: object) -> TradeOffer:
    return TradeOffer(
        id=row.id,  # type: ignore[attr-defined]
        proposer_id=row.proposer_id,  # type: ignore[attr-defined]
        counterparty_id=row.counterparty_id,  # type: ignore[attr-defined]
        awaiting_party_id=row.awaiting_party_id,  # type: ignore[attr-defined]
        target_listing_id=row.target_listing_id,  # type: ignore[attr-defined]
        offered_items=_load_items(row.offered_items),  # type: ignore[attr-defined]
        cash_amount_cents=row.cash_amount_cents,  # type: ignore[attr-defined]
        offered_value_cents=row.offered_value_cents,  # type: ignore[attr-defined]
        requested_value_cents=row.requested_value_cents,  # type: ignore[attr-defined]
        fairness_score=float(row.fairness_score),  # type: ignore[attr-defined]
        fairness_label=row.fairness_label,  # type: ignore[attr-defined]
        notes=row.notes,  # type: ignore[attr-defined]
        status=row.status,  # type: ignore[attr-defined]
        negotiation_round=row.negotiation_round,  # type: ignore[attr-defined]
        version=row.version,  # type: ignore[attr-defined]
        expires_at=row.expires_at,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
        updated_at=row.updated_at,  # type: ignore[attr-defined]
    )


def _row_to_event(row: object) -> TradeOfferEvent:
    return TradeOfferEvent(
        id=row.id,  # type: ignore[attr-defined]
        offer_id=row.offer_id,  # type: ignore[attr-defined]
        action=row.action,  # type: ignore[attr-defined]
        actor_id=row.actor_id,  # type: ignore[attr-defined]
        negotiation_round=row.negotiation_round,  # type: ignore[attr-defined]
        cash_amount_cents=row.cash_amount_cents,  # type: ignore[attr-defined]
        fairness_score=float(row.fairness_score),  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
    )


class TradeOfferRepository:
    async def insert_offer(self, db: AsyncSession, offer: TradeOffer) -> TradeOffer:
        result = await db.execute(
            _INSERT_OFFER_SQL,
            {
                "id": offer.id,
                "proposer_id": offer.proposer_id,
                "counterparty_id": offer.counterparty_id,
                "awaiting_party_id": offer.awaiting_party_id,
                "target_listing_id": offer.target_listing_id,
                "offered_items": _dump_items(offer.offered_items),
                "cash_amount_cents": offer.cash_amount_cents,
                "offered_value_cents": offer.offered_value_cents,
                "requested_value_cents": offer.requested_value_cents,
                "fairness_score": offer.fairness_score,
                "fairness_label": offer.fairness_label,
                "notes": offer.notes,
                "status": offer.status,
                "negotiation_round": offer.negotiation_round,
                "expires_at": offer.expires_at,
            },
        )
        row = result.fetchone()
        if row is None:
            raise InternalError("Trade offer insert returned no rows")
        return _row_to_offer(row)

    async def get_offer(self, db: AsyncSession, offer_id: str) -> TradeOffer | None:
        result = await db.execute(_GET_OFFER_SQL, {"offer_id": offer_id})
        row = result.fetchone()
        return _row_to_offer(row) if row else None

    async def get_offer_for_update(
        self, db: AsyncSession, offer_id: str
    ) -> TradeOffer | None:
        result = await db.execute(_GET_OFFER_FOR_UPDATE_SQL, {"offer_id": offer_id})
        row = result.fetchone()
        return _row_to_offer(row) if row else None

    async def transition_status(
        self,
        db: AsyncSession,
        offer_id: str,
        from_status: str,
        to_status: str,
        expected_version: int,
    ) -> TradeOffer | None:
        result = await db.execute(
            _TRANSITION_SQL,
            {
                "offer_id": offer_id,
                "from_status": from_status,
                "to_status": to_status,
                "expected_version": expected_version,
            },
        )
        row = result.fetchone()
        return _row_to_offer(row) if row else None

    async def apply_counter(
        self, db: AsyncSession, offer: TradeOffer, expected_version: int
    ) -> TradeOffer | None:
        result = await db.execute(
            _APPLY_COUNTER_SQL,
            {
                "offer_id": offer.id,
                "offered_items": _dump_items(offer.offered_items),
                "cash_amount_cents": offer.cash_amount_cents,
                "offered_value_cents": offer.offered_value_cents,
                "requested_value_cents": offer.requested_value_cents,
                "fairness_score": offer.fairness_score,
                "fairness_label": offer.fairness_label,
                "notes": offer.notes,
                "awaiting_party_id": offer.awaiting_party_id,
                "expires_at": offer.expires_at,
                "expected_version": expected_version,
            },
        )
        row = result.fetchone()
        return _row_to_offer(row) if row else None

    async def expire_due_offers(
        self, db: AsyncSession, now: datetime, limit: int
    ) -> list[TradeOffer]:
        result = await db.execute(_EXPIRE_DUE_SQL, {"now": now, "limit": limit})
        return [_row_to_offer(row) for row in result.fetchall()]

    async def append_event(
        self,
        db: AsyncSession,
        offer: TradeOffer,
        action: str,
        actor_id: str | None,
    ) -> TradeOfferEvent:
        result = await db.execute(
            _INSERT_EVENT_SQL,
            {
                "offer_id": offer.id,
                "action": action,
                "actor_id": actor_id,
                "negotiation_round": offer.negotiation_round,
                "cash_amount_cents": offer.cash_amount_cents,
                "fairness_score": offer.fairness_score,
            },
        )
        row = result.fetchone()
        if row is None:
            raise InternalError("Trade offer history insert returned no rows")
        return _row_to_event(row)

    async def list_events(self, db: AsyncSession, offer_id: str) -> list[TradeOfferEvent]:
        result = await db.execute(_LIST_EVENTS_SQL, {"offer_id": offer_id})
        return [_row_to_event(row) for row in result.fetchall()]

    async def list_offers(
        self,
        db: AsyncSession,
        user_id: str,
        role: str | None,
        status: str | None,
        cursor_id: str | None,
        limit: int,
    ) -> list[TradeOffer]:
        result = await db.execute(
            _LIST_OFFERS_SQL,
            {
                "user_id": user_id,
                "role": role or "any",
                "status": status,
                "cursor_id": cursor_id,
                "limit": limit,
            },
        )
        return [_row_to_offer(row) for row in result.fetchall()]
