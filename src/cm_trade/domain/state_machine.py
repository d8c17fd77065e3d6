"""Trade offer state machine: pure transition rules.

    pending   -> accepted | rejected | countered | expired
    countered -> pending | rejected | expired
    accepted, rejected, expired: absorbing

A counter passes through `countered` and lands back on `pending` within one
compare-and-set, so persisted offers are only ever pending or terminal.

Past `expires_at` every decision collapses to EXPIRE: the caller records the
expiry and fails the request.
"""

from datetime import datetime
from enum import Enum

from src.cm_common.datetime_utils import has_passed
from src.cm_common.enums import OfferStatus
from src.cm_common.errors import (
    ConcurrentModificationError,
    OfferAlreadyTerminalError,
    UnauthorizedActionError,
)
from src.cm_trade.domain.models import TradeOffer

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    OfferStatus.PENDING.value: frozenset(
        {
            OfferStatus.ACCEPTED.value,
            OfferStatus.REJECTED.value,
            OfferStatus.COUNTERED.value,
            OfferStatus.EXPIRED.value,
        }
    ),
    OfferStatus.COUNTERED.value: frozenset(
        {OfferStatus.PENDING.value, OfferStatus.REJECTED.value, OfferStatus.EXPIRED.value}
    ),
    OfferStatus.ACCEPTED.value: frozenset(),
    OfferStatus.REJECTED.value: frozenset(),
    OfferStatus.EXPIRED.value: frozenset(),
}

EXPIRABLE_STATUSES: tuple[str, ...] = (OfferStatus.PENDING.value, OfferStatus.COUNTERED.value)


class Decision(str, Enum):
    PROCEED = "proceed"
    EXPIRE = "expire"
    NOOP = "noop"


def can_transition(from_status: str, to_status: str) -> bool:
    return to_status in ALLOWED_TRANSITIONS.get(from_status, frozenset())


def _is_past_deadline(offer: TradeOffer, now: datetime) -> bool:
    return offer.expires_at is not None and has_passed(offer.expires_at, now)


def decide_accept(offer: TradeOffer, actor_id: str, now: datetime) -> Decision:
    if actor_id != offer.awaiting_party_id:
        raise UnauthorizedActionError("only the party awaiting a decision may accept")
    if offer.is_terminal:
        raise OfferAlreadyTerminalError(offer.id, offer.status)
    if not can_transition(offer.status, OfferStatus.ACCEPTED.value):
        raise ConcurrentModificationError(offer.id)
    if _is_past_deadline(offer, now):
        return Decision.EXPIRE
    return Decision.PROCEED


def decide_reject(offer: TradeOffer, actor_id: str, now: datetime) -> Decision:
    if actor_id != offer.awaiting_party_id:
        raise UnauthorizedActionError("only the party awaiting a decision may reject")
    if offer.status == OfferStatus.REJECTED.value:
        return Decision.NOOP
    if offer.is_terminal:
        raise OfferAlreadyTerminalError(offer.id, offer.status)
    if _is_past_deadline(offer, now):
        return Decision.EXPIRE
    return Decision.PROCEED


def decide_counter(offer: TradeOffer, actor_id: str, now: datetime) -> Decision:
    if not offer.is_party(actor_id):
        raise UnauthorizedActionError("only a party to the offer may counter")
    if offer.is_terminal:
        raise OfferAlreadyTerminalError(offer.id, offer.status)
    if offer.status != OfferStatus.PENDING.value:
        raise ConcurrentModificationError(offer.id)
    if _is_past_deadline(offer, now):
        return Decision.EXPIRE
    return Decision.PROCEED
