"""Global enums: must match DB CHECK constraints exactly."""

from enum import Enum


class OfferStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    COUNTERED = "countered"
    EXPIRED = "expired"


TERMINAL_OFFER_STATUSES: frozenset[str] = frozenset(
    {OfferStatus.ACCEPTED.value, OfferStatus.REJECTED.value, OfferStatus.EXPIRED.value}
)


class OfferAction(str, Enum):
    """Trade offer timeline actions (trade_offer_history.action)."""
    CREATED = "created"
    COUNTERED = "countered"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"


class ListingStatus(str, Enum):
    ACTIVE = "active"
    RESERVED = "reserved"
    TRADED = "traded"
    SOLD = "sold"
    INACTIVE = "inactive"


class CardCondition(str, Enum):
    MINT = "mint"
    NEAR_MINT = "near_mint"
    EXCELLENT = "excellent"
    GOOD = "good"
    LIGHT_PLAYED = "light_played"
    PLAYED = "played"
    POOR = "poor"


class ConfidenceLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class WalletTxType(str, Enum):
    DEPOSIT = "DEPOSIT"
    WITHDRAWAL = "WITHDRAWAL"
    # Buyer pays for a listing out of available balance
    PURCHASE = "PURCHASE"
    TRANSFER_IN = "TRANSFER_IN"
    TRANSFER_OUT = "TRANSFER_OUT"
    # Seller proceeds credited to pending behind a hold
    SETTLEMENT = "SETTLEMENT"
    # Hold expired: paired PENDING(-) / AVAILABLE(+) entries
    SETTLEMENT_RELEASE = "SETTLEMENT_RELEASE"
    FEE_REVENUE = "FEE_REVENUE"


class BalanceBucket(str, Enum):
    AVAILABLE = "AVAILABLE"
    PENDING = "PENDING"


class WalletTxStatus(str, Enum):
    COMPLETED = "completed"
    PENDING = "pending"


class DepositStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
