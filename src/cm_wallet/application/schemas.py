"""Pydantic schemas for cm_wallet API."""

from datetime import datetime

from pydantic import BaseModel, Field

from config.settings import settings
from src.cm_common.money import cents_to_display
from src.cm_wallet.domain.models import Deposit, Settlement, WalletTransaction

# Upper bound for a single movement, well inside BIGINT
MAX_MOVEMENT_CENTS = 10**12

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class DepositRequest(BaseModel):
    amount_cents: int = Field(
        ..., gt=0, le=settings.MAX_DEPOSIT_CENTS, description="Amount to deposit in cents"
    )


class ConfirmDepositRequest(BaseModel):
    # As reported by the provider; checked against the recorded deposit
    amount_received_cents: int | None = Field(None, gt=0, le=MAX_MOVEMENT_CENTS)


class WithdrawRequest(BaseModel):
    amount_cents: int = Field(
        ..., gt=0, le=MAX_MOVEMENT_CENTS, description="Amount to withdraw in cents"
    )


class TransferRequest(BaseModel):
    to_user_id: str = Field(..., min_length=1, max_length=64)
    amount_cents: int = Field(
        ..., gt=0, le=MAX_MOVEMENT_CENTS, description="Amount to transfer in cents"
    )
    note: str | None = Field(None, max_length=500)


class SettleRequest(BaseModel):
    order_id: str = Field(..., min_length=1, max_length=64)
    seller_id: str = Field(..., min_length=1, max_length=64)
    gross_amount_cents: int = Field(..., gt=0, le=MAX_MOVEMENT_CENTS)
    # Omitted -> default seller fee schedule
    fee_amount_cents: int | None = Field(None, ge=0, le=MAX_MOVEMENT_CENTS)
    hold_seconds: int | None = Field(None, ge=0, description="Defaults to SETTLEMENT_HOLD_DAYS")


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class BalanceResponse(BaseModel):
    user_id: str
    available_balance_cents: int
    available_balance_display: str
    pending_balance_cents: int
    pending_balance_display: str
    total_balance_cents: int
    total_balance_display: str

    @classmethod
    def from_cents(cls, user_id: str, available: int, pending: int) -> "BalanceResponse":
        return cls(
            user_id=user_id,
            available_balance_cents=available,
            available_balance_display=cents_to_display(available),
            pending_balance_cents=pending,
            pending_balance_display=cents_to_display(pending),
            total_balance_cents=available + pending,
            total_balance_display=cents_to_display(available + pending),
        )


class MovementResponse(BaseModel):
    available_balance_cents: int
    pending_balance_cents: int
    amount_cents: int
    amount_display: str
    transaction_id: int

    @classmethod
    def from_result(
        cls, available: int, pending: int, amount: int, tx_id: int
    ) -> "MovementResponse":
        return cls(
            available_balance_cents=available,
            pending_balance_cents=pending,
            amount_cents=amount,
            amount_display=cents_to_display(amount),
            transaction_id=tx_id,
        )


class DepositIntentResponse(BaseModel):
    deposit_id: str
    payment_intent_id: str
    client_secret: str
    amount_cents: int
    amount_display: str
    currency: str
    status: str

    @classmethod
    def from_deposit(cls, d: Deposit, client_secret: str) -> "DepositIntentResponse":
        return cls(
            deposit_id=d.id,
            payment_intent_id=d.payment_intent_id,
            client_secret=client_secret,
            amount_cents=d.amount,
            amount_display=cents_to_display(d.amount),
            currency=d.currency,
            status=d.status,
        )


class DepositResponse(BaseModel):
    deposit_id: str
    user_id: str
    payment_intent_id: str
    amount_cents: int
    amount_display: str
    status: str
    completed_at: datetime | None
    credited: bool  # False when nothing moved on this call
    available_balance_cents: int | None = None

    @classmethod
    def from_deposit(
        cls, d: Deposit, credited: bool, available_balance: int | None = None
    ) -> "DepositResponse":
        return cls(
            deposit_id=d.id,
            user_id=d.user_id,
            payment_intent_id=d.payment_intent_id,
            amount_cents=d.amount,
            amount_display=cents_to_display(d.amount),
            status=d.status,
            completed_at=d.completed_at,
            credited=credited,
            available_balance_cents=available_balance,
        )


class TransferResponse(BaseModel):
    from_user_id: str
    to_user_id: str
    amount_cents: int
    amount_display: str
    from_available_balance_cents: int
    debit_transaction_id: int
    credit_transaction_id: int


class SettlementResponse(BaseModel):
    settlement_id: str
    order_id: str
    seller_id: str
    gross_amount_cents: int
    fee_amount_cents: int
    net_amount_cents: int
    net_amount_display: str
    hold_until: datetime
    released_at: datetime | None
    created: bool  # False when the order had already been settled

    @classmethod
    def from_settlement(cls, s: Settlement, created: bool) -> "SettlementResponse":
        return cls(
            settlement_id=s.id,
            order_id=s.order_id,
            seller_id=s.seller_id,
            gross_amount_cents=s.gross_amount,
            fee_amount_cents=s.fee_amount,
            net_amount_cents=s.net_amount,
            net_amount_display=cents_to_display(s.net_amount),
            hold_until=s.hold_until,
            released_at=s.released_at,
            created=created,
        )


class ReleaseResponse(BaseModel):
    released_count: int
    released_cents: int
    settlement_ids: list[str]


class TransactionItem(BaseModel):
    id: int
    tx_type: str
    bucket: str
    amount_cents: int
    amount_display: str
    balance_after_cents: int
    related_user_id: str | None
    reference_type: str | None
    reference_id: str | None
    status: str
    description: str | None
    created_at: str  # ISO8601 string

    @classmethod
    def from_entry(cls, e: WalletTransaction) -> "TransactionItem":
        return cls(
            id=e.id,
            tx_type=e.tx_type,
            bucket=e.bucket,
            amount_cents=e.amount,
            amount_display=cents_to_display(e.amount),
            balance_after_cents=e.balance_after,
            related_user_id=e.related_user_id,
            reference_type=e.reference_type,
            reference_id=e.reference_id,
            status=e.status,
            description=e.description,
            created_at=e.created_at.isoformat() if e.created_at else "",
        )


class TransactionListResponse(BaseModel):
    items: list[TransactionItem]
    next_cursor: str | None
    has_more: bool


class LedgerVerificationResponse(BaseModel):
    user_id: str
    ok: bool
    entry_count: int
    available_balance_cents: int
    pending_balance_cents: int
    violations: list[str]
