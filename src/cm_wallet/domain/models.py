"""Domain models for cm_wallet: pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass
from datetime import datetime


@dataclass
class WalletAccount:
    id: str
    user_id: str
    available_balance: int   # cents
    pending_balance: int     # cents, credited but behind a settlement hold
    version: int
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def total_balance(self) -> int:
        return self.available_balance + self.pending_balance


@dataclass
class WalletTransaction:
    id: int                          # BIGSERIAL, creation order
    wallet_id: str
    user_id: str
    tx_type: str                     # WalletTxType value
    bucket: str                      # BalanceBucket value the entry moved
    amount: int                      # cents, positive=credit negative=debit
    balance_after: int               # cents, that bucket's balance after the entry
    related_user_id: str | None = None
    reference_type: str | None = None
    reference_id: str | None = None
    status: str = "completed"
    description: str | None = None
    created_at: datetime | None = None


@dataclass
class Settlement:
    id: str
    order_id: str
    seller_id: str
    wallet_id: str
    gross_amount: int
    fee_amount: int
    net_amount: int
    hold_until: datetime
    released_at: datetime | None = None
    created_at: datetime | None = None

    @property
    def is_released(self) -> bool:
        return self.released_at is not None


@dataclass
class TransferResult:
    from_account: WalletAccount
    to_account: WalletAccount
    debit_entry: WalletTransaction
    credit_entry: WalletTransaction


@dataclass
class Deposit:
    id: str
    wallet_id: str
    user_id: str
    amount: int                      # cents
    currency: str
    payment_intent_id: str
    status: str = "pending"          # DepositStatus value
    created_at: datetime | None = None
    completed_at: datetime | None = None


@dataclass
class PurchaseSettlement:
    buyer_account: WalletAccount
    debit_entry: WalletTransaction
    settlement: Settlement
