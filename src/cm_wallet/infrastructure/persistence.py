"""WalletRepository: concrete implementation of WalletRepositoryProtocol.

All balance-mutating operations use atomic PostgreSQL UPDATE ... RETURNING.
A result of 0 rows on a guarded debit means the balance was insufficient at
the moment of the write; there is no check-then-act gap.

Transaction ownership: the CALLER (application service or settlement
orchestrator) commits or rolls back.
"""

from datetime import datetime

from sqlalchemy import bindparam, text
from sqlalchemy.ext.asyncio import AsyncSession

from src.cm_common.enums import BalanceBucket, WalletTxStatus, WalletTxType
from src.cm_common.errors import InsufficientFundsError, InternalError
from src.cm_common.id_generator import generate_id
from src.cm_wallet.domain.constants import REF_SETTLEMENT
from src.cm_wallet.domain.models import Deposit, Settlement, WalletAccount, WalletTransaction

_WALLET_COLUMNS = (
    "id, user_id, available_balance, pending_balance, version, created_at, updated_at"
)
_TX_COLUMNS = (
    "id, wallet_id, user_id, tx_type, bucket, amount, balance_after, related_user_id, "
    "reference_type, reference_id, status, description, created_at"
)
_SETTLEMENT_COLUMNS = (
    "id, order_id, seller_id, wallet_id, gross_amount, fee_amount, net_amount, "
    "hold_until, released_at, created_at"
)
_DEPOSIT_COLUMNS = (
    "id, wallet_id, user_id, amount, currency, payment_intent_id, status, created_at, completed_at"
)

# ---------------------------------------------------------------------------
# SQL: wallet_accounts
# ---------------------------------------------------------------------------

_ENSURE_WALLET_SQL = text("""
    INSERT INTO wallet_accounts (id, user_id)
    VALUES (:id, :user_id)
    ON CONFLICT (user_id) DO NOTHING
""")

_GET_WALLET_SQL = text(f"""
    SELECT {_WALLET_COLUMNS}
    FROM wallet_accounts
    WHERE user_id = :user_id
""")

# Deterministic lock order (user_id ASC) so concurrent transfers cannot deadlock
_LOCK_WALLETS_SQL = text(f"""
    SELECT {_WALLET_COLUMNS}
    FROM wallet_accounts
    WHERE user_id IN :user_ids
    ORDER BY user_id
    FOR UPDATE
""").bindparams(bindparam("user_ids", expanding=True))

_CREDIT_AVAILABLE_SQL = text(f"""
    UPDATE wallet_accounts
    SET available_balance = available_balance + :amount,
        version = version + 1,
        updated_at = NOW()
    WHERE user_id = :user_id
    RETURNING {_WALLET_COLUMNS}
""")

_CREDIT_PENDING_SQL = text(f"""
    UPDATE wallet_accounts
    SET pending_balance = pending_balance + :amount,
        version = version + 1,
        updated_at = NOW()
    WHERE user_id = :user_id
    RETURNING {_WALLET_COLUMNS}
""")

_DEBIT_AVAILABLE_SQL = text(f"""
    UPDATE wallet_accounts
    SET available_balance = available_balance - :amount,
        version = version + 1,
        updated_at = NOW()
    WHERE user_id = :user_id AND available_balance >= :amount
    RETURNING {_WALLET_COLUMNS}
""")

_RELEASE_PENDING_SQL = text(f"""
    UPDATE wallet_accounts
    SET pending_balance   = pending_balance   - :amount,
        available_balance = available_balance + :amount,
        version = version + 1,
        updated_at = NOW()
    WHERE user_id = :user_id AND pending_balance >= :amount
    RETURNING {_WALLET_COLUMNS}
""")

# ---------------------------------------------------------------------------
# SQL: wallet_transactions (append-only)
# ---------------------------------------------------------------------------

_INSERT_TX_SQL = text(f"""
    INSERT INTO wallet_transactions
        (wallet_id, user_id, tx_type, bucket, amount, balance_after, related_user_id,
         reference_type, reference_id, status, description)
    VALUES
        (:wallet_id, :user_id, :tx_type, :bucket, :amount, :balance_after, :related_user_id,
         :reference_type, :reference_id, :status, :description)
    RETURNING {_TX_COLUMNS}
""")

_LIST_TX_SQL = text(f"""
    SELECT {_TX_COLUMNS}
    FROM wallet_transactions
    WHERE user_id = :user_id
      AND (CAST(:cursor_id AS BIGINT) IS NULL OR id < :cursor_id)
      AND (CAST(:tx_type AS VARCHAR) IS NULL OR tx_type = :tx_type)
    ORDER BY id DESC
    LIMIT :limit
""")

_LIST_WALLET_ENTRIES_SQL = text(f"""
    SELECT {_TX_COLUMNS}
    FROM wallet_transactions
    WHERE wallet_id = :wallet_id
    ORDER BY id ASC
""")

# ---------------------------------------------------------------------------
# SQL: wallet_settlements
# ---------------------------------------------------------------------------

_INSERT_SETTLEMENT_SQL = text(f"""
    INSERT INTO wallet_settlements
        (id, order_id, seller_id, wallet_id, gross_amount, fee_amount, net_amount, hold_until)
    VALUES
        (:id, :order_id, :seller_id, :wallet_id, :gross_amount, :fee_amount, :net_amount,
         :hold_until)
    ON CONFLICT (order_id) DO NOTHING
    RETURNING {_SETTLEMENT_COLUMNS}
""")

_GET_SETTLEMENT_BY_ORDER_SQL = text(f"""
    SELECT {_SETTLEMENT_COLUMNS}
    FROM wallet_settlements
    WHERE order_id = :order_id
""")

# SKIP LOCKED: concurrent sweeps split the backlog instead of blocking on each other
_CLAIM_DUE_SETTLEMENTS_SQL = text(f"""
    SELECT {_SETTLEMENT_COLUMNS}
    FROM wallet_settlements
    WHERE released_at IS NULL AND hold_until <= :now
    ORDER BY hold_until ASC
    LIMIT :limit
    FOR UPDATE SKIP LOCKED
""")

_MARK_RELEASED_SQL = text("""
    UPDATE wallet_settlements
    SET released_at = :released_at
    WHERE id = :id AND released_at IS NULL
    RETURNING id
""")

# ---------------------------------------------------------------------------
# SQL: wallet_deposits
# ---------------------------------------------------------------------------

_INSERT_DEPOSIT_SQL = text(f"""
    INSERT INTO wallet_deposits
        (id, wallet_id, user_id, amount, currency, payment_intent_id, status)
    VALUES
        (:id, :wallet_id, :user_id, :amount, :currency, :payment_intent_id, :status)
    RETURNING {_DEPOSIT_COLUMNS}
""")

_GET_DEPOSIT_BY_INTENT_FOR_UPDATE_SQL = text(f"""
    SELECT {_DEPOSIT_COLUMNS}
    FROM wallet_deposits
    WHERE payment_intent_id = :payment_intent_id
    FOR UPDATE
""")

_MARK_DEPOSIT_SQL = text("""
    UPDATE wallet_deposits
    SET status = :to_status, completed_at = :completed_at
    WHERE id = :id AND status = :from_status
    RETURNING id
""")


def _row_to_wallet(row: object) -> WalletAccount:
    return WalletAccount(
        id=row.id,  # type: ignore[attr-defined]
        user_id=row.user_id,  # type: ignore[attr-defined]
        available_balance=row.available_balance,  # type: ignore[attr-defined]
        pending_balance=row.pending_balance,  # type: ignore[attr-defined]
        version=row.version,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
        updated_at=row.updated_at,  # type: ignore[attr-defined]
    )


def _row_to_tx(row: object) -> WalletTransaction:
    return WalletTransaction(
        id=row.id,  # type: ignore[attr-defined]
        wallet_id=row.wallet_id,  # type: ignore[attr-defined]
        user_id=row.user_id,  # type: ignore[attr-defined]
        tx_type=row.tx_type,  # type: ignore[attr-defined]
        bucket=row.bucket,  # type: ignore[attr-defined]
        amount=row.amount,  # type: ignore[attr-defined]
        balance_after=row.balance_after,  # type: ignore[attr-defined]
        related_user_id=row.related_user_id,  # type: ignore[attr-defined]
        reference_type=row.reference_type,  # type: ignore[attr-defined]
        reference_id=row.reference_id,  # type: ignore[attr-defined]
        status=row.status,  # type: ignore[attr-defined]
        description=row.description,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
    )


def _row_to_settlement(row: object) -> Settlement:
    return Settlement(
        id=row.id,  # type: ignore[attr-defined]
        order_id=row.order_id,  # type: ignore[attr-defined]
        seller_id=row.seller_id,  # type: ignore[attr-defined]
        wallet_id=row.wallet_id,  # type: ignore[attr-defined]
        gross_amount=row.gross_amount,  # type: ignore[attr-defined]
        fee_amount=row.fee_amount,  # type: ignore[attr-defined]
        net_amount=row.net_amount,  # type: ignore[attr-defined]
        hold_until=row.hold_until,  # type: ignore[attr-defined]
        released_at=row.released_at,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
    )


def _row_to_deposit(row: object) -> Deposit:
    return Deposit(
        id=row.id,  # type: ignore[attr-defined]
        wallet_id=row.wallet_id,  # type: ignore[attr-defined]
        user_id=row.user_id,  # type: ignore[attr-defined]
        amount=row.amount,  # type: ignore[attr-defined]
        currency=row.currency,  # type: ignore[attr-defined]
        payment_intent_id=row.payment_intent_id,  # type: ignore[attr-defined]
        status=row.status,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
        completed_at=row.completed_at,  # type: ignore[attr-defined]
    )


class WalletRepository:
    """Concrete repository: all balance writes atomic at the SQL level."""

    async def get_wallet(self, db: AsyncSession, user_id: str) -> WalletAccount | None:
        result = await db.execute(_GET_WALLET_SQL, {"user_id": user_id})
        row = result.fetchone()
        return _row_to_wallet(row) if row else None

    async def ensure_wallet(self, db: AsyncSession, user_id: str) -> None:
        await db.execute(_ENSURE_WALLET_SQL, {"id": generate_id(), "user_id": user_id})

    async def lock_wallets(
        self, db: AsyncSession, user_ids: list[str]
    ) -> dict[str, WalletAccount]:
        result = await db.execute(_LOCK_WALLETS_SQL, {"user_ids": sorted(set(user_ids))})
        return {row.user_id: _row_to_wallet(row) for row in result.fetchall()}

    async def _append(
        self,
        db: AsyncSession,
        account: WalletAccount,
        tx_type: str,
        bucket: str,
        amount: int,
        related_user_id: str | None,
        reference_type: str | None,
        reference_id: str | None,
        description: str | None,
    ) -> WalletTransaction:
        balance_after = (
            account.pending_balance
            if bucket == BalanceBucket.PENDING.value
            else account.available_balance
        )
        result = await db.execute(
            _INSERT_TX_SQL,
            {
                "wallet_id": account.id,
                "user_id": account.user_id,
                "tx_type": tx_type,
                "bucket": bucket,
                "amount": amount,
                "balance_after": balance_after,
                "related_user_id": related_user_id,
                "reference_type": reference_type,
                "reference_id": reference_id,
                "status": WalletTxStatus.COMPLETED.value,
                "description": description,
            },
        )
        row = result.fetchone()
        if row is None:
            raise InternalError("Ledger insert returned no rows")
        return _row_to_tx(row)

    async def credit(
        self,
        db: AsyncSession,
        user_id: str,
        amount: int,
        bucket: str,
        tx_type: str,
        related_user_id: str | None = None,
        reference_type: str | None = None,
        reference_id: str | None = None,
        description: str | None = None,
    ) -> tuple[WalletAccount, WalletTransaction]:
        await self.ensure_wallet(db, user_id)
        sql = _CREDIT_PENDING_SQL if bucket == BalanceBucket.PENDING.value else _CREDIT_AVAILABLE_SQL
        result = await db.execute(sql, {"user_id": user_id, "amount": amount})
        row = result.fetchone()
        if row is None:
            raise InternalError(f"Wallet not found for user {user_id} after ensure")
        account = _row_to_wallet(row)
        entry = await self._append(
            db, account, tx_type, bucket, amount,
            related_user_id, reference_type, reference_id, description,
        )
        return account, entry

    async def debit(
        self,
        db: AsyncSession,
        user_id: str,
        amount: int,
        tx_type: str,
        related_user_id: str | None = None,
        reference_type: str | None = None,
        reference_id: str | None = None,
        description: str | None = None,
    ) -> tuple[WalletAccount, WalletTransaction]:
        result = await db.execute(_DEBIT_AVAILABLE_SQL, {"user_id": user_id, "amount": amount})
        row = result.fetchone()
        if row is None:
            current = await self.get_wallet(db, user_id)
            raise InsufficientFundsError(amount, current.available_balance if current else 0)
        account = _row_to_wallet(row)
        entry = await self._append(
            db, account, tx_type, BalanceBucket.AVAILABLE.value, -amount,
            related_user_id, reference_type, reference_id, description,
        )
        return account, entry

    async def release_pending(
        self,
        db: AsyncSession,
        user_id: str,
        amount: int,
        reference_id: str,
    ) -> tuple[WalletAccount, list[WalletTransaction]]:
        result = await db.execute(_RELEASE_PENDING_SQL, {"user_id": user_id, "amount": amount})
        row = result.fetchone()
        if row is None:
            current = await self.get_wallet(db, user_id)
            raise InsufficientFundsError(amount, current.pending_balance if current else 0)
        account = _row_to_wallet(row)
        out_entry = await self._append(
            db, account, WalletTxType.SETTLEMENT_RELEASE.value, BalanceBucket.PENDING.value,
            -amount, None, REF_SETTLEMENT, reference_id, "Settlement hold released",
        )
        in_entry = await self._append(
            db, account, WalletTxType.SETTLEMENT_RELEASE.value, BalanceBucket.AVAILABLE.value,
            amount, None, REF_SETTLEMENT, reference_id, "Settlement hold released",
        )
        return account, [out_entry, in_entry]

    async def get_settlement_by_order(
        self, db: AsyncSession, order_id: str
    ) -> Settlement | None:
        result = await db.execute(_GET_SETTLEMENT_BY_ORDER_SQL, {"order_id": order_id})
        row = result.fetchone()
        return _row_to_settlement(row) if row else None

    async def insert_settlement(
        self, db: AsyncSession, settlement: Settlement
    ) -> Settlement | None:
        """Insert unless the order already settled; None means a duplicate order_id."""
        result = await db.execute(
            _INSERT_SETTLEMENT_SQL,
            {
                "id": settlement.id,
                "order_id": settlement.order_id,
                "seller_id": settlement.seller_id,
                "wallet_id": settlement.wallet_id,
                "gross_amount": settlement.gross_amount,
                "fee_amount": settlement.fee_amount,
                "net_amount": settlement.net_amount,
                "hold_until": settlement.hold_until,
            },
        )
        row = result.fetchone()
        return _row_to_settlement(row) if row else None

    async def claim_due_settlements(
        self, db: AsyncSession, now: datetime, limit: int
    ) -> list[Settlement]:
        result = await db.execute(_CLAIM_DUE_SETTLEMENTS_SQL, {"now": now, "limit": limit})
        return [_row_to_settlement(row) for row in result.fetchall()]

    async def mark_settlement_released(
        self, db: AsyncSession, settlement_id: str, released_at: datetime
    ) -> bool:
        result = await db.execute(
            _MARK_RELEASED_SQL, {"id": settlement_id, "released_at": released_at}
        )
        return result.fetchone() is not None

    async def list_transactions(
        self,
        db: AsyncSession,
        user_id: str,
        cursor_id: int | None,
        limit: int,
        tx_type: str | None,
    ) -> list[WalletTransaction]:
        result = await db.execute(
            _LIST_TX_SQL,
            {"user_id": user_id, "cursor_id": cursor_id, "limit": limit, "tx_type": tx_type},
        )
        return [_row_to_tx(row) for row in result.fetchall()]

    async def list_wallet_entries(
        self, db: AsyncSession, wallet_id: str
    ) -> list[WalletTransaction]:
        result = await db.execute(_LIST_WALLET_ENTRIES_SQL, {"wallet_id": wallet_id})
        return [_row_to_tx(row) for row in result.fetchall()]

    async def insert_deposit(self, db: AsyncSession, deposit: Deposit) -> Deposit:
        result = await db.execute(
            _INSERT_DEPOSIT_SQL,
            {
                "id": deposit.id,
                "wallet_id": deposit.wallet_id,
                "user_id": deposit.user_id,
                "amount": deposit.amount,
                "currency": deposit.currency,
                "payment_intent_id": deposit.payment_intent_id,
                "status": deposit.status,
            },
        )
        row = result.fetchone()
        if row is None:
            raise InternalError("Deposit insert returned no rows")
        return _row_to_deposit(row)

    async def get_deposit_by_intent_for_update(
        self, db: AsyncSession, payment_intent_id: str
    ) -> Deposit | None:
        result = await db.execute(
            _GET_DEPOSIT_BY_INTENT_FOR_UPDATE_SQL, {"payment_intent_id": payment_intent_id}
        )
        row = result.fetchone()
        return _row_to_deposit(row) if row else None

    async def mark_deposit(
        self,
        db: AsyncSession,
        deposit_id: str,
        from_status: str,
        to_status: str,
        completed_at: datetime | None,
    ) -> bool:
        result = await db.execute(
            _MARK_DEPOSIT_SQL,
            {
                "id": deposit_id,
                "from_status": from_status,
                "to_status": to_status,
                "completed_at": completed_at,
            },
        )
        return result.fetchone() is not None
