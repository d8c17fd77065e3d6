"""WalletApplicationService: the only writer of wallet balances.

Two kinds of entry point:
  * `credit`, `debit`, `transfer`, `settle`, `release_settlements` and the
    deposit operations own their transaction: commit on success, rollback on
    any failure.
  * `apply_*` methods run inside the caller's transaction (the settlement
    orchestrator) and never commit.

User deposits never touch a balance directly: `request_deposit` opens a
payment intent and records a pending deposit, and only `confirm_deposit`
(driven by the provider webhook) credits the available balance.
"""

import logging
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.cm_common.cursor import cursor_decode, cursor_encode
from src.cm_common.datetime_utils import utc_now
from src.cm_common.enums import BalanceBucket, DepositStatus, WalletTxType
from src.cm_common.errors import (
    DepositNotFoundError,
    DepositStateError,
    InternalError,
    InvalidArgumentError,
    WalletNotFoundError,
)
from src.cm_common.id_generator import generate_id
from src.cm_common.money import cents_to_display, validate_amount
from src.cm_wallet.application.schemas import (
    BalanceResponse,
    DepositIntentResponse,
    DepositResponse,
    LedgerVerificationResponse,
    MovementResponse,
    ReleaseResponse,
    SettlementResponse,
    TransactionItem,
    TransactionListResponse,
    TransferResponse,
)
from src.cm_wallet.domain.constants import (
    PLATFORM_FEE_USER_ID,
    REF_DEPOSIT,
    REF_ORDER,
    REF_SETTLEMENT,
    REF_TRANSFER,
    REF_WITHDRAWAL,
)
from src.cm_wallet.domain.fees import default_seller_fee
from src.cm_wallet.domain.invariants import replay_wallet_ledger
from src.cm_wallet.domain.models import (
    Deposit,
    PurchaseSettlement,
    Settlement,
    TransferResult,
    WalletAccount,
    WalletTransaction,
)
from src.cm_wallet.domain.payments import PaymentsCollaboratorProtocol
from src.cm_wallet.domain.repository import WalletRepositoryProtocol
from src.cm_wallet.infrastructure.payments_client import StripePaymentsClient
from src.cm_wallet.infrastructure.persistence import WalletRepository

logger = logging.getLogger(__name__)


def _check_amount(amount: int) -> None:
    try:
        validate_amount(amount)
    except ValueError as exc:
        raise InvalidArgumentError(str(exc)) from None


class WalletApplicationService:
    def __init__(
        self,
        repo: WalletRepositoryProtocol | None = None,
        payments: PaymentsCollaboratorProtocol | None = None,
    ) -> None:
        self._repo: WalletRepositoryProtocol = repo or WalletRepository()
        self._payments: PaymentsCollaboratorProtocol = payments or StripePaymentsClient()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_balance(self, db: AsyncSession, user_id: str) -> BalanceResponse:
        # Reads never create wallets; a user without one simply has nothing
        wallet = await self._repo.get_wallet(db, user_id)
        if wallet is None:
            return BalanceResponse.from_cents(user_id=user_id, available=0, pending=0)
        return BalanceResponse.from_cents(
            user_id=user_id,
            available=wallet.available_balance,
            pending=wallet.pending_balance,
        )

    async def list_transactions(
        self,
        db: AsyncSession,
        user_id: str,
        cursor: str | None,
        limit: int,
        tx_type: str | None,
    ) -> TransactionListResponse:
        decoded = cursor_decode(cursor)
        cursor_id = decoded if isinstance(decoded, int) else None
        # Fetch limit+1 to detect has_more without a COUNT(*) query
        entries = await self._repo.list_transactions(db, user_id, cursor_id, limit + 1, tx_type)
        has_more = len(entries) > limit
        page = entries[:limit]
        next_cursor = cursor_encode(page[-1].id) if has_more and page else None
        return TransactionListResponse(
            items=[TransactionItem.from_entry(e) for e in page],
            next_cursor=next_cursor,
            has_more=has_more,
        )

    async def verify_ledger(self, db: AsyncSession, user_id: str) -> LedgerVerificationResponse:
        wallet = await self._repo.get_wallet(db, user_id)
        if wallet is None:
            raise WalletNotFoundError(user_id)
        entries = await self._repo.list_wallet_entries(db, wallet.id)
        violations = replay_wallet_ledger(wallet, entries)
        return LedgerVerificationResponse(
            user_id=user_id,
            ok=not violations,
            entry_count=len(entries),
            available_balance_cents=wallet.available_balance,
            pending_balance_cents=wallet.pending_balance,
            violations=violations,
        )

    # ------------------------------------------------------------------
    # Single-wallet movements
    # ------------------------------------------------------------------

    async def apply_credit(
        self,
        db: AsyncSession,
        user_id: str,
        amount_cents: int,
        to_pending: bool = False,
        reference_id: str | None = None,
        description: str = "Wallet credit",
    ) -> tuple[WalletAccount, WalletTransaction]:
        """Credit inside the caller's transaction. Never commits."""
        _check_amount(amount_cents)
        bucket = BalanceBucket.PENDING if to_pending else BalanceBucket.AVAILABLE
        tx_type = WalletTxType.SETTLEMENT if to_pending else WalletTxType.DEPOSIT
        return await self._repo.credit(
            db, user_id, amount_cents, bucket.value, tx_type.value,
            reference_type=REF_DEPOSIT, reference_id=reference_id, description=description,
        )

    async def credit(
        self,
        db: AsyncSession,
        user_id: str,
        amount_cents: int,
        to_pending: bool = False,
    ) -> MovementResponse:
        try:
            account, entry = await self.apply_credit(db, user_id, amount_cents, to_pending)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        logger.info(
            "Credited %d cents to %s (%s)",
            amount_cents, user_id, "pending" if to_pending else "available",
        )
        return MovementResponse.from_result(
            account.available_balance, account.pending_balance, amount_cents, entry.id
        )

    async def debit(self, db: AsyncSession, user_id: str, amount_cents: int) -> MovementResponse:
        _check_amount(amount_cents)
        try:
            account, entry = await self._repo.debit(
                db, user_id, amount_cents, WalletTxType.WITHDRAWAL.value,
                reference_type=REF_WITHDRAWAL, description="Wallet withdrawal",
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        logger.info("Debited %d cents from %s", amount_cents, user_id)
        return MovementResponse.from_result(
            account.available_balance, account.pending_balance, -amount_cents, entry.id
        )

    # ------------------------------------------------------------------
    # Card deposits
    # ------------------------------------------------------------------

    async def request_deposit(
        self, db: AsyncSession, user_id: str, amount_cents: int
    ) -> DepositIntentResponse:
        """Open a payment intent and record a pending deposit. Moves no money."""
        _check_amount(amount_cents)
        if amount_cents > settings.MAX_DEPOSIT_CENTS:
            raise InvalidArgumentError(
                f"deposit {amount_cents} exceeds maximum {settings.MAX_DEPOSIT_CENTS}"
            )
        deposit_id = generate_id()
        currency = settings.PAYMENTS_CURRENCY
        # Provider call stays outside the DB transaction
        intent = await self._payments.create_payment_intent(
            user_id, deposit_id, amount_cents, currency
        )
        try:
            await self._repo.ensure_wallet(db, user_id)
            wallet = await self._repo.get_wallet(db, user_id)
            if wallet is None:
                raise WalletNotFoundError(user_id)
            deposit = await self._repo.insert_deposit(
                db,
                Deposit(
                    id=deposit_id,
                    wallet_id=wallet.id,
                    user_id=user_id,
                    amount=amount_cents,
                    currency=currency,
                    payment_intent_id=intent.id,
                    status=DepositStatus.PENDING.value,
                ),
            )
            await db.commit()
        except Exception:
            await db.rollback()
            logger.error(
                "Deposit %s not recorded; payment intent %s is orphaned", deposit_id, intent.id
            )
            raise
        logger.info(
            "Deposit %s requested by %s: %d cents, intent %s",
            deposit.id, user_id, amount_cents, intent.id,
        )
        return DepositIntentResponse.from_deposit(deposit, intent.client_secret)

    async def confirm_deposit(
        self,
        db: AsyncSession,
        payment_intent_id: str,
        amount_received_cents: int | None = None,
    ) -> DepositResponse:
        """Credit a pending deposit once the provider reports the payment succeeded.

        Idempotent: a repeated confirmation returns credited=False and moves
        nothing. A failed deposit cannot be confirmed.
        """
        now = utc_now()
        try:
            deposit = await self._repo.get_deposit_by_intent_for_update(db, payment_intent_id)
            if deposit is None:
                raise DepositNotFoundError(payment_intent_id)
            if deposit.status == DepositStatus.COMPLETED.value:
                await db.rollback()
                return DepositResponse.from_deposit(deposit, credited=False)
            if deposit.status != DepositStatus.PENDING.value:
                raise DepositStateError(deposit.id, deposit.status)
            if amount_received_cents is not None and amount_received_cents != deposit.amount:
                raise InvalidArgumentError(
                    f"provider reported {amount_received_cents} cents for deposit "
                    f"{deposit.id} of {deposit.amount}"
                )
            marked = await self._repo.mark_deposit(
                db, deposit.id, DepositStatus.PENDING.value, DepositStatus.COMPLETED.value, now
            )
            if not marked:
                raise InternalError(f"deposit {deposit.id} changed under its row lock")
            account, _ = await self.apply_credit(
                db, deposit.user_id, deposit.amount,
                reference_id=deposit.id, description="Card deposit",
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        deposit.status = DepositStatus.COMPLETED.value
        deposit.completed_at = now
        logger.info(
            "Deposit %s confirmed: %d cents to %s", deposit.id, deposit.amount, deposit.user_id
        )
        return DepositResponse.from_deposit(
            deposit, credited=True, available_balance=account.available_balance
        )

    async def fail_deposit(self, db: AsyncSession, payment_intent_id: str) -> DepositResponse:
        """Mark a pending deposit failed. A completed deposit cannot be failed."""
        try:
            deposit = await self._repo.get_deposit_by_intent_for_update(db, payment_intent_id)
            if deposit is None:
                raise DepositNotFoundError(payment_intent_id)
            if deposit.status == DepositStatus.FAILED.value:
                await db.rollback()
                return DepositResponse.from_deposit(deposit, credited=False)
            if deposit.status != DepositStatus.PENDING.value:
                raise DepositStateError(deposit.id, deposit.status)
            await self._repo.mark_deposit(
                db, deposit.id, DepositStatus.PENDING.value, DepositStatus.FAILED.value, None
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        deposit.status = DepositStatus.FAILED.value
        logger.info("Deposit %s failed at the provider", deposit.id)
        return DepositResponse.from_deposit(deposit, credited=False)

    # ------------------------------------------------------------------
    # Transfers
    # ------------------------------------------------------------------

    async def apply_transfer(
        self,
        db: AsyncSession,
        from_user_id: str,
        to_user_id: str,
        amount_cents: int,
        reference_type: str = REF_TRANSFER,
        reference_id: str | None = None,
        description: str | None = None,
    ) -> TransferResult:
        """Debit + credit inside the caller's transaction. Never commits.

        Raises:
            InvalidArgumentError: self-transfer or non-positive amount.
            InsufficientFundsError: sender's available balance is too low.
        """
        _check_amount(amount_cents)
        if from_user_id == to_user_id:
            raise InvalidArgumentError("cannot transfer to the same wallet")

        for user_id in sorted((from_user_id, to_user_id)):
            await self._repo.ensure_wallet(db, user_id)
        await self._repo.lock_wallets(db, [from_user_id, to_user_id])

        from_account, debit_entry = await self._repo.debit(
            db, from_user_id, amount_cents, WalletTxType.TRANSFER_OUT.value,
            related_user_id=to_user_id, reference_type=reference_type,
            reference_id=reference_id, description=description,
        )
        to_account, credit_entry = await self._repo.credit(
            db, to_user_id, amount_cents, BalanceBucket.AVAILABLE.value,
            WalletTxType.TRANSFER_IN.value,
            related_user_id=from_user_id, reference_type=reference_type,
            reference_id=reference_id, description=description,
        )
        return TransferResult(
            from_account=from_account,
            to_account=to_account,
            debit_entry=debit_entry,
            credit_entry=credit_entry,
        )

    async def transfer(
        self,
        db: AsyncSession,
        from_user_id: str,
        to_user_id: str,
        amount_cents: int,
        note: str | None = None,
    ) -> TransferResponse:
        try:
            result = await self.apply_transfer(
                db, from_user_id, to_user_id, amount_cents, description=note
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        logger.info("Transferred %d cents %s -> %s", amount_cents, from_user_id, to_user_id)
        return TransferResponse(
            from_user_id=from_user_id,
            to_user_id=to_user_id,
            amount_cents=amount_cents,
            amount_display=cents_to_display(amount_cents),
            from_available_balance_cents=result.from_account.available_balance,
            debit_transaction_id=result.debit_entry.id,
            credit_transaction_id=result.credit_entry.id,
        )

    # ------------------------------------------------------------------
    # Settlements
    # ------------------------------------------------------------------

    async def settle(
        self,
        db: AsyncSession,
        order_id: str,
        seller_id: str,
        gross_cents: int,
        fee_cents: int | None = None,
        hold: timedelta | None = None,
    ) -> SettlementResponse:
        """Credit net proceeds to the seller's pending balance behind a hold.

        Idempotent per order_id: a repeat call returns the existing settlement
        with created=False and moves no money.
        """
        existing = await self._repo.get_settlement_by_order(db, order_id)
        if existing is not None:
            return SettlementResponse.from_settlement(existing, created=False)

        try:
            settlement = await self.apply_settlement(
                db, order_id, seller_id, gross_cents, fee_cents, hold
            )
            if settlement is None:
                # Lost the race to a concurrent settle for the same order
                await db.rollback()
                winner = await self._repo.get_settlement_by_order(db, order_id)
                if winner is None:
                    raise InvalidArgumentError(f"settlement for order {order_id} vanished")
                return SettlementResponse.from_settlement(winner, created=False)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info(
            "Settled order %s for %s: gross=%d fee=%d net=%d hold_until=%s",
            order_id, seller_id, gross_cents, settlement.fee_amount, settlement.net_amount,
            settlement.hold_until.isoformat(),
        )
        return SettlementResponse.from_settlement(settlement, created=True)

    async def apply_settlement(
        self,
        db: AsyncSession,
        order_id: str,
        seller_id: str,
        gross_cents: int,
        fee_cents: int | None = None,
        hold: timedelta | None = None,
    ) -> Settlement | None:
        """Record the settlement and credit seller (pending) and fee wallets.

        Runs inside the caller's transaction. Returns None when order_id
        already has a settlement; nothing is credited in that case.
        """
        _check_amount(gross_cents)
        fee = default_seller_fee(gross_cents) if fee_cents is None else fee_cents
        if fee < 0 or fee > gross_cents:
            raise InvalidArgumentError(f"fee {fee} must be between 0 and gross {gross_cents}")
        if seller_id == PLATFORM_FEE_USER_ID:
            raise InvalidArgumentError("platform fee wallet cannot be a seller")
        net = gross_cents - fee
        hold_for = hold if hold is not None else timedelta(days=settings.SETTLEMENT_HOLD_DAYS)

        await self._repo.ensure_wallet(db, seller_id)
        wallet = await self._repo.get_wallet(db, seller_id)
        if wallet is None:
            raise WalletNotFoundError(seller_id)
        settlement = await self._repo.insert_settlement(
            db,
            Settlement(
                id=generate_id(),
                order_id=order_id,
                seller_id=seller_id,
                wallet_id=wallet.id,
                gross_amount=gross_cents,
                fee_amount=fee,
                net_amount=net,
                hold_until=utc_now() + hold_for,
            ),
        )
        if settlement is None:
            return None

        if net > 0:
            await self._repo.credit(
                db, seller_id, net, BalanceBucket.PENDING.value,
                WalletTxType.SETTLEMENT.value,
                reference_type=REF_SETTLEMENT, reference_id=settlement.id,
                description=f"Settlement for order {order_id}",
            )
        if fee > 0:
            await self._repo.credit(
                db, PLATFORM_FEE_USER_ID, fee, BalanceBucket.AVAILABLE.value,
                WalletTxType.FEE_REVENUE.value,
                related_user_id=seller_id, reference_type=REF_SETTLEMENT,
                reference_id=settlement.id, description=f"Seller fee for order {order_id}",
            )
        return settlement

    async def apply_purchase(
        self,
        db: AsyncSession,
        order_id: str,
        buyer_id: str,
        seller_id: str,
        price_cents: int,
        description: str | None = None,
    ) -> PurchaseSettlement:
        """Debit the buyer and settle the seller inside the caller's transaction.

        Raises:
            InvalidArgumentError: buyer and seller are the same user.
            InsufficientFundsError: buyer's available balance is below the price.
        """
        _check_amount(price_cents)
        if buyer_id == seller_id:
            raise InvalidArgumentError("buyer and seller must differ")

        for user_id in sorted((buyer_id, seller_id)):
            await self._repo.ensure_wallet(db, user_id)
        await self._repo.lock_wallets(db, [buyer_id, seller_id])

        buyer_account, debit_entry = await self._repo.debit(
            db, buyer_id, price_cents, WalletTxType.PURCHASE.value,
            related_user_id=seller_id, reference_type=REF_ORDER,
            reference_id=order_id, description=description,
        )
        settlement = await self.apply_settlement(db, order_id, seller_id, price_cents)
        if settlement is None:
            raise InternalError(f"order {order_id} was already settled")
        return PurchaseSettlement(
            buyer_account=buyer_account, debit_entry=debit_entry, settlement=settlement
        )

    async def release_settlements(
        self,
        db: AsyncSession,
        now: datetime | None = None,
        limit: int = 100,
    ) -> ReleaseResponse:
        """Move matured settlements from pending to available exactly once."""
        as_of = now or utc_now()
        released_ids: list[str] = []
        released_cents = 0
        try:
            due = await self._repo.claim_due_settlements(db, as_of, limit)
            for settlement in due:
                if not await self._repo.mark_settlement_released(db, settlement.id, as_of):
                    continue
                if settlement.net_amount > 0:
                    await self._repo.release_pending(
                        db, settlement.seller_id, settlement.net_amount, settlement.id
                    )
                released_ids.append(settlement.id)
                released_cents += settlement.net_amount
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        if released_ids:
            logger.info(
                "Released %d settlement(s), %d cents total", len(released_ids), released_cents
            )
        return ReleaseResponse(
            released_count=len(released_ids),
            released_cents=released_cents,
            settlement_ids=released_ids,
        )
