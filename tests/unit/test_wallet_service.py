"""Unit tests for WalletApplicationService against the in-memory ledger."""

from datetime import timedelta

import pytest

from fakes import FakeSession, FakeStore, FakeWalletRepository
from src.cm_common.datetime_utils import utc_now
from src.cm_common.errors import (
    InsufficientFundsError,
    InvalidArgumentError,
    WalletNotFoundError,
)
from src.cm_wallet.application.service import WalletApplicationService
from src.cm_wallet.domain.constants import PLATFORM_FEE_USER_ID


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def repo(store: FakeStore) -> FakeWalletRepository:
    return FakeWalletRepository(store)


@pytest.fixture
def svc(repo: FakeWalletRepository) -> WalletApplicationService:
    return WalletApplicationService(repo=repo)


@pytest.fixture
def db(store: FakeStore) -> FakeSession:
    return FakeSession(store)


def _balances(store: FakeStore, user_id: str) -> tuple[int, int]:
    wallet = store.wallets.get(user_id)
    return (wallet.available_balance, wallet.pending_balance) if wallet else (0, 0)


def _total(store: FakeStore) -> int:
    return sum(w.available_balance + w.pending_balance for w in store.wallets.values())


class TestBalance:
    async def test_missing_wallet_reads_as_zero_without_creating(self, svc, store, db) -> None:
        result = await svc.get_balance(db, "nobody")
        assert result.available_balance_cents == 0
        assert result.total_balance_display == "$0.00"
        assert "nobody" not in store.wallets

    async def test_balance_after_credit(self, svc, db) -> None:
        await svc.credit(db, "P", 12345)
        result = await svc.get_balance(db, "P")
        assert result.available_balance_cents == 12345
        assert result.available_balance_display == "$123.45"


class TestSingleMovements:
    async def test_credit_creates_wallet_and_ledger_entry(self, svc, store, db) -> None:
        result = await svc.credit(db, "P", 100)

        assert result.available_balance_cents == 100
        assert result.amount_display == "$1.00"
        assert db.commits == 1
        [entry] = store.transactions
        assert (entry.tx_type, entry.bucket, entry.amount, entry.balance_after) == (
            "DEPOSIT", "AVAILABLE", 100, 100
        )

    async def test_credit_to_pending(self, svc, store, db) -> None:
        result = await svc.credit(db, "P", 250, to_pending=True)
        assert result.pending_balance_cents == 250
        assert _balances(store, "P") == (0, 250)

    @pytest.mark.parametrize("amount", [0, -5])
    async def test_non_positive_amount_rejected(self, svc, db, amount: int) -> None:
        with pytest.raises(InvalidArgumentError):
            await svc.credit(db, "P", amount)
        assert db.commits == 0

    async def test_debit_reduces_available(self, svc, store, db) -> None:
        await svc.credit(db, "P", 100)
        result = await svc.debit(db, "P", 40)
        assert result.available_balance_cents == 60
        assert result.amount_cents == -40

    async def test_overdraw_rejected_and_rolled_back(self, svc, store, db) -> None:
        await svc.credit(db, "P", 100)
        with pytest.raises(InsufficientFundsError):
            await svc.debit(db, "P", 101)
        assert db.rollbacks == 1
        assert _balances(store, "P") == (100, 0)
        assert len(store.transactions) == 1


class TestTransfer:
    async def test_transfer_moves_cash_and_conserves_total(self, svc, repo, store, db) -> None:
        await svc.credit(db, "P", 100)

        result = await svc.transfer(db, "P", "C", 50, note="binder swap")

        assert _balances(store, "P") == (50, 0)
        assert _balances(store, "C") == (50, 0)
        assert _total(store) == 100
        assert result.from_available_balance_cents == 50
        assert result.amount_display == "$0.50"
        assert repo.locked[-1] == ["C", "P"]

        debit, credit = store.transactions[-2:]
        assert (debit.tx_type, debit.amount, debit.related_user_id) == ("TRANSFER_OUT", -50, "C")
        assert (credit.tx_type, credit.amount, credit.related_user_id) == ("TRANSFER_IN", 50, "P")

    async def test_self_transfer_rejected(self, svc, db) -> None:
        await svc.credit(db, "P", 100)
        with pytest.raises(InvalidArgumentError):
            await svc.transfer(db, "P", "P", 10)

    async def test_insufficient_funds_leaves_no_trace(self, svc, store, db) -> None:
        await svc.credit(db, "P", 10)
        with pytest.raises(InsufficientFundsError):
            await svc.transfer(db, "P", "C", 50)
        assert _balances(store, "P") == (10, 0)
        assert "C" not in store.wallets
        assert len(store.transactions) == 1

    async def test_failure_after_debit_rolls_debit_back(self, svc, repo, store, db) -> None:
        await svc.credit(db, "P", 100)
        repo.credit_error = RuntimeError("disk full")

        with pytest.raises(RuntimeError):
            await svc.transfer(db, "P", "C", 50)

        assert _balances(store, "P") == (100, 0)
        assert _total(store) == 100
        assert [t.tx_type for t in store.transactions] == ["DEPOSIT"]

    async def test_apply_transfer_does_not_commit(self, svc, db) -> None:
        await svc.credit(db, "P", 100)
        commits_before = db.commits
        await svc.apply_transfer(db, "P", "C", 25)
        assert db.commits == commits_before


class TestSettle:
    async def test_settle_credits_pending_net_and_platform_fee(self, svc, store, db) -> None:
        result = await svc.settle(db, "order-1", "S", 10000)

        assert result.created is True
        assert (result.fee_amount_cents, result.net_amount_cents) == (120, 9880)
        assert _balances(store, "S") == (0, 9880)
        assert _balances(store, PLATFORM_FEE_USER_ID) == (120, 0)
        assert result.hold_until > utc_now() + timedelta(days=2)

    async def test_settle_is_idempotent_per_order(self, svc, store, db) -> None:
        first = await svc.settle(db, "order-1", "S", 10000)
        second = await svc.settle(db, "order-1", "S", 10000)

        assert second.created is False
        assert second.settlement_id == first.settlement_id
        assert _balances(store, "S") == (0, 9880)
        assert len(store.settlements) == 1

    async def test_explicit_fee(self, svc, store, db) -> None:
        result = await svc.settle(db, "order-2", "S", 5000, fee_cents=0)
        assert result.net_amount_cents == 5000
        assert PLATFORM_FEE_USER_ID not in store.wallets

    async def test_fee_above_gross_rejected(self, svc, db) -> None:
        with pytest.raises(InvalidArgumentError):
            await svc.settle(db, "order-3", "S", 100, fee_cents=101)

    async def test_platform_wallet_cannot_be_seller(self, svc, db) -> None:
        with pytest.raises(InvalidArgumentError):
            await svc.settle(db, "order-4", PLATFORM_FEE_USER_ID, 100)


class TestRelease:
    async def test_matured_settlement_moves_pending_to_available_once(
        self, svc, store, db
    ) -> None:
        await svc.settle(db, "order-1", "S", 10000, hold=timedelta(0))
        later = utc_now() + timedelta(seconds=1)

        first = await svc.release_settlements(db, now=later)
        second = await svc.release_settlements(db, now=later)

        assert (first.released_count, first.released_cents) == (1, 9880)
        assert second.released_count == 0
        assert _balances(store, "S") == (9880, 0)
        releases = [t for t in store.transactions if t.tx_type == "SETTLEMENT_RELEASE"]
        assert [(t.bucket, t.amount) for t in releases] == [("PENDING", -9880), ("AVAILABLE", 9880)]

    async def test_held_settlement_is_not_released(self, svc, store, db) -> None:
        await svc.settle(db, "order-1", "S", 10000)
        result = await svc.release_settlements(db)
        assert result.released_count == 0
        assert _balances(store, "S") == (0, 9880)


class TestLedgerQueries:
    async def test_transactions_page_newest_first(self, svc, db) -> None:
        for amount in (100, 200, 300):
            await svc.credit(db, "P", amount)

        page1 = await svc.list_transactions(db, "P", cursor=None, limit=2, tx_type=None)
        page2 = await svc.list_transactions(db, "P", cursor=page1.next_cursor, limit=2, tx_type=None)

        assert [i.amount_cents for i in page1.items] == [300, 200]
        assert page1.has_more is True
        assert [i.amount_cents for i in page2.items] == [100]
        assert page2.has_more is False
        assert page2.next_cursor is None

    async def test_verify_ledger_after_mixed_activity(self, svc, db) -> None:
        await svc.credit(db, "S", 500)
        await svc.settle(db, "order-1", "S", 10000, hold=timedelta(0))
        await svc.transfer(db, "S", "B", 200)
        await svc.release_settlements(db, now=utc_now() + timedelta(seconds=1))

        report = await svc.verify_ledger(db, "S")

        assert report.ok is True
        assert report.violations == []
        assert report.available_balance_cents == 500 - 200 + 9880
        assert report.entry_count == 5

    async def test_verify_ledger_unknown_user(self, svc, db) -> None:
        with pytest.raises(WalletNotFoundError):
            await svc.verify_ledger(db, "ghost")


async def test_balances_never_negative_and_total_conserved(svc, store, db) -> None:
    """A scripted mix of transfers, some of which must bounce."""
    await svc.credit(db, "A", 1000)
    await svc.credit(db, "B", 300)
    moves = [("A", "B", 700), ("B", "C", 1200), ("B", "C", 900), ("C", "A", 950), ("A", "C", 5)]
    for sender, receiver, amount in moves:
        try:
            await svc.transfer(db, sender, receiver, amount)
        except InsufficientFundsError:
            pass
        assert all(w.available_balance >= 0 for w in store.wallets.values())
        assert _total(store) == 1300
    for user_id in ("A", "B", "C"):
        assert (await svc.verify_ledger(db, user_id)).ok is True
