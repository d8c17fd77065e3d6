"""Unit tests for SettlementOrchestrator: atomic accept and purchase, exclusivity, retries."""

from datetime import timedelta

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from fakes import (
    FakeListingRepository,
    FakePublisher,
    FakeSession,
    FakeStore,
    FakeTradeOfferRepository,
    FakeWalletRepository,
    item,
    make_listing,
    make_offer,
)
from src.cm_common.datetime_utils import utc_now
from src.cm_common.errors import (
    InsufficientFundsError,
    ListingNotFoundError,
    ListingNotTradeableError,
    OfferAlreadyTerminalError,
    OfferExpiredError,
    SelfTradeError,
    SettlementFailedError,
    UnauthorizedActionError,
)
from src.cm_trade.application.settlement import (
    AcceptResult,
    PurchaseResult,
    SettlementOrchestrator,
)
from src.cm_wallet.application.service import WalletApplicationService


@pytest.fixture
def store() -> FakeStore:
    s = FakeStore()
    s.add_listing(make_listing("L-target", "C", card_name="Energy", price_cents=50))
    s.add_listing(make_listing("L-pika", "P", card_name="Pikachu"))
    return s


@pytest.fixture
def wallet_repo(store: FakeStore) -> FakeWalletRepository:
    return FakeWalletRepository(store)


@pytest.fixture
def wallet(wallet_repo: FakeWalletRepository) -> WalletApplicationService:
    return WalletApplicationService(repo=wallet_repo)


@pytest.fixture
def listing_repo(store: FakeStore) -> FakeListingRepository:
    return FakeListingRepository(store)


@pytest.fixture
def trade_repo(store: FakeStore) -> FakeTradeOfferRepository:
    return FakeTradeOfferRepository(store)


@pytest.fixture
def publisher() -> FakePublisher:
    return FakePublisher()


@pytest.fixture
def delays() -> list[float]:
    return []


@pytest.fixture
def orchestrator(listing_repo, trade_repo, wallet, publisher, delays) -> SettlementOrchestrator:
    async def fake_sleep(seconds: float) -> None:
        delays.append(seconds)

    return SettlementOrchestrator(
        repo=trade_repo,
        listings=listing_repo,
        wallet=wallet,
        publisher=publisher,
        max_attempts=3,
        base_delay_ms=50,
        sleep=fake_sleep,
    )


async def _fund(wallet: WalletApplicationService, store: FakeStore, user_id: str, amount: int) -> None:
    await wallet.credit(FakeSession(store), user_id, amount)


def _available(store: FakeStore, user_id: str) -> int:
    w = store.wallets.get(user_id)
    return w.available_balance if w else 0


def _assert_untouched(store: FakeStore, offer_id: str = "offer-1") -> None:
    assert store.offers[offer_id].status == "pending"
    assert store.listings["L-target"].status == "active"
    assert not [e for e in store.events if e.action == "accepted"]


class TestAcceptHappyPath:
    async def test_cash_moves_and_listing_is_traded(
        self, orchestrator, wallet, store, publisher
    ) -> None:
        await _fund(wallet, store, "P", 100)
        store.add_offer(make_offer(cash_amount_cents=50))
        db = FakeSession(store)

        result = await orchestrator.accept(db, "offer-1", "C")

        assert isinstance(result, AcceptResult)
        assert result.offer.status == "accepted"
        assert result.traded_listing_ids == ["L-target"]
        assert result.transfer is not None
        assert (_available(store, "P"), _available(store, "C")) == (50, 50)
        assert store.listings["L-target"].status == "traded"
        assert store.offers["offer-1"].status == "accepted"
        assert [e.action for e in store.events] == ["accepted"]
        assert publisher.event_types == ["trade_offer.accepted"]
        assert db.commits == 1

        debit, credit = store.transactions[-2:]
        assert (debit.user_id, debit.amount, debit.reference_id) == ("P", -50, "offer-1")
        assert (credit.user_id, credit.amount, credit.reference_type) == ("C", 50, "TRADE_OFFER")

    async def test_card_swap_without_cash_moves_no_money(self, orchestrator, store) -> None:
        store.add_offer(make_offer(cash_amount_cents=0, offered_items=[item("L-pika")]))

        result = await orchestrator.accept(FakeSession(store), "offer-1", "C")

        assert result.transfer is None
        assert result.traded_listing_ids == ["L-target", "L-pika"]
        assert store.listings["L-pika"].status == "traded"
        assert store.wallets == {}
        assert store.transactions == []


class TestAcceptFailures:
    async def test_insufficient_funds_rolls_everything_back(
        self, orchestrator, wallet, store, publisher
    ) -> None:
        await _fund(wallet, store, "P", 10)
        store.add_offer(make_offer(cash_amount_cents=50))

        with pytest.raises(SettlementFailedError, match="insufficient funds") as exc_info:
            await orchestrator.accept(FakeSession(store), "offer-1", "C")

        assert exc_info.value.http_status == 422
        assert isinstance(exc_info.value.__cause__, InsufficientFundsError)
        _assert_untouched(store)
        assert (_available(store, "P"), _available(store, "C")) == (10, 0)
        assert publisher.events == []

    async def test_failure_after_debit_restores_proposer(
        self, orchestrator, wallet, wallet_repo, store
    ) -> None:
        await _fund(wallet, store, "P", 100)
        store.add_offer(make_offer(cash_amount_cents=50))
        wallet_repo.credit_error = IntegrityError("INSERT", {}, Exception("constraint"))

        with pytest.raises(SettlementFailedError, match="storage error") as exc_info:
            await orchestrator.accept(FakeSession(store), "offer-1", "C")

        assert exc_info.value.http_status == 500

        _assert_untouched(store)
        assert _available(store, "P") == 100
        assert "C" not in store.wallets

    async def test_unexpected_error_propagates_after_rollback(
        self, orchestrator, wallet, wallet_repo, store
    ) -> None:
        await _fund(wallet, store, "P", 100)
        store.add_offer(make_offer(cash_amount_cents=50))
        wallet_repo.credit_error = RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await orchestrator.accept(FakeSession(store), "offer-1", "C")

        _assert_untouched(store)
        assert _available(store, "P") == 100

    async def test_listing_taken_elsewhere(self, orchestrator, wallet, store) -> None:
        await _fund(wallet, store, "P", 100)
        store.add_offer(make_offer(cash_amount_cents=0, offered_items=[item("L-pika")]))
        store.listings["L-pika"].status = "sold"
        store.checkpoint()

        with pytest.raises(SettlementFailedError, match="L-pika is no longer available") as exc_info:
            await orchestrator.accept(FakeSession(store), "offer-1", "C")

        assert exc_info.value.http_status == 409

        _assert_untouched(store)

    async def test_expired_offer_is_recorded_and_refused(
        self, orchestrator, wallet, store, publisher
    ) -> None:
        await _fund(wallet, store, "P", 100)
        store.add_offer(make_offer(expires_at=utc_now() - timedelta(seconds=1)))

        with pytest.raises(OfferExpiredError):
            await orchestrator.accept(FakeSession(store), "offer-1", "C")

        assert store.offers["offer-1"].status == "expired"
        assert store.listings["L-target"].status == "active"
        assert _available(store, "P") == 100
        assert publisher.event_types == ["trade_offer.expired"]

    async def test_only_awaiting_party_may_accept(self, orchestrator, store) -> None:
        store.add_offer(make_offer())
        with pytest.raises(UnauthorizedActionError):
            await orchestrator.accept(FakeSession(store), "offer-1", "P")

    async def test_second_accept_sees_terminal_offer(self, orchestrator, wallet, store) -> None:
        await _fund(wallet, store, "P", 100)
        store.add_offer(make_offer())
        await orchestrator.accept(FakeSession(store), "offer-1", "C")

        with pytest.raises(OfferAlreadyTerminalError):
            await orchestrator.accept(FakeSession(store), "offer-1", "C")
        assert _available(store, "P") == 50


class TestCompetingOffers:
    async def test_second_offer_for_a_traded_listing_is_refused(
        self, orchestrator, wallet, store
    ) -> None:
        await _fund(wallet, store, "P", 100)
        await _fund(wallet, store, "Q", 100)
        store.add_offer(make_offer(id="o-A", proposer_id="P"))
        store.add_offer(make_offer(id="o-B", proposer_id="Q"))

        won = await orchestrator.accept(FakeSession(store), "o-A", "C")
        with pytest.raises(SettlementFailedError, match="L-target is no longer available") as exc_info:
            await orchestrator.accept(FakeSession(store), "o-B", "C")

        assert isinstance(won, AcceptResult)
        assert exc_info.value.http_status == 409
        assert _available(store, "C") == 50
        assert (_available(store, "P"), _available(store, "Q")) == (50, 100)
        assert [store.offers[o].status for o in ("o-A", "o-B")] == ["accepted", "pending"]


class TestPurchase:
    @pytest.fixture
    def for_sale(self, store: FakeStore) -> FakeStore:
        store.add_listing(make_listing("L-zard", "S", card_name="Charizard", price_cents=10000))
        return store

    def _assert_unsold(self, store: FakeStore) -> None:
        assert store.listings["L-zard"].status == "active"
        assert store.settlements == {}
        assert "S" not in store.wallets or store.wallets["S"].pending_balance == 0

    async def test_buyer_debited_listing_sold_seller_pending(
        self, orchestrator, wallet, for_sale, publisher
    ) -> None:
        store = for_sale
        await _fund(wallet, store, "B", 15000)
        db = FakeSession(store)

        result = await orchestrator.purchase(db, "L-zard", "B")

        assert isinstance(result, PurchaseResult)
        assert result.listing.status == "sold"
        assert result.purchase.buyer_account.available_balance == 5000
        assert store.listings["L-zard"].status == "sold"
        assert _available(store, "B") == 5000
        assert store.wallets["S"].pending_balance == 9880
        assert _available(store, "S") == 0
        assert _available(store, "PLATFORM_FEE") == 120
        settlement = result.purchase.settlement
        assert (settlement.order_id, settlement.gross_amount) == (result.order_id, 10000)
        debit = result.purchase.debit_entry
        assert (debit.tx_type, debit.amount, debit.reference_type) == ("PURCHASE", -10000, "ORDER")
        assert publisher.event_types == ["order.completed"]
        assert db.commits == 1

    async def test_insufficient_funds_changes_nothing(
        self, orchestrator, wallet, for_sale, publisher
    ) -> None:
        store = for_sale
        await _fund(wallet, store, "B", 9999)

        with pytest.raises(SettlementFailedError, match="buyer has insufficient funds") as exc_info:
            await orchestrator.purchase(FakeSession(store), "L-zard", "B")

        assert exc_info.value.http_status == 422
        self._assert_unsold(store)
        assert _available(store, "B") == 9999
        assert publisher.events == []

    async def test_storage_failure_after_debit_changes_nothing(
        self, orchestrator, wallet, wallet_repo, for_sale, publisher
    ) -> None:
        store = for_sale
        await _fund(wallet, store, "B", 15000)
        tx_count = len(store.transactions)
        wallet_repo.credit_error = IntegrityError("INSERT", {}, Exception("constraint"))

        with pytest.raises(SettlementFailedError, match="storage error") as exc_info:
            await orchestrator.purchase(FakeSession(store), "L-zard", "B")

        assert exc_info.value.http_status == 500
        self._assert_unsold(store)
        assert _available(store, "B") == 15000
        assert len(store.transactions) == tx_count
        assert publisher.events == []

    async def test_sold_listing_is_not_tradeable(self, orchestrator, wallet, for_sale) -> None:
        store = for_sale
        await _fund(wallet, store, "B", 30000)
        await orchestrator.purchase(FakeSession(store), "L-zard", "B")

        with pytest.raises(ListingNotTradeableError):
            await orchestrator.purchase(FakeSession(store), "L-zard", "B")
        assert _available(store, "B") == 20000

    async def test_listing_lost_between_read_and_flip_is_409(
        self, orchestrator, wallet, listing_repo, for_sale
    ) -> None:
        store = for_sale
        await _fund(wallet, store, "B", 15000)

        async def refuse_flip(db, listing_id, from_status, to_status):  # type: ignore[no-untyped-def]
            return False

        listing_repo.set_listing_status = refuse_flip

        with pytest.raises(SettlementFailedError, match="no longer available") as exc_info:
            await orchestrator.purchase(FakeSession(store), "L-zard", "B")

        assert exc_info.value.http_status == 409
        self._assert_unsold(store)
        assert _available(store, "B") == 15000

    async def test_owner_cannot_buy_own_listing(self, orchestrator, for_sale) -> None:
        with pytest.raises(SelfTradeError):
            await orchestrator.purchase(FakeSession(for_sale), "L-zard", "S")
        assert for_sale.listings["L-zard"].status == "active"

    async def test_unknown_listing(self, orchestrator, store) -> None:
        with pytest.raises(ListingNotFoundError):
            await orchestrator.purchase(FakeSession(store), "L-missing", "B")

    async def test_transient_failure_is_retried(
        self, orchestrator, wallet, listing_repo, for_sale, delays
    ) -> None:
        store = for_sale
        await _fund(wallet, store, "B", 15000)
        listing_repo.read_errors = [OperationalError("SELECT", {}, Exception("deadlock detected"))]

        result = await orchestrator.purchase(FakeSession(store), "L-zard", "B")

        assert result.listing.status == "sold"
        assert listing_repo.read_calls == 2
        assert delays == [0.05]
        assert store.wallets["S"].pending_balance == 9880


class TestTransientRetry:
    async def test_retries_with_exponential_backoff(
        self, orchestrator, wallet, trade_repo, store, delays
    ) -> None:
        await _fund(wallet, store, "P", 100)
        store.add_offer(make_offer())
        trade_repo.lock_errors = [
            OperationalError("SELECT", {}, Exception("deadlock detected")),
            OperationalError("SELECT", {}, Exception("deadlock detected")),
        ]

        result = await orchestrator.accept(FakeSession(store), "offer-1", "C")

        assert result.offer.status == "accepted"
        assert trade_repo.lock_calls == 3
        assert delays == [0.05, 0.1]
        assert _available(store, "C") == 50

    async def test_gives_up_after_max_attempts(
        self, orchestrator, wallet, trade_repo, store, delays
    ) -> None:
        await _fund(wallet, store, "P", 100)
        store.add_offer(make_offer())
        trade_repo.lock_errors = [
            OperationalError("SELECT", {}, Exception("could not obtain lock")) for _ in range(3)
        ]

        with pytest.raises(SettlementFailedError, match="after 3 attempts") as exc_info:
            await orchestrator.accept(FakeSession(store), "offer-1", "C")

        assert exc_info.value.http_status == 500

        assert len(delays) == 2
        _assert_untouched(store)
        assert _available(store, "P") == 100
