# tests/unit/test_trade_persistence.py
"""Unit tests for TradeOfferRepository and ListingRepository using MagicMock AsyncSession."""
import json
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from fakes import item, make_offer
from src.cm_listing.infrastructure.persistence import ListingRepository
from src.cm_trade.infrastructure.persistence import TradeOfferRepository
from src.cm_valuation.infrastructure.persistence import ComparableSalesRepository


def _offer_row(**kwargs):
    row = MagicMock()
    row.id = kwargs.get("id", "offer-1")
    row.proposer_id = "P"
    row.counterparty_id = "C"
    row.awaiting_party_id = kwargs.get("awaiting_party_id", "C")
    row.target_listing_id = "L-target"
    row.offered_items = kwargs.get("offered_items", [])
    row.cash_amount_cents = kwargs.get("cash_amount_cents", 50)
    row.offered_value_cents = 50
    row.requested_value_cents = 50
    row.fairness_score = Decimal("0.8750")
    row.fairness_label = "Fair"
    row.notes = None
    row.status = kwargs.get("status", "pending")
    row.negotiation_round = kwargs.get("negotiation_round", 1)
    row.version = kwargs.get("version", 0)
    row.expires_at = datetime.now(UTC) + timedelta(days=7)
    row.created_at = datetime.now(UTC)
    row.updated_at = datetime.now(UTC)
    return row


def _event_row(**kwargs):
    row = MagicMock()
    row.id = kwargs.get("id", 1)
    row.offer_id = "offer-1"
    row.action = kwargs.get("action", "created")
    row.actor_id = kwargs.get("actor_id", "P")
    row.negotiation_round = 1
    row.cash_amount_cents = 50
    row.fairness_score = Decimal("1.0000")
    row.created_at = datetime.now(UTC)
    return row


def _result(one=None, many=None):
    result = MagicMock()
    result.fetchone.return_value = one
    result.fetchall.return_value = many or []
    return result


@pytest.fixture
def db():
    return MagicMock()


class TestOfferMapping:
    async def test_jsonb_items_loaded_from_list(self, db) -> None:
        raw = [{"listing_id": "L2", "declared_value_cents": 900, "reconciled_value_cents": 840}]
        db.execute = AsyncMock(return_value=_result(_offer_row(offered_items=raw)))

        offer = await TradeOfferRepository().get_offer(db, "offer-1")

        assert offer is not None
        assert offer.offered_items[0].listing_id == "L2"
        assert offer.offered_items[0].reconciled_value_cents == 840
        assert offer.fairness_score == 0.875

    async def test_jsonb_items_loaded_from_text(self, db) -> None:
        raw = json.dumps([{"listing_id": "L3"}])
        db.execute = AsyncMock(return_value=_result(_offer_row(offered_items=raw)))
        offer = await TradeOfferRepository().get_offer_for_update(db, "offer-1")
        assert offer is not None
        assert offer.offered_listing_ids == ["L3"]
        assert offer.offered_items[0].declared_value_cents is None

    async def test_missing_offer(self, db) -> None:
        db.execute = AsyncMock(return_value=_result(None))
        assert await TradeOfferRepository().get_offer(db, "nope") is None


class TestWrites:
    async def test_insert_serialises_items(self, db) -> None:
        db.execute = AsyncMock(return_value=_result(_offer_row()))
        offer = make_offer(offered_items=[item("L2", 900)])

        await TradeOfferRepository().insert_offer(db, offer)

        params = db.execute.call_args[0][1]
        assert json.loads(params["offered_items"]) == [
            {"listing_id": "L2", "declared_value_cents": 900, "reconciled_value_cents": 0}
        ]

    async def test_transition_cas_miss_returns_none(self, db) -> None:
        db.execute = AsyncMock(return_value=_result(None))
        result = await TradeOfferRepository().transition_status(
            db, "offer-1", "pending", "accepted", 3
        )
        assert result is None
        assert db.execute.call_args[0][1]["expected_version"] == 3

    async def test_apply_counter_passes_expected_version(self, db) -> None:
        db.execute = AsyncMock(return_value=_result(_offer_row(negotiation_round=2, version=1)))
        updated = await TradeOfferRepository().apply_counter(db, make_offer(cash_amount_cents=80), 0)
        assert updated is not None
        assert updated.negotiation_round == 2
        params = db.execute.call_args[0][1]
        assert (params["expected_version"], params["cash_amount_cents"]) == (0, 80)

    async def test_append_event(self, db) -> None:
        db.execute = AsyncMock(return_value=_result(_event_row(action="countered", actor_id="C")))
        event = await TradeOfferRepository().append_event(db, make_offer(), "countered", "C")
        assert (event.action, event.actor_id) == ("countered", "C")


class TestListOffers:
    async def test_role_defaults_to_any(self, db) -> None:
        db.execute = AsyncMock(return_value=_result(many=[_offer_row(id="o-2"), _offer_row(id="o-1")]))
        offers = await TradeOfferRepository().list_offers(db, "P", None, None, None, 21)
        assert [o.id for o in offers] == ["o-2", "o-1"]
        assert db.execute.call_args[0][1]["role"] == "any"


class TestListingRepository:
    async def test_get_listings_skips_query_for_empty_ids(self, db) -> None:
        db.execute = AsyncMock()
        assert await ListingRepository().get_listings(db, []) == {}
        db.execute.assert_not_awaited()

    async def test_status_flip_reports_guard_result(self, db) -> None:
        db.execute = AsyncMock(side_effect=[_result(MagicMock()), _result(None)])
        repo = ListingRepository()
        assert await repo.set_listing_status(db, "L1", "active", "traded") is True
        assert await repo.set_listing_status(db, "L1", "active", "traded") is False


class TestComparableSalesRepository:
    async def test_maps_rows_and_trims_name(self, db) -> None:
        row = MagicMock(price_cents=1000, condition="near_mint", sold_at=datetime.now(UTC), source="tcg")
        db.execute = AsyncMock(return_value=_result(many=[row]))

        sales = await ComparableSalesRepository().list_comparable_sales(
            db, "  Charizard ", None, datetime.now(UTC)
        )

        assert sales[0].price_cents == 1000
        assert db.execute.call_args[0][1]["card_name"] == "Charizard"
