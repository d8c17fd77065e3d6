"""ORM models stay in step with the Alembic migrations they mirror."""

from sqlalchemy import BigInteger

from src.cm_common.database import Base
from src.cm_listing.infrastructure.db_models import ListingORM
from src.cm_trade.infrastructure.db_models import TradeOfferHistoryORM, TradeOfferORM
from src.cm_valuation.infrastructure.db_models import CardSaleORM
from src.cm_wallet.infrastructure.db_models import (
    WalletAccountORM,
    WalletDepositORM,
    WalletSettlementORM,
    WalletTransactionORM,
)


def test_all_tables_registered_on_metadata() -> None:
    assert set(Base.metadata.tables) >= {
        "listings",
        "card_sales",
        "wallet_accounts",
        "wallet_transactions",
        "wallet_settlements",
        "wallet_deposits",
        "trade_offers",
        "trade_offer_history",
    }


def test_money_columns_are_bigint_cents() -> None:
    columns = [
        WalletAccountORM.__table__.c.available_balance,
        WalletAccountORM.__table__.c.pending_balance,
        WalletTransactionORM.__table__.c.amount,
        WalletSettlementORM.__table__.c.net_amount,
        WalletDepositORM.__table__.c.amount,
        TradeOfferORM.__table__.c.cash_amount_cents,
        TradeOfferHistoryORM.__table__.c.cash_amount_cents,
    ]
    for column in columns:
        assert isinstance(column.type, BigInteger), column.name


def test_unique_keys() -> None:
    assert WalletAccountORM.__table__.c.user_id.unique is True
    assert WalletSettlementORM.__table__.c.order_id.unique is True
    assert WalletDepositORM.__table__.c.payment_intent_id.unique is True


def test_offer_version_column_present() -> None:
    assert "version" in TradeOfferORM.__table__.c
    assert "updated_at" not in TradeOfferHistoryORM.__table__.c


def test_listing_and_sales_tables() -> None:
    assert ListingORM.__tablename__ == "listings"
    assert "sold_at" in CardSaleORM.__table__.c
