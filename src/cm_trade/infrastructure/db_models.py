"""SQLAlchemy ORM models for cm_trade.

These map to existing tables created by Alembic migrations.
DO NOT add/remove columns here without a corresponding migration.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import BigInteger, DateTime, Integer, Numeric, String, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from src.cm_common.database import Base


class TradeOfferORM(Base):
    __tablename__ = "trade_offers"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    proposer_id: Mapped[str] = mapped_column(String(64), nullable=False)
    counterparty_id: Mapped[str] = mapped_column(String(64), nullable=False)
    awaiting_party_id: Mapped[str] = mapped_column(String(64), nullable=False)
    target_listing_id: Mapped[str] = mapped_column(String(64), nullable=False)
    offered_items: Mapped[list[dict[str, Any]]] = mapped_column(JSONB, nullable=False)
    cash_amount_cents: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    offered_value_cents: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    requested_value_cents: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    fairness_score: Mapped[Decimal] = mapped_column(Numeric(5, 4), nullable=False)
    fairness_label: Mapped[str] = mapped_column(String(30), nullable=False)
    notes: Mapped[str | None] = mapped_column(String(500), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    negotiation_round: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    version: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class TradeOfferHistoryORM(Base):
    __tablename__ = "trade_offer_history"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    offer_id: Mapped[str] = mapped_column(String(64), nullable=False)
    action: Mapped[str] = mapped_column(String(20), nullable=False)
    actor_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    negotiation_round: Mapped[int] = mapped_column(Integer, nullable=False)
    cash_amount_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    fairness_score: Mapped[Decimal] = mapped_column(Numeric(5, 4), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    # NOTE: No updated_at, trade_offer_history is append-only
