"""SQLAlchemy ORM model for card_sales (valuation data feed, read-only here)."""

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column

from src.cm_common.database import Base


class CardSaleORM(Base):
    __tablename__ = "card_sales"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    card_name: Mapped[str] = mapped_column(String(200), nullable=False)
    set_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    condition: Mapped[str] = mapped_column(String(20), nullable=False)
    price_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    source: Mapped[str | None] = mapped_column(String(50), nullable=True)
    sold_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
