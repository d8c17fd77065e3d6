"""001: create shared functions, listings and card_sales tables

Revision ID: 001
Revises:
Create Date: 2026-10-18
"""
from typing import Sequence, Union
from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE OR REPLACE FUNCTION fn_update_timestamp()
        RETURNS TRIGGER AS $$
        BEGIN
            NEW.updated_at = NOW();
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
    """)
    op.execute("""
        CREATE TABLE listings (
            id              VARCHAR(64)     PRIMARY KEY,
            owner_id        VARCHAR(64)     NOT NULL,
            status          VARCHAR(20)     NOT NULL DEFAULT 'active',
            card_name       VARCHAR(200)    NOT NULL,
            set_code        VARCHAR(50),
            rarity          VARCHAR(50),
            condition       VARCHAR(20),
            price_cents     BIGINT          NOT NULL DEFAULT 0,
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_listings_status CHECK (
                status IN ('active', 'reserved', 'traded', 'sold', 'inactive')
            ),
            CONSTRAINT ck_listings_price_gte_0 CHECK (price_cents >= 0)
        );
    """)
    op.execute("""
        CREATE TRIGGER trg_listings_updated_at
            BEFORE UPDATE ON listings
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)
    op.execute("CREATE INDEX idx_listings_owner_status ON listings (owner_id, status);")
    op.execute("COMMENT ON TABLE listings IS 'Card listings, owned by the listing service; status flipped to traded on accept';")

    op.execute("""
        CREATE TABLE card_sales (
            id              BIGSERIAL       PRIMARY KEY,
            card_name       VARCHAR(200)    NOT NULL,
            set_code        VARCHAR(50),
            condition       VARCHAR(20)     NOT NULL,
            price_cents     BIGINT          NOT NULL,
            source          VARCHAR(50),
            sold_at         TIMESTAMPTZ     NOT NULL,
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_card_sales_price_gt_0 CHECK (price_cents > 0)
        );
    """)
    op.execute("""
        CREATE INDEX idx_card_sales_name_sold
        ON card_sales (lower(card_name), sold_at DESC);
    """)
    op.execute("COMMENT ON TABLE card_sales IS 'Completed sales feed used as valuation comparables, amounts in cents';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS card_sales CASCADE;")
    op.execute("DROP TABLE IF EXISTS listings CASCADE;")
    op.execute("DROP FUNCTION IF EXISTS fn_update_timestamp();")
