"""003: create trade_offers and trade_offer_history

Revision ID: 003
Revises: 002
Create Date: 2026-10-18
"""
from typing import Sequence, Union
from alembic import op

revision: str = "003"
down_revision: Union[str, None] = "002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE trade_offers (
            id                      VARCHAR(64)     PRIMARY KEY,
            proposer_id             VARCHAR(64)     NOT NULL,
            counterparty_id         VARCHAR(64)     NOT NULL,
            awaiting_party_id       VARCHAR(64)     NOT NULL,
            target_listing_id       VARCHAR(64)     NOT NULL REFERENCES listings (id),
            offered_items           JSONB           NOT NULL DEFAULT '[]'::jsonb,
            cash_amount_cents       BIGINT          NOT NULL DEFAULT 0,
            offered_value_cents     BIGINT          NOT NULL DEFAULT 0,
            requested_value_cents   BIGINT          NOT NULL DEFAULT 0,
            fairness_score          NUMERIC(5, 4)   NOT NULL,
            fairness_label          VARCHAR(30)     NOT NULL,
            notes                   VARCHAR(500),
            status                  VARCHAR(20)     NOT NULL DEFAULT 'pending',
            negotiation_round       INT             NOT NULL DEFAULT 1,
            version                 BIGINT          NOT NULL DEFAULT 0,
            expires_at              TIMESTAMPTZ     NOT NULL,
            created_at              TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at              TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_trade_offers_distinct_parties CHECK (proposer_id <> counterparty_id),
            CONSTRAINT ck_trade_offers_awaiting_party CHECK (
                awaiting_party_id IN (proposer_id, counterparty_id)
            ),
            CONSTRAINT ck_trade_offers_cash_range CHECK (
                cash_amount_cents >= 0 AND cash_amount_cents <= 1000000
            ),
            CONSTRAINT ck_trade_offers_status CHECK (
                status IN ('pending', 'accepted', 'rejected', 'countered', 'expired')
            ),
            CONSTRAINT ck_trade_offers_round_gte_1 CHECK (negotiation_round >= 1),
            CONSTRAINT ck_trade_offers_fairness_range CHECK (
                fairness_score >= 0 AND fairness_score <= 1
            ),
            CONSTRAINT ck_trade_offers_items_array CHECK (jsonb_typeof(offered_items) = 'array')
        );
    """)
    op.execute("""
        CREATE TRIGGER trg_trade_offers_updated_at
            BEFORE UPDATE ON trade_offers
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)
    op.execute("CREATE INDEX idx_trade_offers_proposer ON trade_offers (proposer_id, id DESC);")
    op.execute("CREATE INDEX idx_trade_offers_counterparty ON trade_offers (counterparty_id, id DESC);")
    op.execute("CREATE INDEX idx_trade_offers_target ON trade_offers (target_listing_id);")
    op.execute("""
        CREATE INDEX idx_trade_offers_expiry
        ON trade_offers (expires_at)
        WHERE status = 'pending';
    """)
    op.execute("COMMENT ON TABLE trade_offers IS 'Card trade offers, cash in cents, fairness_score normalised to 0..1';")

    op.execute("""
        CREATE TABLE trade_offer_history (
            id                  BIGSERIAL       PRIMARY KEY,
            offer_id            VARCHAR(64)     NOT NULL REFERENCES trade_offers (id),
            action              VARCHAR(20)     NOT NULL,
            actor_id            VARCHAR(64),
            negotiation_round   INT             NOT NULL,
            cash_amount_cents   BIGINT          NOT NULL,
            fairness_score      NUMERIC(5, 4)   NOT NULL,
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_trade_offer_history_action CHECK (
                action IN ('created', 'countered', 'accepted', 'rejected', 'expired')
            )
        );
    """)
    op.execute("CREATE INDEX idx_trade_offer_history_offer ON trade_offer_history (offer_id, id);")
    op.execute("COMMENT ON TABLE trade_offer_history IS 'Offer timeline, append-only';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS trade_offer_history CASCADE;")
    op.execute("DROP TABLE IF EXISTS trade_offers CASCADE;")
