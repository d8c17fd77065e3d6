"""002: create wallet_accounts, wallet_transactions and wallet_settlements

Revision ID: 002
Revises: 001
Create Date: 2026-10-18
"""
from typing import Sequence, Union
from alembic import op

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE wallet_accounts (
            id                  VARCHAR(64) PRIMARY KEY,
            user_id             VARCHAR(64) NOT NULL,
            available_balance   BIGINT      NOT NULL DEFAULT 0,
            pending_balance     BIGINT      NOT NULL DEFAULT 0,
            version             BIGINT      NOT NULL DEFAULT 0,
            created_at          TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at          TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_wallet_accounts_user_id           UNIQUE (user_id),
            CONSTRAINT ck_wallet_accounts_available_gte_0   CHECK (available_balance >= 0),
            CONSTRAINT ck_wallet_accounts_pending_gte_0     CHECK (pending_balance >= 0)
        );
    """)
    op.execute("""
        CREATE TRIGGER trg_wallet_accounts_updated_at
            BEFORE UPDATE ON wallet_accounts
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)
    op.execute("COMMENT ON TABLE wallet_accounts IS 'User wallets, one per user_id, all amounts in cents';")

    op.execute("""
        CREATE TABLE wallet_transactions (
            id              BIGSERIAL       PRIMARY KEY,
            wallet_id       VARCHAR(64)     NOT NULL REFERENCES wallet_accounts (id),
            user_id         VARCHAR(64)     NOT NULL,
            tx_type         VARCHAR(30)     NOT NULL,
            bucket          VARCHAR(10)     NOT NULL,
            amount          BIGINT          NOT NULL,
            balance_after   BIGINT          NOT NULL,
            related_user_id VARCHAR(64),
            reference_type  VARCHAR(30),
            reference_id    VARCHAR(64),
            status          VARCHAR(20)     NOT NULL DEFAULT 'completed',
            description     VARCHAR(500),
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_wallet_tx_type CHECK (
                tx_type IN (
                    'DEPOSIT', 'WITHDRAWAL',
                    'TRANSFER_IN', 'TRANSFER_OUT',
                    'SETTLEMENT', 'SETTLEMENT_RELEASE',
                    'FEE_REVENUE'
                )
            ),
            CONSTRAINT ck_wallet_tx_bucket CHECK (bucket IN ('AVAILABLE', 'PENDING')),
            CONSTRAINT ck_wallet_tx_status CHECK (status IN ('completed', 'pending')),
            CONSTRAINT ck_wallet_tx_amount_ne_0 CHECK (amount <> 0),
            CONSTRAINT ck_wallet_tx_balance_gte_0 CHECK (balance_after >= 0)
        );
    """)
    op.execute("CREATE INDEX idx_wallet_tx_user_id ON wallet_transactions (user_id, id DESC);")
    op.execute("CREATE INDEX idx_wallet_tx_wallet_id ON wallet_transactions (wallet_id, id);")
    op.execute("""
        CREATE INDEX idx_wallet_tx_reference
        ON wallet_transactions (reference_type, reference_id)
        WHERE reference_id IS NOT NULL;
    """)
    op.execute("COMMENT ON TABLE wallet_transactions IS 'Wallet ledger, append-only, signed amounts in cents';")

    op.execute("""
        CREATE TABLE wallet_settlements (
            id              VARCHAR(64)     PRIMARY KEY,
            order_id        VARCHAR(64)     NOT NULL,
            seller_id       VARCHAR(64)     NOT NULL,
            wallet_id       VARCHAR(64)     NOT NULL REFERENCES wallet_accounts (id),
            gross_amount    BIGINT          NOT NULL,
            fee_amount      BIGINT          NOT NULL,
            net_amount      BIGINT          NOT NULL,
            hold_until      TIMESTAMPTZ     NOT NULL,
            released_at     TIMESTAMPTZ,
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_wallet_settlements_order_id UNIQUE (order_id),
            CONSTRAINT ck_wallet_settlements_gross_gt_0 CHECK (gross_amount > 0),
            CONSTRAINT ck_wallet_settlements_fee_range CHECK (
                fee_amount >= 0 AND fee_amount <= gross_amount
            ),
            CONSTRAINT ck_wallet_settlements_net CHECK (net_amount = gross_amount - fee_amount)
        );
    """)
    op.execute("""
        CREATE INDEX idx_wallet_settlements_due
        ON wallet_settlements (hold_until)
        WHERE released_at IS NULL;
    """)
    op.execute("COMMENT ON TABLE wallet_settlements IS 'Seller payouts held in pending until hold_until, one per order_id';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS wallet_settlements CASCADE;")
    op.execute("DROP TABLE IF EXISTS wallet_transactions CASCADE;")
    op.execute("DROP TABLE IF EXISTS wallet_accounts CASCADE;")
