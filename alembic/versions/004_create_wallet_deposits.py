"""004: create wallet_deposits, allow PURCHASE ledger entries

Revision ID: 004
Revises: 003
Create Date: 2026-10-18
"""
from typing import Sequence, Union
from alembic import op

revision: str = "004"
down_revision: Union[str, None] = "003"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE wallet_deposits (
            id                  VARCHAR(64)     PRIMARY KEY,
            wallet_id           VARCHAR(64)     NOT NULL REFERENCES wallet_accounts (id),
            user_id             VARCHAR(64)     NOT NULL,
            amount              BIGINT          NOT NULL,
            currency            VARCHAR(3)      NOT NULL,
            payment_intent_id   VARCHAR(255)    NOT NULL,
            status              VARCHAR(20)     NOT NULL DEFAULT 'pending',
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            completed_at        TIMESTAMPTZ,
            CONSTRAINT uq_wallet_deposits_payment_intent UNIQUE (payment_intent_id),
            CONSTRAINT ck_wallet_deposits_amount_gt_0 CHECK (amount > 0),
            CONSTRAINT ck_wallet_deposits_status CHECK (
                status IN ('pending', 'completed', 'failed')
            )
        );
    """)
    op.execute("CREATE INDEX idx_wallet_deposits_user_id ON wallet_deposits (user_id, created_at DESC);")
    op.execute("COMMENT ON TABLE wallet_deposits IS 'Card deposits awaiting or holding provider confirmation';")

    op.execute("ALTER TABLE wallet_transactions DROP CONSTRAINT ck_wallet_tx_type;")
    op.execute("""
        ALTER TABLE wallet_transactions ADD CONSTRAINT ck_wallet_tx_type CHECK (
            tx_type IN (
                'DEPOSIT', 'WITHDRAWAL', 'PURCHASE',
                'TRANSFER_IN', 'TRANSFER_OUT',
                'SETTLEMENT', 'SETTLEMENT_RELEASE',
                'FEE_REVENUE'
            )
        );
    """)


def downgrade() -> None:
    op.execute("ALTER TABLE wallet_transactions DROP CONSTRAINT ck_wallet_tx_type;")
    op.execute("""
        ALTER TABLE wallet_transactions ADD CONSTRAINT ck_wallet_tx_type CHECK (
            tx_type IN (
                'DEPOSIT', 'WITHDRAWAL',
                'TRANSFER_IN', 'TRANSFER_OUT',
                'SETTLEMENT', 'SETTLEMENT_RELEASE',
                'FEE_REVENUE'
            )
        );
    """)
    op.execute("DROP TABLE IF EXISTS wallet_deposits CASCADE;")
