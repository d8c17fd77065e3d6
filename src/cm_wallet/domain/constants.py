"""Ledger constants shared by wallet and settlement code."""

# System wallet collecting platform fees (FEE_REVENUE entries)
PLATFORM_FEE_USER_ID = "PLATFORM_FEE"

# wallet_transactions.reference_type values
REF_DEPOSIT = "DEPOSIT"
REF_WITHDRAWAL = "WITHDRAWAL"
REF_TRANSFER = "TRANSFER"
REF_TRADE_OFFER = "TRADE_OFFER"
REF_SETTLEMENT = "SETTLEMENT"
REF_ORDER = "ORDER"
