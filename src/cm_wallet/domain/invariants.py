"""Ledger replay verification.

INV-1: replaying a wallet's entries in id order, each entry's balance_after
       equals the running sum of its bucket.
INV-2: the per-bucket sums equal the wallet's current available/pending
       balances.
INV-3: no running bucket balance is ever negative.
"""

import logging

from src.cm_common.enums import BalanceBucket
from src.cm_wallet.domain.models import WalletAccount, WalletTransaction

logger = logging.getLogger(__name__)


def replay_wallet_ledger(
    wallet: WalletAccount, entries: list[WalletTransaction]
) -> list[str]:
    """Return a list of human-readable violations (empty when the ledger is sound)."""
    running = {BalanceBucket.AVAILABLE.value: 0, BalanceBucket.PENDING.value: 0}
    violations: list[str] = []

    for entry in sorted(entries, key=lambda e: e.id):
        if entry.bucket not in running:
            violations.append(f"entry {entry.id}: unknown bucket {entry.bucket!r}")
            continue
        running[entry.bucket] += entry.amount
        if running[entry.bucket] != entry.balance_after:
            violations.append(
                f"INV-1 entry {entry.id}: balance_after={entry.balance_after} "
                f"!= replayed {entry.bucket}={running[entry.bucket]}"
            )
        if running[entry.bucket] < 0:
            violations.append(
                f"INV-3 entry {entry.id}: {entry.bucket} went negative ({running[entry.bucket]})"
            )

    if running[BalanceBucket.AVAILABLE.value] != wallet.available_balance:
        violations.append(
            f"INV-2 available: ledger={running[BalanceBucket.AVAILABLE.value]} "
            f"!= wallet={wallet.available_balance}"
        )
    if running[BalanceBucket.PENDING.value] != wallet.pending_balance:
        violations.append(
            f"INV-2 pending: ledger={running[BalanceBucket.PENDING.value]} "
            f"!= wallet={wallet.pending_balance}"
        )

    if violations:
        logger.error(
            "Ledger replay failed for wallet %s (user %s): %s",
            wallet.id, wallet.user_id, "; ".join(violations),
        )
    else:
        logger.debug("Ledger replay OK: wallet=%s entries=%d", wallet.id, len(entries))
    return violations
