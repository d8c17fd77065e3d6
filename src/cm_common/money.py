"""Integer arithmetic utilities for cents-based amounts.

All prices, amounts, and balances use int (cents). No float money.
"""


def validate_amount(amount: int) -> None:
    """Validate that a movement amount is a strictly positive integer."""
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValueError(f"Amount must be a positive integer number of cents, got {amount!r}")


def cents_to_display(cents: int) -> str:
    """Convert cents to display string: 6500 -> '$65.00', -1200 -> '-$12.00'."""
    if cents < 0:
        abs_cents = -cents
        return f"-${abs_cents // 100:,}.{abs_cents % 100:02d}"
    return f"${cents // 100:,}.{cents % 100:02d}"


def calculate_percentage(amount: int, rate_bps: int) -> int:
    """Percentage of an amount with ceiling division (platform never loses).

    result = ceil(amount * rate_bps / 10000)
    """
    if amount <= 0 or rate_bps == 0:
        return 0
    return (amount * rate_bps + 9999) // 10000
