"""Unified error codes and custom exceptions.

Error code ranges:
  1xxx: InvalidArgument (malformed input, self-trade, bounds)
  2xxx: NotFound (offer / listing / wallet / card / deposit)
  3xxx: Unauthorized (caller is not a permitted party)
  4xxx: Trade offer state (terminal, conflict, expired)
  5xxx: Ledger / settlement / deposits
  9xxx: System
"""


class AppError(Exception):
    """Base application error."""

    def __init__(
        self,
        code: int,
        message: str,
        http_status: int = 500,
    ) -> None:
        self.code = code
        self.message = message
        self.http_status = http_status
        super().__init__(message)


# --- 1xxx: InvalidArgument ---

class InvalidArgumentError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(1001, f"Invalid argument: {detail}", 422)


class SelfTradeError(AppError):
    def __init__(self) -> None:
        super().__init__(1002, "Cannot trade with yourself", 422)


class OfferLimitExceededError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(1003, f"Offer limit exceeded: {detail}", 422)


class ListingNotTradeableError(AppError):
    def __init__(self, listing_id: str, status: str) -> None:
        super().__init__(
            1004, f"Listing {listing_id} is not available for trade (status={status})", 422
        )


# --- 2xxx: NotFound ---

class OfferNotFoundError(AppError):
    def __init__(self, offer_id: str) -> None:
        super().__init__(2001, f"Trade offer not found: {offer_id}", 404)


class ListingNotFoundError(AppError):
    def __init__(self, listing_id: str) -> None:
        super().__init__(2002, f"Listing not found: {listing_id}", 404)


class WalletNotFoundError(AppError):
    def __init__(self, user_id: str) -> None:
        super().__init__(2003, f"Wallet not found for user {user_id}", 404)


class CardNotFoundError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(2004, f"Card not found: {detail}", 404)


class DepositNotFoundError(AppError):
    def __init__(self, payment_intent_id: str) -> None:
        super().__init__(2005, f"Deposit not found for payment intent {payment_intent_id}", 404)


# --- 3xxx: Unauthorized ---

class UnauthorizedActionError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(3001, f"Not authorized: {detail}", 403)


class InvalidCredentialsError(AppError):
    def __init__(self) -> None:
        super().__init__(3002, "Invalid or expired token", 401)


# --- 4xxx: Trade offer state ---

class OfferAlreadyTerminalError(AppError):
    def __init__(self, offer_id: str, status: str) -> None:
        super().__init__(
            4001, f"Trade offer {offer_id} is already {status}", 409
        )


class ConcurrentModificationError(AppError):
    def __init__(self, offer_id: str) -> None:
        super().__init__(
            4002, f"Trade offer {offer_id} was modified concurrently, retry", 409
        )


class OfferExpiredError(AppError):
    def __init__(self, offer_id: str) -> None:
        super().__init__(4003, f"Trade offer {offer_id} has expired", 410)


# --- 5xxx: Ledger / settlement ---

class InsufficientFundsError(AppError):
    def __init__(self, required: int, available: int) -> None:
        super().__init__(
            5001,
            f"Insufficient funds: required {required} cents, available {available} cents",
            422,
        )


class SettlementFailedError(AppError):
    """Settlement did not happen and nothing moved.

    Business rejections (funds, listing gone) carry a 4xx status; only
    storage failures and exhausted retries stay 500.
    """

    def __init__(self, detail: str, http_status: int = 500) -> None:
        super().__init__(5002, f"Settlement failed: {detail}", http_status)


class DepositStateError(AppError):
    def __init__(self, deposit_id: str, status: str) -> None:
        super().__init__(5003, f"Deposit {deposit_id} is already {status}", 409)


# --- 9xxx: System ---

class InternalError(AppError):
    def __init__(self, detail: str = "Internal server error") -> None:
        super().__init__(9002, detail, 500)


class PaymentProviderError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(9003, f"Payment provider error: {detail}", 502)
