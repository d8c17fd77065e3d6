"""Stripe payment-intent client for card deposits."""

import logging

import httpx

from config.settings import settings
from src.cm_common.errors import PaymentProviderError
from src.cm_wallet.domain.payments import PaymentIntent

logger = logging.getLogger(__name__)


class StripePaymentsClient:
    """Creates payment intents over the provider's REST API.

    The deposit id doubles as the Idempotency-Key, so a retried request never
    opens a second intent for the same deposit.
    """

    def __init__(
        self,
        base_url: str | None = None,
        secret_key: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url or settings.PAYMENTS_API_BASE
        self.secret_key = secret_key if secret_key is not None else settings.PAYMENTS_SECRET_KEY
        self.timeout = timeout or settings.PAYMENTS_TIMEOUT_SECONDS
        self._transport = transport

    async def create_payment_intent(
        self,
        user_id: str,
        deposit_id: str,
        amount_cents: int,
        currency: str,
    ) -> PaymentIntent:
        form = {
            "amount": str(amount_cents),
            "currency": currency.lower(),
            "automatic_payment_methods[enabled]": "true",
            "metadata[type]": "wallet_deposit",
            "metadata[user_id]": user_id,
            "metadata[deposit_id]": deposit_id,
        }
        async with httpx.AsyncClient(
            base_url=self.base_url, timeout=self.timeout, transport=self._transport
        ) as client:
            try:
                response = await client.post(
                    "/v1/payment_intents",
                    data=form,
                    headers={
                        "Authorization": f"Bearer {self.secret_key}",
                        "Idempotency-Key": deposit_id,
                    },
                )
                response.raise_for_status()
                body = response.json()
                return PaymentIntent(
                    id=body["id"],
                    client_secret=body["client_secret"],
                    amount=int(body["amount"]),
                    currency=body["currency"],
                )
            except httpx.TimeoutException as e:
                logger.warning("Payment intent for deposit %s timed out", deposit_id)
                raise PaymentProviderError(f"timeout after {self.timeout}s") from e
            except httpx.HTTPStatusError as e:
                logger.warning(
                    "Payment intent for deposit %s rejected: HTTP %d",
                    deposit_id, e.response.status_code,
                )
                raise PaymentProviderError(f"HTTP {e.response.status_code}") from e
            except httpx.RequestError as e:
                raise PaymentProviderError(f"request failed: {e}") from e
            except (KeyError, ValueError, TypeError) as e:
                raise PaymentProviderError(f"invalid payment intent response: {e}") from e
