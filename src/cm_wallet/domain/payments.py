"""Payments collaborator Protocol.

Card deposits are collected by an external provider. The wallet only asks it
for a payment intent; the balance moves when the provider's confirmation
reaches the internal deposit webhook.
"""

from dataclasses import dataclass
from typing import Protocol


@dataclass
class PaymentIntent:
    id: str
    client_secret: str
    amount: int      # cents
    currency: str


class PaymentsCollaboratorProtocol(Protocol):
    async def create_payment_intent(
        self,
        user_id: str,
        deposit_id: str,
        amount_cents: int,
        currency: str,
    ) -> PaymentIntent: ...
