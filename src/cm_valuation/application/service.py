"""ValuationApplicationService: comparables lookup + pure estimation.

Read-only: never commits. Trade offers call `appraise_listing` to value each
side of an offer inside their own transaction.
"""

import logging
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.cm_common.datetime_utils import utc_now
from src.cm_common.enums import CardCondition
from src.cm_listing.domain.models import Listing
from src.cm_valuation.domain.fairness import score_fairness
from src.cm_valuation.domain.models import CardIdentity, FairnessResult, ValuationResult
from src.cm_valuation.domain.repository import ComparableSalesRepositoryProtocol
from src.cm_valuation.domain.valuation import estimate_value, reconcile_value
from src.cm_valuation.infrastructure.persistence import ComparableSalesRepository

logger = logging.getLogger(__name__)


class ValuationApplicationService:
    def __init__(self, repo: ComparableSalesRepositoryProtocol | None = None) -> None:
        self._repo: ComparableSalesRepositoryProtocol = repo or ComparableSalesRepository()

    async def estimate(
        self, db: AsyncSession, card: CardIdentity, condition: str
    ) -> ValuationResult:
        since = utc_now() - timedelta(days=settings.VALUATION_LOOKBACK_DAYS)
        comparables = []
        if card.name and card.name.strip():
            comparables = await self._repo.list_comparable_sales(
                db, card.name, card.set_code, since
            )
        result = estimate_value(card, condition, comparables)
        if result.is_fallback:
            logger.info("No comparables for %r (%s); rarity fallback used", card.name, card.set_code)
        return result

    async def appraise_listing(
        self, db: AsyncSession, listing: Listing, declared_value_cents: int | None = None
    ) -> tuple[ValuationResult, int]:
        """Estimate a listed card and reconcile the declared value against it."""
        card = CardIdentity(name=listing.card_name, set_code=listing.set_code, rarity=listing.rarity)
        condition = listing.condition or CardCondition.NEAR_MINT.value
        estimate = await self.estimate(db, card, condition)
        return estimate, reconcile_value(declared_value_cents, estimate)

    def score(self, offered_cents: int, requested_cents: int) -> FairnessResult:
        return score_fairness(offered_cents, requested_cents)
