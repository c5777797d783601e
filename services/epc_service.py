"""
EPCService - Windowed earnings-per-click metrics

Metrics are always recomputed from the click ledger. The figures cached on
the offer row are a write-back copy for fast reads; only the previous epc is
read back, to report the trend of a refresh.
"""

import logging
from typing import Optional, List

from sqlalchemy.exc import SQLAlchemyError

from repositories.click_repository import ClickRepository
from repositories.offer_repository import OfferRepository
from services.offer_eligibility import OfferEligibilityLookup
from services.common.result import Result, Success, Failure
from services.exceptions import ValidationError, NotFoundError, InternalError, EPCComputationError
from utils.clock import Clock, SystemClock
from utils.datetime_utils import days_before
from utils.epc_calculator import (
    EPCMetrics, calculate_epc, calculate_epc_delta, round_money, validate_epc_metrics
)

logger = logging.getLogger(__name__)


class EPCService:
    """Service for calculating and caching offer EPC"""

    DEFAULT_WINDOW_DAYS = 7

    def __init__(self,
                 click_repository: ClickRepository,
                 offer_repository: OfferRepository,
                 eligibility_lookup: OfferEligibilityLookup,
                 clock: Optional[Clock] = None,
                 window_days: int = DEFAULT_WINDOW_DAYS):
        """
        Initialize the EPC service.

        Args:
            click_repository: Click ledger access
            offer_repository: Offer catalog access, used for the metrics cache
            eligibility_lookup: Resolves the offers linked to a question
            clock: Source of "now" for window boundaries
            window_days: Default trailing window in days
        """
        self.click_repository = click_repository
        self.offer_repository = offer_repository
        self.eligibility_lookup = eligibility_lookup
        self.clock = clock or SystemClock()
        self.window_days = window_days

    # ===== Offer EPC =====

    def calculate_epc(self, offer_id: str, window_days: Optional[int] = None) -> EPCMetrics:
        """
        Calculate EPC metrics for an offer over the trailing window.

        Clicks with clicked_at in [now - window_days, now] are counted; both
        bounds are inclusive.

        Args:
            offer_id: Offer to calculate
            window_days: Window length, defaults to the configured window

        Returns:
            EPCMetrics, all zero when the offer has no clicks in the window

        Raises:
            ValidationError: If offer_id is empty or window_days is invalid
            NotFoundError: If the offer does not exist
        """
        self._require_offer(offer_id)
        return self._windowed_metrics(offer_id, window_days)

    def update_epc(self, offer_id: str, commit: bool = True) -> EPCMetrics:
        """
        Recompute an offer's EPC and merge it into the offer's cached metrics.

        Unrelated cached keys are preserved and last_updated is restamped.
        The change against the previously cached epc is stored as epc_trend.
        Safe to run concurrently for the same offer; the last write wins.

        Args:
            offer_id: Offer to refresh
            commit: Commit the write-back; pass False to stay inside a
                caller's transaction

        Raises:
            NotFoundError: If the offer does not exist
            EPCComputationError: If the recomputed metrics are inconsistent
            InternalError: If the write-back fails
        """
        offer = self._require_offer(offer_id)
        metrics = self._windowed_metrics(offer_id)

        try:
            validate_epc_metrics(metrics)
        except ValueError as e:
            logger.error(f"Refusing to cache inconsistent EPC for offer {offer_id}: {e}")
            raise EPCComputationError(f"Inconsistent EPC metrics for offer {offer_id}: {e}") from e

        cached = offer.metrics if isinstance(offer.metrics, dict) else {}
        trend = calculate_epc_delta(metrics.epc, cached.get('epc') or 0)
        payload = {**metrics.to_dict(), 'epc_trend': trend}

        try:
            self.offer_repository.merge_cached_metrics(offer, payload, metrics.last_updated)
            if commit:
                self.offer_repository.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to write back EPC for offer {offer_id}: {e}")
            raise InternalError(f"Failed to update EPC for offer {offer_id}") from e

        logger.info(f"Updated EPC for offer {offer_id}: epc={metrics.epc} clicks={metrics.total_clicks} "
                    f"trend={trend['trend']} delta={trend['delta']}")
        return metrics

    def _require_offer(self, offer_id: str):
        if not offer_id:
            raise ValidationError("Offer ID is required", code="MISSING_OFFER_ID")
        offer = self.offer_repository.get_by_id(offer_id)
        if offer is None:
            raise NotFoundError(f"Offer {offer_id} not found", code="OFFER_NOT_FOUND")
        return offer

    def _windowed_metrics(self, offer_id: str, window_days: Optional[int] = None) -> EPCMetrics:
        days = self.window_days if window_days is None else window_days
        now = self.clock.now()
        try:
            start = days_before(now, days)
        except ValueError as e:
            raise ValidationError(str(e), code="INVALID_WINDOW")

        totals = self.click_repository.get_window_totals(offer_id, start, now)
        return calculate_epc(
            totals.total_clicks,
            totals.total_conversions,
            totals.total_revenue,
            now=now
        )

    def offer_epc_result(self, offer_id: str) -> Result[EPCMetrics]:
        """Calculate an offer's EPC, reporting any failure as a Result."""
        try:
            return Success(self.calculate_epc(offer_id))
        except Exception as e:
            logger.warning(f"EPC calculation failed for offer {offer_id}: {e}")
            return Failure(str(e), code="EPC_COMPUTATION_FAILED", metadata={'offer_id': offer_id})

    # ===== Question EPC =====

    def question_epc_result(self, question_id: str) -> Result[float]:
        """
        Average EPC of the offers eligible for a question.

        Aggregation policy:
          * only positive EPC values are averaged
          * offers whose calculation failed are excluded, not counted as zero
          * no eligible offers, or no positive EPC, yields 0.0

        The result is a failure only when the eligible offers themselves
        cannot be resolved. The metadata reports how many offers were
        considered and how many failed so "no offers" and "offers errored"
        stay distinguishable.
        """
        try:
            offers = self.eligibility_lookup.get_eligible_offers(question_id)
        except Exception as e:
            logger.warning(f"Could not resolve eligible offers for question {question_id}: {e}")
            return Failure(
                f"Eligible offers unavailable for question {question_id}",
                code="ELIGIBILITY_LOOKUP_FAILED",
                metadata={'question_id': question_id}
            )

        results: List[Result[EPCMetrics]] = [self.offer_epc_result(offer.id) for offer in offers]
        failed = [r for r in results if r.is_failure]
        positive = [r.data.epc for r in results if r.is_success and r.data.epc > 0]

        average = round_money(sum(positive) / len(positive)) if positive else 0.0

        return Success(average, metadata={
            'question_id': question_id,
            'offers_considered': len(offers),
            'offers_failed': len(failed)
        })

    def get_question_epc(self, question_id: str) -> float:
        """Average positive EPC for a question, 0.0 when it cannot be derived."""
        return self.question_epc_result(question_id).unwrap_or(0.0)
