"""
Dashboard Service
Read-side rollups of the click ledger: per-offer EPC ranking, per-question
funnel stats and a global summary, all read from one consistent snapshot
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, asdict
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Tuple

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from repositories.click_repository import ClickRepository
from repositories.offer_repository import OfferRepository
from repositories.question_repository import QuestionRepository
from services.enums import TimeRange
from services.epc_service import EPCService
from services.exceptions import ValidationError, InternalError
from services.offer_eligibility import QuestionOfferEligibility
from utils.clock import Clock, SystemClock, FrozenClock
from utils.datetime_utils import days_before, format_utc_iso
from utils.epc_calculator import calculate_epc, calculate_epc_ranking, round_money

logger = logging.getLogger(__name__)


# ===== Filters and rows =====

@dataclass(frozen=True)
class DashboardFilters:
    """Scope of one dashboard request"""
    time_range: TimeRange = TimeRange.LAST_7D
    offer_ids: Optional[Tuple[str, ...]] = None
    min_epc: Optional[float] = None

    @classmethod
    def from_params(cls, time_range: Optional[str] = None,
                    offer_ids: Optional[Iterable[str]] = None,
                    min_epc: Any = None,
                    default_time_range: str = TimeRange.LAST_7D.value) -> 'DashboardFilters':
        """
        Build filters from raw request values.

        Raises:
            ValidationError: On an unknown time range, a malformed offer id
                list or a negative or non-numeric minimum EPC
        """
        try:
            parsed_range = TimeRange(time_range or default_time_range)
        except ValueError:
            allowed = ', '.join(r.value for r in TimeRange)
            raise ValidationError(f"timeRange must be one of: {allowed}", code="INVALID_TIME_RANGE")

        parsed_ids = None
        if offer_ids is not None:
            parsed_ids = tuple(offer_ids)
            if any(not isinstance(i, str) or not i.strip() or len(i) > 255 for i in parsed_ids):
                raise ValidationError("offerIds must be non-empty strings", code="INVALID_OFFER_IDS")

        parsed_min = None
        if min_epc is not None and min_epc != '':
            if isinstance(min_epc, bool):
                raise ValidationError("minEPC must be a number", code="INVALID_MIN_EPC")
            try:
                parsed_min = float(min_epc)
            except (TypeError, ValueError):
                raise ValidationError("minEPC must be a number", code="INVALID_MIN_EPC")
            if parsed_min != parsed_min or parsed_min < 0:
                raise ValidationError("minEPC cannot be negative", code="INVALID_MIN_EPC")

        return cls(time_range=parsed_range, offer_ids=parsed_ids, min_epc=parsed_min)


@dataclass(frozen=True)
class OfferPerformance:
    offer_id: str
    title: str
    category: str
    status: str
    total_clicks: int
    total_conversions: int
    total_revenue: float
    conversion_rate: float
    epc: float
    last_updated: datetime
    rank: int = 0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['last_updated'] = format_utc_iso(self.last_updated)
        return data


@dataclass(frozen=True)
class QuestionMetrics:
    question_id: str
    text: str
    order: int
    impressions: int
    button_clicks: int
    skips: int
    skip_rate: float
    click_through_rate: float
    average_epc: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ===== Snapshot plumbing =====

@dataclass
class DashboardSnapshot:
    """Repositories bound to a single read transaction, plus the instant it was taken"""
    click_repository: ClickRepository
    offer_repository: OfferRepository
    question_repository: QuestionRepository
    epc_service: EPCService
    now: datetime


def build_snapshot(session: Session, now: datetime, window_days: int) -> DashboardSnapshot:
    """Bind repositories and an EPC service to one session and one instant."""
    click_repository = ClickRepository(session)
    offer_repository = OfferRepository(session)
    question_repository = QuestionRepository(session)
    epc_service = EPCService(
        click_repository,
        offer_repository,
        QuestionOfferEligibility(question_repository),
        clock=FrozenClock(now),
        window_days=window_days
    )
    return DashboardSnapshot(click_repository, offer_repository, question_repository, epc_service, now)


def snapshot_session_scope(db, isolation_level: str = 'REPEATABLE READ') -> Callable[[], Any]:
    """
    Return a factory of read-only sessions running at ``isolation_level``.

    SQLite has no configurable isolation level and serialises writers, so
    there the application's own session is used as is.
    """
    @contextmanager
    def scope() -> Iterator[Session]:
        engine = db.engine
        if engine.dialect.name == 'sqlite':
            yield db.session
            return

        connection = engine.connect().execution_options(isolation_level=isolation_level)
        session = Session(bind=connection)
        try:
            yield session
        finally:
            session.rollback()
            session.close()
            connection.close()

    return scope


class DashboardService:
    """Service for dashboard metrics using Repository Pattern"""

    def __init__(self,
                 session_scope: Callable[[], Any],
                 clock: Optional[Clock] = None,
                 snapshot_factory: Callable[[Session, datetime, int], DashboardSnapshot] = build_snapshot,
                 default_time_range: str = TimeRange.LAST_7D.value):
        """
        Args:
            session_scope: Callable returning a context manager that yields
                the session every aggregation of one request reads through
            clock: Source of "now" for the reporting window
            snapshot_factory: Builds repositories bound to a session
            default_time_range: Time range used when a request names none
        """
        self.session_scope = session_scope
        self.clock = clock or SystemClock()
        self.snapshot_factory = snapshot_factory
        self.default_time_range = default_time_range

    @contextmanager
    def snapshot(self, filters: DashboardFilters) -> Iterator[DashboardSnapshot]:
        with self.session_scope() as session:
            yield self.snapshot_factory(session, self.clock.now(), filters.time_range.days)

    def build_filters(self, time_range=None, offer_ids=None, min_epc=None) -> DashboardFilters:
        return DashboardFilters.from_params(time_range, offer_ids, min_epc,
                                            default_time_range=self.default_time_range)

    @staticmethod
    def _window_start(filters: DashboardFilters, now: datetime) -> datetime:
        return days_before(now, filters.time_range.days)

    def get_time_range(self, filters: DashboardFilters, now: datetime) -> Dict[str, str]:
        return {
            'start_date': format_utc_iso(self._window_start(filters, now)),
            'end_date': format_utc_iso(now),
            'range': filters.time_range.label
        }

    # ===== Full dashboard =====

    def get_dashboard_metrics(self, filters: DashboardFilters) -> Dict[str, Any]:
        """
        Offer rows, question rows and the summary, all read from one snapshot
        so the summary always agrees with the offer rows returned.

        Raises:
            InternalError: If the snapshot cannot be read
        """
        try:
            with self.snapshot(filters) as snapshot:
                offer_metrics = self.aggregate_offer_metrics(filters, snapshot)
                question_metrics = self.aggregate_question_metrics(filters, snapshot)
                summary = self.calculate_dashboard_summary(offer_metrics)
                time_range = self.get_time_range(filters, snapshot.now)
        except SQLAlchemyError as e:
            logger.error(f"Failed to read dashboard metrics: {e}")
            raise InternalError("Failed to get dashboard metrics") from e

        return {
            'offer_metrics': [row.to_dict() for row in offer_metrics],
            'question_metrics': [row.to_dict() for row in question_metrics],
            'time_range': time_range,
            'summary': summary
        }

    # ===== Offer rollup =====

    def aggregate_offer_metrics(self, filters: DashboardFilters,
                                snapshot: Optional[DashboardSnapshot] = None) -> List[OfferPerformance]:
        """
        EPC metrics for ACTIVE offers in the reporting window, ranked.

        The offer-id allow-list and the minimum EPC are applied first; the
        dense rank (1 = highest EPC) is assigned to what remains.
        """
        if snapshot is None:
            with self.snapshot(filters) as snapshot:
                return self.aggregate_offer_metrics(filters, snapshot)

        start = self._window_start(filters, snapshot.now)
        offers = snapshot.offer_repository.get_active_offers(filters.offer_ids)
        totals = snapshot.click_repository.get_totals_by_offer(
            [offer.id for offer in offers], start, snapshot.now
        )

        rows = []
        for offer in offers:
            offer_totals = totals.get(offer.id)
            if offer_totals is None:
                metrics = calculate_epc(0, 0, 0, now=snapshot.now)
            else:
                metrics = calculate_epc(offer_totals.total_clicks, offer_totals.total_conversions,
                                        offer_totals.total_revenue, now=snapshot.now)
            rows.append(OfferPerformance(
                offer_id=offer.id,
                title=offer.title,
                category=offer.category,
                status=offer.status,
                total_clicks=metrics.total_clicks,
                total_conversions=metrics.total_conversions,
                total_revenue=metrics.total_revenue,
                conversion_rate=metrics.conversion_rate,
                epc=metrics.epc,
                last_updated=metrics.last_updated
            ))

        if filters.min_epc is not None:
            rows = [row for row in rows if row.epc >= filters.min_epc]

        return calculate_epc_ranking(rows)

    # ===== Question rollup =====

    def aggregate_question_metrics(self, filters: DashboardFilters,
                                   snapshot: Optional[DashboardSnapshot] = None) -> List[QuestionMetrics]:
        """
        Funnel stats per question in the reporting window.

        skips = impressions - clicks floored at zero; skip rate and
        click-through rate are percentages of impressions.
        """
        if snapshot is None:
            with self.snapshot(filters) as snapshot:
                return self.aggregate_question_metrics(filters, snapshot)

        start = self._window_start(filters, snapshot.now)
        questions = snapshot.question_repository.get_all_ordered()
        question_ids = [question.id for question in questions]

        impressions_by_question = snapshot.question_repository.count_impressions_by_question(
            question_ids, start, snapshot.now
        )
        clicks_by_question = snapshot.click_repository.count_clicks_by_question(
            question_ids, start, snapshot.now
        )

        rows = []
        for question in questions:
            impressions = impressions_by_question.get(question.id, 0)
            button_clicks = clicks_by_question.get(question.id, 0)
            skips = max(0, impressions - button_clicks)

            if impressions > 0:
                skip_rate = round_money(Decimal(skips) / Decimal(impressions) * 100)
                click_through_rate = round_money(Decimal(button_clicks) / Decimal(impressions) * 100)
            else:
                skip_rate = 0.0
                click_through_rate = 0.0

            rows.append(QuestionMetrics(
                question_id=question.id,
                text=question.text,
                order=question.order,
                impressions=impressions,
                button_clicks=button_clicks,
                skips=skips,
                skip_rate=skip_rate,
                click_through_rate=click_through_rate,
                average_epc=round_money(snapshot.epc_service.get_question_epc(question.id))
            ))

        return rows

    # ===== Summary =====

    def calculate_dashboard_summary(self, offer_metrics: List[OfferPerformance]) -> Dict[str, Any]:
        """
        Totals across the given offer rows.

        average_epc is the unweighted mean of the rows' EPC, so a low-volume
        offer counts as much as a high-volume one. top_performing_offer is
        the first row with the highest EPC, or None when there are no rows.
        """
        total_offers = len(offer_metrics)
        total_clicks = sum(row.total_clicks for row in offer_metrics)
        total_conversions = sum(row.total_conversions for row in offer_metrics)
        total_revenue = sum((Decimal(str(row.total_revenue)) for row in offer_metrics), Decimal('0'))

        if total_offers:
            epc_sum = sum((Decimal(str(row.epc)) for row in offer_metrics), Decimal('0'))
            average_epc = round_money(epc_sum / total_offers)
        else:
            average_epc = 0.0

        top = None
        for row in offer_metrics:
            if top is None or row.epc > top.epc:
                top = row

        return {
            'total_offers': total_offers,
            'total_clicks': total_clicks,
            'total_conversions': total_conversions,
            'total_revenue': round_money(total_revenue),
            'average_epc': average_epc,
            'top_performing_offer': top.to_dict() if top else None
        }

    # ===== Health =====

    def check_health(self) -> Dict[str, Any]:
        """
        Probe the read path.

        Raises:
            InternalError: If the database cannot be reached
        """
        try:
            with self.session_scope() as session:
                session.execute(text('SELECT 1'))
        except SQLAlchemyError as e:
            logger.error(f"Dashboard health check failed: {e}")
            raise InternalError("Dashboard database unavailable") from e

        return {'status': 'healthy', 'checked_at': format_utc_iso(self.clock.now())}
