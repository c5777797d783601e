"""
ClickRepository - Data access layer for the click ledger
Handles appends, the one-way conversion update and windowed aggregates
"""

from typing import Optional, Dict, Any, Iterable
from datetime import datetime
from decimal import Decimal
from dataclasses import dataclass
from sqlalchemy import func, case
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
from repositories.base_repository import BaseRepository
from survey_database import ClickTrack
from services.enums import ClickStatus
from utils.datetime_utils import utc_now, ensure_utc
import logging

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClickTotals:
    """Raw ledger totals for one slice of clicks"""
    total_clicks: int = 0
    total_conversions: int = 0
    total_revenue: Decimal = Decimal('0')


def _to_decimal(value) -> Decimal:
    if value is None:
        return Decimal('0')
    return Decimal(str(value))


class ClickRepository(BaseRepository[ClickTrack]):
    """Repository for ClickTrack ledger access"""

    REQUIRED_FIELDS = ('click_id', 'offer_id', 'session_id')

    def __init__(self, session: Session):
        """Initialize repository with database session"""
        super().__init__(session, ClickTrack)

    # ===== Append =====

    def create_click(self, click_data: Dict[str, Any]) -> ClickTrack:
        """
        Append a click to the ledger as VALID and unconverted.

        Args:
            click_data: Dictionary with click attributes

        Returns:
            Created ClickTrack instance (flushed, not committed)

        Raises:
            ValueError: If required fields are missing
            SQLAlchemyError: If database operation fails
        """
        missing = [name for name in self.REQUIRED_FIELDS if not click_data.get(name)]
        if missing:
            raise ValueError(f"Missing required click fields: {', '.join(missing)}")

        data = dict(click_data)
        data['status'] = ClickStatus.VALID.value
        data['converted'] = False
        data['converted_at'] = None
        data['revenue'] = None
        data['clicked_at'] = ensure_utc(data.get('clicked_at') or utc_now())

        try:
            click = ClickTrack(**data)
            self.session.add(click)
            self.session.flush()
            logger.debug(f"Appended click {click.click_id} for offer {click.offer_id}")
            return click
        except SQLAlchemyError as e:
            logger.error(f"Error appending click for offer {data.get('offer_id')}: {e}")
            self.session.rollback()
            raise

    # ===== Lookups =====

    def get_by_click_id(self, click_id: str, refresh: bool = False) -> Optional[ClickTrack]:
        """
        Retrieve a click by its public identifier.

        Args:
            click_id: Click identifier
            refresh: Overwrite any copy already held by the session with the
                row as currently stored

        Returns:
            ClickTrack or None if not found
        """
        query = self.session.query(ClickTrack).filter(ClickTrack.click_id == click_id)
        if refresh:
            query = query.execution_options(populate_existing=True)
        return query.first()

    # ===== Conversion =====

    def mark_converted_if_unconverted(self, click_id: str,
                                      revenue: Optional[Decimal],
                                      converted_at: datetime) -> bool:
        """
        Flip a click from unconverted to converted in a single conditional UPDATE.

        The WHERE clause includes ``converted = false`` so of two concurrent
        callers exactly one matches the row; the other sees zero rows updated.

        Args:
            click_id: Click identifier
            revenue: Revenue to record, or None
            converted_at: Conversion timestamp

        Returns:
            True if this call performed the transition, False otherwise
        """
        try:
            updated = self.session.query(ClickTrack).filter(
                ClickTrack.click_id == click_id,
                ClickTrack.converted.is_(False)
            ).update({
                ClickTrack.converted: True,
                ClickTrack.converted_at: ensure_utc(converted_at),
                ClickTrack.revenue: revenue
            }, synchronize_session=False)
            self.session.flush()
            return updated == 1
        except SQLAlchemyError as e:
            logger.error(f"Error marking click {click_id} converted: {e}")
            self.session.rollback()
            raise

    # ===== Aggregates =====

    def _totals_columns(self):
        converted_flag = case((ClickTrack.converted.is_(True), 1), else_=0)
        converted_revenue = case(
            (ClickTrack.converted.is_(True), func.coalesce(ClickTrack.revenue, 0)),
            else_=0
        )
        return (
            func.count(ClickTrack.id),
            func.coalesce(func.sum(converted_flag), 0),
            func.coalesce(func.sum(converted_revenue), 0)
        )

    def get_window_totals(self, offer_id: str, start: datetime, end: datetime) -> ClickTotals:
        """
        Count clicks, conversions and converted revenue for an offer in [start, end].

        Args:
            offer_id: Offer to aggregate
            start: Inclusive lower bound on clicked_at
            end: Inclusive upper bound on clicked_at
        """
        clicks, conversions, revenue = self.session.query(*self._totals_columns()).filter(
            ClickTrack.offer_id == offer_id,
            ClickTrack.clicked_at >= ensure_utc(start),
            ClickTrack.clicked_at <= ensure_utc(end)
        ).one()

        return ClickTotals(
            total_clicks=int(clicks or 0),
            total_conversions=int(conversions or 0),
            total_revenue=_to_decimal(revenue)
        )

    def get_totals_by_offer(self, offer_ids: Iterable[str],
                            start: datetime, end: datetime) -> Dict[str, ClickTotals]:
        """
        Windowed totals for many offers in one GROUP BY query.

        Offers without clicks in the window are absent from the result.
        """
        offer_ids = list(offer_ids)
        if not offer_ids:
            return {}

        rows = self.session.query(ClickTrack.offer_id, *self._totals_columns()).filter(
            ClickTrack.offer_id.in_(offer_ids),
            ClickTrack.clicked_at >= ensure_utc(start),
            ClickTrack.clicked_at <= ensure_utc(end)
        ).group_by(ClickTrack.offer_id).all()

        return {
            offer_id: ClickTotals(
                total_clicks=int(clicks or 0),
                total_conversions=int(conversions or 0),
                total_revenue=_to_decimal(revenue)
            )
            for offer_id, clicks, conversions, revenue in rows
        }

    def count_clicks_by_question(self, question_ids: Iterable[str],
                                 start: datetime, end: datetime) -> Dict[str, int]:
        """Number of button clicks per question in [start, end]."""
        question_ids = list(question_ids)
        if not question_ids:
            return {}

        rows = self.session.query(ClickTrack.question_id, func.count(ClickTrack.id)).filter(
            ClickTrack.question_id.in_(question_ids),
            ClickTrack.clicked_at >= ensure_utc(start),
            ClickTrack.clicked_at <= ensure_utc(end)
        ).group_by(ClickTrack.question_id).all()

        return {question_id: int(count) for question_id, count in rows}

    def get_all_time_totals(self, offer_id: Optional[str] = None) -> ClickTotals:
        """Totals across the whole ledger, optionally for one offer."""
        query = self.session.query(*self._totals_columns())
        if offer_id:
            query = query.filter(ClickTrack.offer_id == offer_id)
        clicks, conversions, revenue = query.one()

        return ClickTotals(
            total_clicks=int(clicks or 0),
            total_conversions=int(conversions or 0),
            total_revenue=_to_decimal(revenue)
        )
