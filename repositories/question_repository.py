"""
QuestionRepository - Data access layer for questions, their offer links and impressions
"""

from typing import List, Optional, Dict, Iterable
from datetime import datetime
from sqlalchemy import func, desc
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
from repositories.base_repository import BaseRepository
from survey_database import Question, QuestionOffer, QuestionImpression, Offer
from services.enums import OfferStatus, QuestionStatus
from utils.datetime_utils import utc_now, ensure_utc
import logging

logger = logging.getLogger(__name__)


class QuestionRepository(BaseRepository[Question]):
    """Repository for Question data access"""

    def __init__(self, session: Session):
        """Initialize repository with database session"""
        super().__init__(session, Question)

    def get_questions_for_survey(self, survey_id: str, active_only: bool = True) -> List[Question]:
        """Questions of a survey in static order."""
        query = self.session.query(Question).filter(Question.survey_id == survey_id)
        if active_only:
            query = query.filter(Question.status == QuestionStatus.ACTIVE.value)
        return query.order_by(Question.order.asc(), Question.id).all()

    def get_all_ordered(self) -> List[Question]:
        """Every question in static order."""
        return self.session.query(Question).order_by(Question.order.asc(), Question.id).all()

    # ===== Offer eligibility =====

    def get_linked_offer_ids(self, question_id: str) -> List[str]:
        """Offer ids explicitly linked to a question, regardless of status."""
        rows = self.session.query(QuestionOffer.offer_id).filter(
            QuestionOffer.question_id == question_id
        ).all()
        return [row[0] for row in rows]

    def get_eligible_offers(self, question_id: str) -> List[Offer]:
        """
        ACTIVE offers a question may show.

        Explicitly linked offers when the question has links, otherwise every
        ACTIVE offer. Newest offers first.
        """
        query = self.session.query(Offer).filter(Offer.status == OfferStatus.ACTIVE.value)

        linked_ids = self.get_linked_offer_ids(question_id)
        if linked_ids:
            query = query.filter(Offer.id.in_(linked_ids))

        return query.order_by(desc(Offer.created_at), Offer.id).all()

    def link_offer(self, question_id: str, offer_id: str) -> QuestionOffer:
        """Make an offer eligible for a question."""
        try:
            link = QuestionOffer(question_id=question_id, offer_id=offer_id)
            self.session.add(link)
            self.session.flush()
            return link
        except SQLAlchemyError as e:
            logger.error(f"Error linking offer {offer_id} to question {question_id}: {e}")
            self.session.rollback()
            raise

    # ===== Impressions =====

    def record_impression(self, question_id: str, response_id: Optional[str] = None,
                          shown_at: Optional[datetime] = None) -> QuestionImpression:
        """Append one impression of a question."""
        try:
            impression = QuestionImpression(
                question_id=question_id,
                response_id=response_id,
                shown_at=ensure_utc(shown_at or utc_now())
            )
            self.session.add(impression)
            self.session.flush()
            return impression
        except SQLAlchemyError as e:
            logger.error(f"Error recording impression for question {question_id}: {e}")
            self.session.rollback()
            raise

    def count_impressions_by_question(self, question_ids: Iterable[str],
                                      start: datetime, end: datetime) -> Dict[str, int]:
        """Number of impressions per question in [start, end]."""
        question_ids = list(question_ids)
        if not question_ids:
            return {}

        rows = self.session.query(QuestionImpression.question_id, func.count(QuestionImpression.id)).filter(
            QuestionImpression.question_id.in_(question_ids),
            QuestionImpression.shown_at >= ensure_utc(start),
            QuestionImpression.shown_at <= ensure_utc(end)
        ).group_by(QuestionImpression.question_id).all()

        return {question_id: int(count) for question_id, count in rows}
