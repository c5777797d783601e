"""
SurveyResponseRepository - Data access layer for respondent sessions
"""

from typing import Optional
from sqlalchemy.orm import Session
from repositories.base_repository import BaseRepository
from survey_database import SurveyResponse
import logging

logger = logging.getLogger(__name__)


class SurveyResponseRepository(BaseRepository[SurveyResponse]):
    """Repository for SurveyResponse data access"""

    def __init__(self, session: Session):
        """Initialize repository with database session"""
        super().__init__(session, SurveyResponse)

    def get_by_session_id(self, session_id: str) -> Optional[SurveyResponse]:
        """Look up a respondent session by its public session id."""
        if not session_id:
            return None
        return self.session.query(SurveyResponse).filter(
            SurveyResponse.session_id == session_id
        ).first()

    def is_session_valid(self, session_id: str) -> bool:
        """True when the session exists and can be resolved."""
        return self.get_by_session_id(session_id) is not None
