"""
Repository Layer - Data access for the click ledger, offer and question catalogs
"""

from .base_repository import BaseRepository
from .click_repository import ClickRepository, ClickTotals
from .offer_repository import OfferRepository
from .question_repository import QuestionRepository
from .survey_response_repository import SurveyResponseRepository

__all__ = [
    'BaseRepository',
    'ClickRepository',
    'ClickTotals',
    'OfferRepository',
    'QuestionRepository',
    'SurveyResponseRepository'
]
