"""
Offer eligibility lookup

The EPC engine needs to know which offers a question may show, but it must
not call back into the question layer. It depends on this abstract lookup
instead and the application wires in a concrete implementation.
"""

from abc import ABC, abstractmethod
from typing import List

from repositories.question_repository import QuestionRepository
from survey_database import Offer


class OfferEligibilityLookup(ABC):
    """Resolves the offers a question is allowed to show"""

    @abstractmethod
    def get_eligible_offers(self, question_id: str) -> List[Offer]:
        """Return the ACTIVE offers eligible for ``question_id``."""
        raise NotImplementedError


class QuestionOfferEligibility(OfferEligibilityLookup):
    """Eligibility backed by the question_offers link table"""

    def __init__(self, question_repository: QuestionRepository):
        self.question_repository = question_repository

    def get_eligible_offers(self, question_id: str) -> List[Offer]:
        return self.question_repository.get_eligible_offers(question_id)
