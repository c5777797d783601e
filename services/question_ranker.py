"""
QuestionRanker - Orders survey questions by the EPC of their offers
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from repositories.question_repository import QuestionRepository
from services.epc_service import EPCService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RankedQuestion:
    """A question with the EPC it was ranked by"""
    question: Any
    epc: float


@dataclass(frozen=True)
class QuestionRanking:
    questions: List[RankedQuestion]
    fallback: bool = False

    @property
    def ordered(self) -> List[Any]:
        return [ranked.question for ranked in self.questions]


def _static_order(question) -> int:
    return question.order if question.order is not None else 0


class QuestionRanker:
    """
    Ranks questions by EPC descending, ties broken by static order ascending.

    If the EPC of any question cannot be computed the whole batch is sorted
    by static order instead. A ranking is never partly EPC-based and partly
    static.
    """

    def __init__(self, epc_service: EPCService,
                 question_repository: Optional[QuestionRepository] = None):
        self.epc_service = epc_service
        self.question_repository = question_repository

    def rank(self, questions: Sequence[Any]) -> QuestionRanking:
        """
        Rank questions, reporting whether the static fallback was used.

        Args:
            questions: Objects exposing ``id`` and a static ``order``
        """
        questions = list(questions)
        scored = []

        try:
            for question in questions:
                result = self.epc_service.question_epc_result(question.id)
                if result.is_failure:
                    raise RuntimeError(result.error)
                scored.append(RankedQuestion(question=question, epc=result.data))
        except Exception as e:
            logger.warning(f"EPC ranking unavailable, falling back to static order: {e}")
            fallback = sorted(questions, key=_static_order)
            return QuestionRanking(
                questions=[RankedQuestion(question=q, epc=0.0) for q in fallback],
                fallback=True
            )

        scored.sort(key=lambda ranked: (-ranked.epc, _static_order(ranked.question)))
        return QuestionRanking(questions=scored)

    def order_questions_by_epc(self, questions: Sequence[Any]) -> List[Any]:
        """Questions in ranked order."""
        return self.rank(questions).ordered

    def get_ordered_questions(self, survey_id: str) -> Dict[str, Any]:
        """Ranked active questions of a survey with the EPC used for each."""
        ranking = self.rank(self.question_repository.get_questions_for_survey(survey_id))
        return {
            'survey_id': survey_id,
            'ranking': 'static' if ranking.fallback else 'epc',
            'questions': [
                {**ranked.question.to_dict(), 'epc': ranked.epc}
                for ranked in ranking.questions
            ]
        }
