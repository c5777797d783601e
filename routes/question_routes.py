"""Question ordering and impression endpoints."""

from flask import Blueprint, request, current_app

from utils.api_response import api_success
from utils.request_validation import validate_identifier

question_bp = Blueprint('questions', __name__, url_prefix='/api')


@question_bp.route('/surveys/<survey_id>/questions/ordered', methods=['GET'])
def get_ordered_questions(survey_id):
    """Active questions of a survey, ranked by the EPC of their offers.

    Returns:
        200: {"survey_id", "ranking": "epc"|"static", "questions": [...]}
    """
    survey_id = validate_identifier({'survey_id': survey_id}, 'survey_id', 'Survey ID')
    return api_success(current_app.services.get('question_ranker').get_ordered_questions(survey_id))


@question_bp.route('/questions/<question_id>/impressions', methods=['POST'])
def record_impression(question_id):
    """Record that a question was shown, optionally within a session."""
    question_id = validate_identifier({'question_id': question_id}, 'question_id', 'Question ID')
    data = request.get_json(silent=True) or {}
    session_id = validate_identifier(data, 'sessionId', 'Session ID', required=False)

    impression = current_app.services.get('tracking').record_impression(question_id, session_id)
    return api_success(impression, 201)
