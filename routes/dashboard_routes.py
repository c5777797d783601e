"""Dashboard read endpoints."""

from flask import Blueprint, request, current_app

from utils.api_response import api_success
from utils.request_validation import parse_offer_ids

dashboard_bp = Blueprint('dashboard', __name__, url_prefix='/api/dashboard')


def _filters():
    return current_app.services.get('dashboard').build_filters(
        time_range=request.args.get('timeRange'),
        offer_ids=parse_offer_ids(request.args),
        min_epc=request.args.get('minEPC')
    )


@dashboard_bp.route('/metrics', methods=['GET'])
def get_dashboard_metrics():
    """Offer rows, question rows and summary from one snapshot.

    Query parameters:
        timeRange: last24h | last7d | last30d
        offerIds: repeated or comma separated offer ids
        minEPC: minimum EPC an offer row must reach
    """
    filters = _filters()
    return api_success(current_app.services.get('dashboard').get_dashboard_metrics(filters))


@dashboard_bp.route('/offers', methods=['GET'])
def get_offer_metrics():
    filters = _filters()
    rows = current_app.services.get('dashboard').aggregate_offer_metrics(filters)
    return api_success({'offer_metrics': [row.to_dict() for row in rows]})


@dashboard_bp.route('/questions', methods=['GET'])
def get_question_metrics():
    filters = _filters()
    rows = current_app.services.get('dashboard').aggregate_question_metrics(filters)
    return api_success({'question_metrics': [row.to_dict() for row in rows]})


@dashboard_bp.route('/summary', methods=['GET'])
def get_summary():
    filters = _filters()
    dashboard = current_app.services.get('dashboard')
    return api_success({'summary': dashboard.calculate_dashboard_summary(
        dashboard.aggregate_offer_metrics(filters)
    )})


@dashboard_bp.route('/health', methods=['GET'])
def dashboard_health():
    return api_success(current_app.services.get('dashboard').check_health())
