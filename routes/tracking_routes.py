"""Click and conversion tracking endpoints.

TrackingError subclasses raised here or in the services are turned into
the JSON error envelope by the handlers registered in app.py.
"""

from flask import Blueprint, request, current_app

from utils.api_response import api_success
from utils.request_validation import (
    parse_track_click,
    parse_conversion,
    parse_pixel_request,
    validate_identifier,
    validate_revenue,
)

tracking_bp = Blueprint('tracking', __name__, url_prefix='/api/track')


@tracking_bp.route('/click', methods=['POST'])
def track_click():
    """Record a CTA click and return the offer redirect.

    Expected JSON payload:
    {
        "sessionId": "...",
        "questionId": "...",
        "offerId": "...",
        "buttonVariantId": "...",
        "timestamp": 1700000000000,
        "userAgent": "optional",
        "ipAddress": "optional"
    }

    Returns:
        201: {"click": {...}, "redirect_url": "..."}
        400: Validation error or inactive offer
        404: Unknown session or offer
    """
    params = parse_track_click(request.get_json(silent=True))
    if params['user_agent'] is None:
        params['user_agent'] = request.headers.get('User-Agent')
    if params['ip_address'] is None:
        params['ip_address'] = request.remote_addr

    result = current_app.services.get('tracking').track_click(**params)

    return api_success({
        'click': result['click'].to_dict(),
        'redirect_url': result['redirect_url']
    }, 201)


@tracking_bp.route('/conversion', methods=['GET', 'POST'])
def record_conversion():
    """Conversion postback, as query parameters (GET) or a JSON body (POST).

    Idempotent: a replay returns the stored record with a 200.
    """
    if request.method == 'GET':
        click_id, revenue = parse_conversion(request.args)
    else:
        click_id, revenue = parse_conversion(request.get_json(silent=True) or {})

    click = current_app.services.get('conversion').mark_conversion(click_id, revenue)
    return api_success(click.to_dict())


@tracking_bp.route('/pixel', methods=['POST'])
def generate_pixel():
    """Build the conversion pixel URL for a click."""
    click_id, survey_id = parse_pixel_request(request.get_json(silent=True))
    pixel_url = current_app.services.get('tracking').generate_pixel(click_id, survey_id)
    return api_success({'pixel_url': pixel_url})


@tracking_bp.route('/pixel/<click_id>', methods=['GET'])
def handle_pixel(click_id):
    """Pixel fire: convert the click and refresh its offer's cached EPC."""
    click_id = validate_identifier({'click_id': click_id}, 'click_id', 'Click ID')
    revenue = validate_revenue(request.args.get('revenue'))

    click = current_app.services.get('conversion').mark_conversion_with_epc_update(click_id, revenue)
    return api_success({'converted': bool(click.converted), 'click_id': click.click_id})


@tracking_bp.route('/analytics', methods=['GET'])
def get_analytics():
    """All-time ledger totals, optionally for one offer."""
    offer_id = validate_identifier(request.args, 'offerId', 'Offer ID', required=False)
    return api_success(current_app.services.get('tracking').get_analytics(offer_id))
