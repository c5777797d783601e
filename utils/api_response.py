"""JSON envelopes shared by every API blueprint."""

from flask import jsonify

from services.exceptions import TrackingError
from utils.datetime_utils import format_utc_iso


def api_success(data, status_code: int = 200):
    return jsonify({
        'success': True,
        'data': data,
        'timestamp': format_utc_iso()
    }), status_code


def api_error(error: TrackingError):
    return jsonify({
        'success': False,
        'error': error.to_dict(),
        'timestamp': format_utc_iso()
    }), error.status_code
