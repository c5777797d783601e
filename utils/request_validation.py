"""
Request payload validation for the tracking API.

Routes call these before touching a service so malformed input is rejected
with a ValidationError and nothing is written.
"""

import ipaddress
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, Optional, Tuple

from services.exceptions import ValidationError

MAX_ID_LENGTH = 255
MAX_USER_AGENT_LENGTH = 1000
MAX_REVENUE = Decimal('9999999999.99')


def require_json(payload: Any) -> Dict[str, Any]:
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object", code="INVALID_BODY")
    return payload


def validate_identifier(data: Mapping[str, Any], field: str, label: str,
                        required: bool = True) -> Optional[str]:
    """A string id of 1-255 characters."""
    value = data.get(field)
    if value is None:
        if required:
            raise ValidationError(f"{label} is required", code="MISSING_FIELD")
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{label} must be a string", code="INVALID_FIELD")
    if not value.strip():
        raise ValidationError(f"{label} cannot be empty", code="INVALID_FIELD")
    if len(value) > MAX_ID_LENGTH:
        raise ValidationError(f"{label} must not exceed {MAX_ID_LENGTH} characters", code="INVALID_FIELD")
    return value


def validate_timestamp(value: Any) -> Optional[int]:
    """Optional positive integer epoch milliseconds."""
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError("Timestamp must be a number", code="INVALID_TIMESTAMP")
    if isinstance(value, float) and not value.is_integer():
        raise ValidationError("Timestamp must be an integer", code="INVALID_TIMESTAMP")
    if value <= 0:
        raise ValidationError("Timestamp must be positive", code="INVALID_TIMESTAMP")
    return int(value)


def validate_user_agent(value: Any) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError("User Agent must be a string", code="INVALID_USER_AGENT")
    if len(value) > MAX_USER_AGENT_LENGTH:
        raise ValidationError(
            f"User Agent must not exceed {MAX_USER_AGENT_LENGTH} characters",
            code="INVALID_USER_AGENT"
        )
    return value


def validate_ip_address(value: Any) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError("IP Address must be a string", code="INVALID_IP_ADDRESS")
    try:
        ipaddress.ip_address(value)
    except ValueError:
        raise ValidationError("IP Address must be a valid IP address", code="INVALID_IP_ADDRESS")
    return value


def validate_revenue(value: Any) -> Optional[Decimal]:
    """Optional non-negative amount with at most two decimal places, fitting NUMERIC(12, 2)."""
    if value is None or value == '':
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ValidationError("Revenue must be a number", code="INVALID_REVENUE")
    try:
        amount = Decimal(str(value).strip())
        if not amount.is_finite():
            raise ValidationError("Revenue must be a number", code="INVALID_REVENUE")
        if amount < 0:
            raise ValidationError("Revenue cannot be negative", code="INVALID_REVENUE")
        if amount > MAX_REVENUE:
            raise ValidationError(f"Revenue must not exceed {MAX_REVENUE}", code="INVALID_REVENUE")
        if amount != amount.quantize(Decimal('0.01')):
            raise ValidationError("Revenue must have at most 2 decimal places", code="INVALID_REVENUE")
    except InvalidOperation:
        raise ValidationError("Revenue must be a number", code="INVALID_REVENUE")
    return amount


# ===== Payloads =====

def parse_track_click(payload: Any) -> Dict[str, Any]:
    """Validated keyword arguments for TrackingService.track_click."""
    data = require_json(payload)
    return {
        'session_id': validate_identifier(data, 'sessionId', 'Session ID'),
        'question_id': validate_identifier(data, 'questionId', 'Question ID'),
        'offer_id': validate_identifier(data, 'offerId', 'Offer ID'),
        'button_variant_id': validate_identifier(data, 'buttonVariantId', 'Button variant ID'),
        'timestamp': validate_timestamp(data.get('timestamp')),
        'user_agent': validate_user_agent(data.get('userAgent')),
        'ip_address': validate_ip_address(data.get('ipAddress'))
    }


def parse_conversion(data: Mapping[str, Any]) -> Tuple[str, Optional[Decimal]]:
    """click_id and revenue from a postback query string or body."""
    return (
        validate_identifier(data, 'click_id', 'Click ID'),
        validate_revenue(data.get('revenue'))
    )


def parse_pixel_request(payload: Any) -> Tuple[str, str]:
    data = require_json(payload)
    return (
        validate_identifier(data, 'clickId', 'Click ID'),
        validate_identifier(data, 'surveyId', 'Survey ID')
    )


def parse_offer_ids(args: Any) -> Optional[List[str]]:
    """
    offerIds from a query string, as repeated parameters or one comma list.

    Returns None when the parameter is absent.

    Raises:
        ValidationError: If the parameter is present but names no offer
    """
    if 'offerIds' not in args:
        return None
    raw = args.getlist('offerIds') if hasattr(args, 'getlist') else args.get('offerIds')
    if raw is None or isinstance(raw, str):
        raw = [raw or '']

    offer_ids = []
    for value in raw:
        offer_ids.extend(part.strip() for part in str(value).split(',') if part.strip())

    if not offer_ids:
        raise ValidationError("offerIds must name at least one offer", code="INVALID_OFFER_IDS")
    for offer_id in offer_ids:
        if len(offer_id) > MAX_ID_LENGTH:
            raise ValidationError(
                f"Offer ID must not exceed {MAX_ID_LENGTH} characters", code="INVALID_OFFER_IDS"
            )
    return offer_ids
