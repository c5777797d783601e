"""
Tracking URL builders.

Pure functions, no I/O: token substitution into offer destination templates
and construction of conversion pixel URLs.
"""

from typing import Dict, Optional
from urllib.parse import quote, urlencode, urlsplit, urlunsplit, parse_qsl

# Template tokens and the query parameters that always mirror them
TRACKING_PARAMS = ('click_id', 'survey_id', 'session_id')


def build_pixel_url(base_url: str, click_id: str, survey_id: str, timestamp_ms: int) -> str:
    """
    Build the conversion pixel URL.

    Args:
        base_url: Pixel endpoint, e.g. https://tracking.survai.app/pixel
        click_id: Click identifier to attribute the conversion to
        survey_id: Survey the click came from
        timestamp_ms: Cache-busting epoch milliseconds

    Returns:
        ``base?click_id=<id>&survey_id=<id>&t=<epoch-ms>``
    """
    params = urlencode({
        'click_id': click_id,
        'survey_id': survey_id,
        't': str(int(timestamp_ms))
    })
    separator = '&' if '?' in base_url else '?'
    return f"{base_url}{separator}{params}"


def build_offer_url(destination_template: str, variables: Dict[str, Optional[str]]) -> str:
    """
    Build an offer destination URL from its template.

    Every ``{click_id}``, ``{survey_id}`` and ``{session_id}`` token with a
    value is replaced by the URL-encoded value. The result then carries each
    known variable as a query parameter, whether or not the template
    mentioned it, replacing any existing parameter of the same name. Other
    parameters, repeated ones included, are kept in their original order.
    Variables without a value are neither substituted nor appended.

    Args:
        destination_template: Offer destination URL template
        variables: Mapping with click_id, survey_id and session_id

    Returns:
        Fully parameterised destination URL

    Raises:
        ValueError: If click_id is missing
    """
    if not variables.get('click_id'):
        raise ValueError("click_id is required to build an offer URL")

    url = destination_template
    for key in TRACKING_PARAMS:
        value = variables.get(key)
        if value:
            url = url.replace('{' + key + '}', quote(str(value), safe=''))

    parts = urlsplit(url)
    appended = [(key, str(variables[key])) for key in TRACKING_PARAMS if variables.get(key)]
    replaced = {key for key, _ in appended}
    query = [(key, value) for key, value in parse_qsl(parts.query, keep_blank_values=True)
             if key not in replaced]

    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query + appended), parts.fragment))
