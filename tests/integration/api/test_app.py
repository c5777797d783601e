"""
Integration tests for application-level behaviour: health, request ids and error envelopes
"""

import pytest

pytestmark = pytest.mark.integration


def test_health(client):
    response = client.get('/health')

    assert response.status_code == 200
    assert response.get_json() == {'status': 'healthy', 'service': 'survai-tracking', 'database': 'connected'}


def test_request_id_is_echoed(client):
    response = client.get('/health', headers={'X-Request-ID': 'req-123'})

    assert response.headers['X-Request-ID'] == 'req-123'


def test_request_id_is_generated(client):
    response = client.get('/health')

    assert response.headers.get('X-Request-ID')


def test_unknown_route_uses_error_envelope(client):
    response = client.get('/api/nothing-here')

    assert response.status_code == 404
    body = response.get_json()
    assert body['success'] is False
    assert body['error']['code'] == 'NOT_FOUND'


def test_wrong_method_uses_error_envelope(client):
    response = client.get('/api/track/click')

    assert response.status_code == 405
    assert response.get_json()['error']['code'] == 'METHOD_NOT_ALLOWED'
