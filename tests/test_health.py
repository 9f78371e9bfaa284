"""
Health check and JSON error contract
"""


def test_health_ok(client):
    response = client.get('/api/health')

    assert response.status_code == 200
    body = response.get_json()
    assert body['status'] == 'healthy'
    assert body['database'] == 'connected'
    assert body['config']['vars']['DATABASE_URL'] == 'set'


def test_security_headers(client):
    response = client.get('/api/health')

    assert response.headers['X-Content-Type-Options'] == 'nosniff'
    assert response.headers['X-Frame-Options'] == 'DENY'
    assert response.headers['Cache-Control'] == 'no-store'


def test_unknown_api_route_is_json(client):
    response = client.get('/api/nope')

    assert response.status_code == 404
    assert response.get_json() == {'ok': False, 'error': 'Endpoint not found', 'code': 'NOT_FOUND'}


def test_wrong_method_is_json(client):
    response = client.get('/api/onboarding/complete')

    assert response.status_code == 405
    assert response.get_json()['code'] == 'METHOD_NOT_ALLOWED'
