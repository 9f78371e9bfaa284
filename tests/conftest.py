"""
Test configuration for CoachFit backend tests
"""
import os
import tempfile

# Must be in place before app.py builds its engine, limiter and session store
os.environ['DATABASE_URL'] = 'sqlite:///:memory:'
os.environ.setdefault('SECRET_KEY', 'coachfit-test-secret')
os.environ['RATELIMIT_ENABLED'] = '0'
os.environ['LOGIN_RATELIMIT_ENABLED'] = '0'
os.environ['SESSION_SECURE'] = 'false'
os.environ['SESSION_BACKEND'] = 'memory'
os.environ['SESSION_FILE_DIR'] = tempfile.mkdtemp(prefix='coachfit_sessions_')
os.environ.pop('MAILGUN_API_KEY', None)

import pytest
from app import app, db, hash_password, session_store

TEST_PASSWORD = 'correct-horse-battery'


@pytest.fixture
def test_app():
    """App bound to a fresh in-memory database"""
    app.config['TESTING'] = True
    session_store.sessions.clear()

    with app.app_context():
        db.drop_all()
        db.create_all()
        yield app
        db.session.rollback()
        db.drop_all()


@pytest.fixture
def client(test_app):
    return test_app.test_client()


@pytest.fixture
def make_user(test_app):
    """Factory for users with a known password"""
    from app import User

    def _make_user(email='client@example.com', roles=None, **fields):
        user = User(
            email=email,
            password_hash=hash_password(TEST_PASSWORD),
            roles=roles if roles is not None else ['CLIENT'],
            **fields
        )
        db.session.add(user)
        db.session.commit()
        return user

    return _make_user


def login(client, email, password=TEST_PASSWORD):
    response = client.post('/api/auth/login', json={'email': email, 'password': password})
    assert response.status_code == 200, response.get_json()
    return response


@pytest.fixture
def login_as(client):
    """Log the shared test client in as the given user"""
    def _login_as(user):
        login(client, user.email)
        return client

    return _login_as


@pytest.fixture
def admin_session(client, make_user):
    """Authenticated client for a COACH + ADMIN account"""
    admin = make_user(email='admin@coachfit.test', roles=['COACH', 'ADMIN'], name='Test Admin')
    login(client, admin.email)
    client.admin = admin
    return client
