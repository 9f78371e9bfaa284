"""
Maintenance scripts: schema setup, migration, role grants, onboarding support tools
"""
import pytest
from sqlalchemy import text

from app import db, User, CohortMembership
from init_database import init_database
from add_onboarding_fields_migration import add_onboarding_fields
from grant_role import grant_role
from complete_onboarding import set_onboarding_complete
from seed_test_users import seed_test_users, SEED_USERS
from onboarding import resolve_onboarding
from permissions import Role


def test_init_database(test_app):
    assert init_database() is True


def test_migration_is_noop_on_current_schema(test_app):
    assert add_onboarding_fields() == []


def _legacy_users_table():
    """users table as it was before the onboarding columns, with one account"""
    db.session.execute(text("DROP TABLE users"))
    db.session.execute(text(
        "CREATE TABLE users (id INTEGER PRIMARY KEY, email VARCHAR(255) NOT NULL, "
        "name VARCHAR(120), password_hash VARCHAR(255), roles JSON, "
        "created_at DATETIME, updated_at DATETIME)"
    ))
    db.session.execute(text("INSERT INTO users (email, roles) VALUES ('legacy@example.com', '[\"CLIENT\"]')"))
    db.session.commit()


@pytest.mark.parametrize('mark_existing_complete', [True, False])
def test_migration_adds_columns_to_legacy_table(test_app, mark_existing_complete):
    _legacy_users_table()

    added = add_onboarding_fields(mark_existing_complete=mark_existing_complete)

    assert added == ['onboarding_complete', 'invited_by_coach_id', 'must_change_password', 'is_test_user']
    row = db.session.execute(text(
        "SELECT onboarding_complete, invited_by_coach_id, must_change_password, is_test_user FROM users"
    )).one()
    assert bool(row[0]) is mark_existing_complete
    assert row[1] is None
    assert bool(row[2]) is False
    assert bool(row[3]) is False
    assert add_onboarding_fields() == []


def test_grant_admin_also_grants_coach(test_app, make_user):
    user = make_user()

    roles = grant_role('CLIENT@example.com', Role.ADMIN)

    assert roles == ['CLIENT', 'COACH', 'ADMIN']
    assert db.session.get(User, user.id).roles == ['CLIENT', 'COACH', 'ADMIN']


def test_grant_role_unknown_user(test_app):
    assert grant_role('ghost@example.com', Role.COACH) is None


def test_complete_onboarding_script(test_app, make_user):
    make_user(roles=['COACH'])

    assert set_onboarding_complete('client@example.com') == '/dashboard'
    assert set_onboarding_complete('client@example.com', complete=False) == '/onboarding/coach'
    assert set_onboarding_complete('nobody@example.com') is None


def test_seed_covers_every_pending_state(test_app):
    assert seed_test_users() == len(SEED_USERS)
    assert seed_test_users() == 0

    states = set()
    for user in User.query.filter_by(is_test_user=True).all():
        state, _ = resolve_onboarding(db, User, CohortMembership, user.id)
        states.add(state.value)

    assert states == {
        'ADMIN_PENDING', 'COACH_PENDING', 'ONBOARDING_COMPLETE',
        'SELF_SIGNUP_CLIENT_PENDING', 'INVITED_CLIENT_PENDING',
    }
