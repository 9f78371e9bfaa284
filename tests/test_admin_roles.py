"""
Admin role editor and audit log
"""
import pytest

from app import db, User, AdminAction


def patch_roles(client, user_id, action, role):
    return client.patch(f'/api/admin/users/{user_id}/roles', json={'action': action, 'role': role})


def test_requires_admin(client, make_user, login_as):
    target = make_user(email='target@example.com')
    login_as(make_user(email='coach@example.com', roles=['COACH']))

    response = patch_roles(client, target.id, 'add', 'COACH')

    assert response.status_code == 403
    assert response.get_json()['code'] == 'ADMIN_REQUIRED'


def test_requires_session(client):
    assert patch_roles(client, 1, 'add', 'COACH').status_code == 401


def test_add_coach_role(admin_session, make_user):
    target = make_user(email='target@example.com')

    response = patch_roles(admin_session, target.id, 'add', 'COACH')

    assert response.status_code == 200
    assert response.get_json()['user']['roles'] == ['CLIENT', 'COACH']


def test_cannot_add_existing_role(admin_session, make_user):
    target = make_user(email='target@example.com', roles=['COACH'])

    response = patch_roles(admin_session, target.id, 'add', 'COACH')

    assert response.status_code == 400


def test_admin_only_for_coaches(admin_session, make_user):
    target = make_user(email='target@example.com')

    response = patch_roles(admin_session, target.id, 'add', 'ADMIN')

    assert response.status_code == 400
    assert 'not a coach' in response.get_json()['error']


def test_cannot_remove_own_admin(admin_session):
    response = patch_roles(admin_session, admin_session.admin.id, 'remove', 'ADMIN')

    assert response.status_code == 400
    assert 'own admin' in response.get_json()['error']


def test_cannot_remove_coach_from_admin(admin_session, make_user):
    target = make_user(email='target@example.com', roles=['COACH', 'ADMIN'])

    response = patch_roles(admin_session, target.id, 'remove', 'COACH')

    assert response.status_code == 400


def test_removing_last_role_falls_back_to_client(admin_session, make_user):
    target = make_user(email='target@example.com', roles=['COACH'])

    response = patch_roles(admin_session, target.id, 'remove', 'COACH')

    assert response.status_code == 200
    assert db.session.get(User, target.id).roles == ['CLIENT']


@pytest.mark.parametrize('payload', [
    {'action': 'add', 'role': 'CLIENT'},
    {'action': 'toggle', 'role': 'COACH'},
    {'action': 'add'},
    {'action': 'add', 'role': 'COACH', 'extra': True},
])
def test_invalid_payloads(admin_session, make_user, payload):
    target = make_user(email='target@example.com')

    response = admin_session.patch(f'/api/admin/users/{target.id}/roles', json=payload)

    assert response.status_code == 400
    assert response.get_json()['code'] == 'INVALID_REQUEST'


def test_unknown_user(admin_session):
    assert patch_roles(admin_session, 9999, 'add', 'COACH').status_code == 404


def test_role_change_is_audited(admin_session, make_user):
    target = make_user(email='target@example.com')

    patch_roles(admin_session, target.id, 'add', 'COACH')

    entry = AdminAction.query.filter_by(action_type='ADMIN_UPDATE_USER_ROLES').one()
    assert entry.admin_id == admin_session.admin.id
    assert entry.target_id == str(target.id)
    assert entry.details['role'] == 'COACH'
    assert entry.details['actor_email'] == 'admin@coachfit.test'
    assert entry.details['actor_roles'] == ['COACH', 'ADMIN']


def test_audit_log_listing(admin_session, make_user):
    first = make_user(email='first@example.com')
    second = make_user(email='second@example.com', roles=['COACH'])
    patch_roles(admin_session, first.id, 'add', 'COACH')
    patch_roles(admin_session, second.id, 'add', 'ADMIN')

    response = admin_session.get('/api/admin/audit-log?limit=1')

    assert response.status_code == 200
    body = response.get_json()
    assert body['limit'] == 1
    assert len(body['actions']) == 1
    assert body['actions'][0]['target_id'] == str(second.id)


def test_audit_log_limit_is_capped(admin_session):
    body = admin_session.get('/api/admin/audit-log?limit=5000').get_json()
    assert body['limit'] == 200
