#!/usr/bin/env python3
"""
Seed one test account per onboarding state

Every account is flagged is_test_user and shares one password
(SEED_PASSWORD, default "coachfit-test-123"). Re-running is safe: existing
emails are skipped.
"""
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(os.path.abspath(__file__)), '..'))

from app import app, db, hash_password, User, Cohort, CohortMembership
from onboarding import resolve_onboarding

SEED_PASSWORD = os.environ.get('SEED_PASSWORD', 'coachfit-test-123')

SEED_USERS = [
    {'email': 'admin.pending@test.coachfit.app', 'roles': ['COACH', 'ADMIN']},
    {'email': 'coach.pending@test.coachfit.app', 'roles': ['COACH']},
    {'email': 'coach.done@test.coachfit.app', 'roles': ['COACH'], 'onboarding_complete': True},
    {'email': 'client.selfsignup@test.coachfit.app', 'roles': ['CLIENT']},
    {'email': 'client.coachinvited@test.coachfit.app', 'roles': ['CLIENT'], 'invited_by': 'coach.done@test.coachfit.app'},
    {'email': 'client.cohort@test.coachfit.app', 'roles': ['CLIENT'], 'cohort': 'Seed Cohort'},
    {'email': 'client.done@test.coachfit.app', 'roles': ['CLIENT'], 'onboarding_complete': True},
]


def _get_or_create_user(entry):
    user = User.query.filter_by(email=entry['email']).first()
    if user:
        return user, False

    user = User(
        email=entry['email'],
        name=entry['email'].split('@')[0],
        password_hash=hash_password(SEED_PASSWORD),
        roles=entry['roles'],
        onboarding_complete=entry.get('onboarding_complete', False),
        is_test_user=True,
    )
    db.session.add(user)
    db.session.flush()
    return user, True


def seed_test_users():
    created = 0
    for entry in SEED_USERS:
        user, is_new = _get_or_create_user(entry)
        created += int(is_new)
        if not is_new:
            continue

        if entry.get('invited_by'):
            coach = User.query.filter_by(email=entry['invited_by']).first()
            user.invited_by_coach_id = coach.id if coach else None

        if entry.get('cohort'):
            coach = User.query.filter_by(email='coach.done@test.coachfit.app').first()
            cohort = Cohort.query.filter_by(name=entry['cohort']).first()
            if not cohort:
                cohort = Cohort(name=entry['cohort'], coach_id=coach.id)
                db.session.add(cohort)
                db.session.flush()
            db.session.add(CohortMembership(user_id=user.id, cohort_id=cohort.id))

    db.session.commit()

    for entry in SEED_USERS:
        user = User.query.filter_by(email=entry['email']).first()
        state, route = resolve_onboarding(db, User, CohortMembership, user.id)
        print(f"   - {user.email:42} {state.value:28} {route}")

    return created


if __name__ == '__main__':
    with app.app_context():
        try:
            count = seed_test_users()
            print(f"✅ Created {count} test users")
        except Exception as e:
            db.session.rollback()
            print(f"❌ Seeding failed: {e}")
            sys.exit(1)
