#!/usr/bin/env python3
"""
Mark a user's onboarding as complete (support tool)

Usage: python scripts/complete_onboarding.py <email> [--reset]
"""
import os
import sys
import argparse

sys.path.insert(0, os.path.join(os.path.dirname(os.path.abspath(__file__)), '..'))

from app import app, db, User, CohortMembership
from onboarding import resolve_onboarding


def set_onboarding_complete(email, complete=True):
    """Returns the user's onboarding route after the change, or None if no such user"""
    user = User.query.filter_by(email=email.strip().lower()).first()
    if not user:
        return None

    user.onboarding_complete = complete
    db.session.commit()
    _, route = resolve_onboarding(db, User, CohortMembership, user.id)
    return route


def main():
    parser = argparse.ArgumentParser(description='Mark a user as onboarded')
    parser.add_argument('email', help='Account email')
    parser.add_argument('--reset', action='store_true', help='Send the user back through onboarding instead')
    args = parser.parse_args()

    with app.app_context():
        route = set_onboarding_complete(args.email, complete=not args.reset)

    if route is None:
        print(f"❌ No user with email {args.email}")
        return 1

    print(f"✅ onboarding_complete={not args.reset} for {args.email} (next route: {route})")
    return 0


if __name__ == '__main__':
    sys.exit(main())
