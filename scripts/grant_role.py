#!/usr/bin/env python3
"""
Grant a role to an existing user from the command line

Usage: python scripts/grant_role.py <email> [CLIENT|COACH|ADMIN]

Granting ADMIN also grants COACH, since the admin console only accepts
admins who are coaches.
"""
import os
import sys
import argparse

sys.path.insert(0, os.path.join(os.path.dirname(os.path.abspath(__file__)), '..'))

from app import app, db, User
from permissions import Role


def grant_role(email, role):
    """Returns the user's roles after the grant, or None if no such user"""
    user = User.query.filter_by(email=email.strip().lower()).first()
    if not user:
        return None

    roles = list(user.roles or [])
    wanted = [Role.COACH.value, Role.ADMIN.value] if role is Role.ADMIN else [role.value]
    for value in wanted:
        if value not in roles:
            roles.append(value)

    user.roles = roles
    db.session.commit()
    return roles


def main():
    parser = argparse.ArgumentParser(description='Grant a role to a user')
    parser.add_argument('email', help='Account email')
    parser.add_argument('role', nargs='?', default=Role.ADMIN.value, choices=[r.value for r in Role])
    args = parser.parse_args()

    with app.app_context():
        roles = grant_role(args.email, Role(args.role))

    if roles is None:
        print(f"❌ No user with email {args.email}")
        return 1

    print(f"✅ {args.email} now has roles: {', '.join(roles)}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
