#!/usr/bin/env python3
"""
Migration script to add onboarding columns to an existing users table
(onboarding_complete, invited_by_coach_id, must_change_password, is_test_user)
"""

import sys
from sqlalchemy import text, inspect

from app import app, db

# PostgreSQL syntax first, SQLite second
ONBOARDING_COLUMNS = {
    'onboarding_complete': ('BOOLEAN DEFAULT FALSE NOT NULL', 'BOOLEAN DEFAULT 0 NOT NULL'),
    'invited_by_coach_id': ('INTEGER REFERENCES users(id)', 'INTEGER REFERENCES users(id)'),
    'must_change_password': ('BOOLEAN DEFAULT FALSE NOT NULL', 'BOOLEAN DEFAULT 0 NOT NULL'),
    'is_test_user': ('BOOLEAN DEFAULT FALSE NOT NULL', 'BOOLEAN DEFAULT 0 NOT NULL'),
}


def add_onboarding_fields(mark_existing_complete=True):
    """
    Add any missing onboarding column. Accounts that existed before the
    onboarding flow are marked complete so they are not sent back through it.
    Returns the list of columns added.
    """
    with app.app_context():
        existing = {c['name'] for c in inspect(db.engine).get_columns('users')}
        is_sqlite = db.engine.dialect.name == 'sqlite'
        added = []

        try:
            for column, (pg_type, sqlite_type) in ONBOARDING_COLUMNS.items():
                if column in existing:
                    print(f"✅ {column} column already exists")
                    continue
                column_type = sqlite_type if is_sqlite else pg_type
                db.session.execute(text(f"ALTER TABLE users ADD COLUMN {column} {column_type}"))
                added.append(column)
                print(f"➕ Added {column}")

            if 'onboarding_complete' in added and mark_existing_complete:
                result = db.session.execute(text("UPDATE users SET onboarding_complete = :done"), {'done': True})
                print(f"✅ Marked {result.rowcount} existing users as onboarded")

            db.session.commit()
            return added

        except Exception as e:
            db.session.rollback()
            print(f"❌ Migration failed: {e}")
            raise


if __name__ == '__main__':
    try:
        add_onboarding_fields(mark_existing_complete='--keep-pending' not in sys.argv)
    except Exception:
        sys.exit(1)
