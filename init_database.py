#!/usr/bin/env python3
"""
Database Initialization Script
==============================

Creates every CoachFit table defined in app.py and lists what exists afterwards.
"""

import sys
from app import app, db

EXPECTED_TABLES = (
    'users', 'cohorts', 'cohort_memberships', 'coach_invites', 'cohort_invites',
    'user_goals', 'user_preferences', 'admin_actions',
)


def init_database():
    """Initialize the database with all tables"""
    print("🚀 Initializing CoachFit Database")
    print(f"📍 Database URI: {app.config['SQLALCHEMY_DATABASE_URI']}")

    with app.app_context():
        try:
            print("📝 Creating database tables...")
            db.create_all()
            db.session.commit()

            database_url = app.config['SQLALCHEMY_DATABASE_URI']
            if 'sqlite' in database_url.lower():
                result = db.session.execute(db.text(
                    "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name"
                ))
            else:
                result = db.session.execute(db.text(
                    "SELECT tablename FROM pg_tables WHERE schemaname='public' ORDER BY tablename"
                ))

            tables = [row[0] for row in result.fetchall()]
            print(f"✅ Found {len(tables)} tables:")
            for table in tables:
                print(f"   - {table}")

            missing = [t for t in EXPECTED_TABLES if t not in tables]
            if missing:
                print(f"❌ Missing tables: {', '.join(missing)}")
                return False

            print("🎉 Database initialization completed successfully!")
            return True

        except Exception as e:
            db.session.rollback()
            print(f"❌ Database initialization failed: {e}")
            return False


if __name__ == "__main__":
    if not init_database():
        sys.exit(1)
