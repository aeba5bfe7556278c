#!/usr/bin/env python3
"""
Build script for deployment.
This script initializes the database, seeds reference data and creates the
first administrator account from ADMIN_EMAIL / ADMIN_PASSWORD.
"""

import sys
from decimal import Decimal

from sqlalchemy import select

from pta_dashboard import create_app, db
from pta_dashboard.auth import AuthError, find_user_by_email, sign_up_with_email
from pta_dashboard.models import PTA_CATEGORY_NAME, Grade, IncomeCategory

DEFAULT_GRADES = [
    ('Kindergarten', 0),
    ('Grade 1', 1),
    ('Grade 2', 2),
    ('Grade 3', 3),
    ('Grade 4', 4),
    ('Grade 5', 5),
    ('Grade 6', 6),
]


def seed_grades():
    existing = set(db.session.scalars(select(Grade.grade_level)))
    added = 0
    for name, level in DEFAULT_GRADES:
        if level not in existing:
            db.session.add(Grade(grade_name=name, grade_level=level))
            added += 1
    db.session.commit()
    return added


def seed_pta_category(amount):
    category = db.session.scalar(select(IncomeCategory).where(IncomeCategory.category_name == PTA_CATEGORY_NAME))
    if category is not None:
        return False
    db.session.add(IncomeCategory(
        category_name=PTA_CATEGORY_NAME,
        description='Annual PTA contribution per student',
        is_per_family=False,
        default_amount=Decimal(amount),
    ))
    db.session.commit()
    return True


def ensure_admin(email, password):
    """Create the admin account, or promote an existing account with that email."""
    user = find_user_by_email(email)
    if user is None:
        sign_up_with_email(email, password, 'Administrator', role='admin')
        return 'created'
    if user.role != 'admin':
        user.role = 'admin'
        db.session.commit()
        return 'promoted'
    return 'exists'


def initialize_database(app):
    """Initialize database for production deployment."""
    with app.app_context():
        print("Creating database tables...")
        db.create_all()

        print("Seeding grades...")
        print(f"Added {seed_grades()} grade(s)")

        print("Ensuring PTA contribution category...")
        if seed_pta_category(app.config['PTA_CONTRIBUTION_AMOUNT']):
            print(f"Created '{PTA_CATEGORY_NAME}' category")

        email = app.config.get('ADMIN_EMAIL')
        password = app.config.get('ADMIN_PASSWORD')
        if not email or not password:
            print("ADMIN_EMAIL and ADMIN_PASSWORD must be set to create the admin user.")
            return False

        print("Creating admin user...")
        try:
            print(f"Admin {email}: {ensure_admin(email, password)}")
        except AuthError as e:
            print(f"Error creating admin user: {e}")
            return False

        print("Database initialization completed successfully!")
        return True


def main():
    app = create_app()
    sys.exit(0 if initialize_database(app) else 1)


if __name__ == "__main__":
    main()
