# tests/conftest.py
"""
Shared fixtures: an application built from TestingConfig (in-memory SQLite,
CSRF disabled, no retry delay), a test client and role sign-in helpers.
"""
from decimal import Decimal

import pytest

from pta_dashboard import create_app, db
from pta_dashboard.auth import find_user_by_email, sign_up_with_email
from pta_dashboard.models import (PTA_CATEGORY_NAME, ExpenseCategory, Grade, IncomeCategory,
                                  Parent, Section, Student)

PASSWORD = 'password123'


@pytest.fixture
def app(tmp_path):
    app = create_app('testing', UPLOAD_FOLDER=str(tmp_path / 'uploads'))
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def create_user(app, role, email=None, password=PASSWORD):
    email = email or f'{role}@example.com'
    with app.app_context():
        user = find_user_by_email(email)
        if user is None:
            user = sign_up_with_email(email, password, f'{role.title()} User', role=role)
        return user.id


@pytest.fixture
def login(app, client):
    """Sign the test client in as ``role``; returns the user id."""
    def _login(role, email=None):
        user_id = create_user(app, role, email)
        client.get('/auth/logout')
        response = client.post('/auth/login', data={
            'email': email or f'{role}@example.com',
            'password': PASSWORD,
        })
        assert response.status_code == 302
        return user_id
    return _login


@pytest.fixture
def school(app):
    """A grade, a section, a parent with one child and the PTA category; returns their ids."""
    with app.app_context():
        grade = Grade(grade_name='Grade 1', grade_level=1)
        section = Section(section_name='Sampaguita', grade=grade, school_year='2024-2025')
        parent = Parent(first_name='Maria', last_name='Santos', email='maria@example.com')
        other_parent = Parent(first_name='Jose', last_name='Cruz', email='jose@example.com')
        student = Student(student_id='VEL-2024-001', first_name='Ana', last_name='Santos',
                          section=section, parent=parent)
        pta = IncomeCategory(category_name=PTA_CATEGORY_NAME, default_amount=Decimal('250.00'))
        donation = IncomeCategory(category_name='Donation')
        supplies = ExpenseCategory(category_name='Supplies', budget_limit=Decimal('1000.00'))
        db.session.add_all([grade, section, parent, other_parent, student, pta, donation, supplies])
        db.session.commit()
        return {
            'grade': grade.id,
            'section': section.id,
            'parent': parent.id,
            'other_parent': other_parent.id,
            'student': student.id,
            'pta': pta.id,
            'donation': donation.id,
            'supplies': supplies.id,
        }
