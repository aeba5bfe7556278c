import logging
import random
import time
from datetime import datetime
from decimal import Decimal

from flask import current_app
from sqlalchemy import select

from . import db
from .models import SchoolSetting, Student

logger = logging.getLogger(__name__)


def generate_transaction_number(prefix='TXN'):
    """``<prefix>-<epoch millis>-<3 random digits>``"""
    timestamp = int(time.time() * 1000)
    return f"{prefix}-{timestamp}-{random.randint(0, 999):03d}"


def generate_student_id(year=None):
    """Next sequential student code for the enrollment year, e.g. VEL-2024-007."""
    year = year or datetime.now().year
    prefix = f"{current_app.config['STUDENT_ID_PREFIX']}-{year}-"

    existing_numbers = []
    for code in db.session.scalars(select(Student.student_id).where(Student.student_id.like(prefix + '%'))):
        suffix = code[len(prefix):]
        if suffix.isdigit():
            existing_numbers.append(int(suffix))

    next_number = max(existing_numbers, default=0) + 1
    return f"{prefix}{next_number:03d}"


def get_school_settings():
    """The settings row, falling back to configured defaults when none is saved."""
    setting = db.session.scalar(select(SchoolSetting).limit(1))
    if setting is None:
        setting = SchoolSetting(
            school_name=current_app.config['SCHOOL_NAME'],
            school_year=current_app.config['SCHOOL_YEAR'],
            pta_contribution_amount=Decimal(current_app.config['PTA_CONTRIBUTION_AMOUNT']),
        )
    return setting


def format_currency(value):
    """Philippine peso with comma separators (2 decimal places)"""
    try:
        return "₱{:,.2f}".format(Decimal(value or 0))
    except (ArithmeticError, ValueError, TypeError):
        return value


def comma_filter(value):
    """Format number with comma separators (2 decimal places)"""
    try:
        return "{:,.2f}".format(float(value))
    except (ValueError, TypeError):
        return value


def format_date(value, fmt='%B %d, %Y'):
    if not value:
        return ''
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError:
            return value
    return value.strftime(fmt)


def init_template_helpers(app):
    app.add_template_filter(format_currency, 'currency')
    app.add_template_filter(comma_filter, 'comma')
    app.add_template_filter(format_date, 'date')
    app.add_template_filter(lambda v: format_date(v, '%b %d, %Y %I:%M %p'), 'datetime')

    # Make datetime and school name available in templates
    @app.context_processor
    def inject_globals():
        # Never fail template rendering because the database is not ready
        try:
            settings = get_school_settings()
            school_name = settings.school_name
            school_year = settings.school_year
        except Exception as e:
            logger.warning("inject_globals: %s", e)
            db.session.rollback()
            school_name = app.config['SCHOOL_NAME']
            school_year = app.config['SCHOOL_YEAR']
        return {
            'datetime': datetime,
            'school_name': school_name,
            'school_year': school_year,
        }
