from datetime import date

from flask import Blueprint, render_template, request

from ..backend import BackendError, db_service
from ..stats import (category_breakdown, collection_rate, financial_summary, monthly_totals,
                     payment_status_by_grade, payment_summary)
from . import flash_backend_error

reports_bp = Blueprint('reports', __name__, url_prefix='/dashboard/reports')

PERIODS = ('all', 'year', 'month')


def period_start(period, today=None):
    """First day covered by ``period``; None means no lower bound."""
    today = today or date.today()
    if period == 'year':
        return today.replace(month=1, day=1)
    if period == 'month':
        return today.replace(day=1)
    return None


def within_period(rows, date_attr, start):
    if start is None:
        return list(rows)
    return [row for row in rows if getattr(row, date_attr) and getattr(row, date_attr) >= start]


def build_report(period='all', today=None):
    start = period_start(period, today)
    incomes = within_period(db_service.find_many('income_transactions'), 'transaction_date', start)
    expenses = within_period(db_service.find_many('expense_transactions'), 'expense_date', start)
    students = db_service.find_many('students', filters={'is_active': True})

    payments = payment_summary(students)
    return {
        'summary': financial_summary(incomes, expenses),
        'payments': payments,
        'collection_rate': collection_rate(payments['paid'], payments['total_students']),
        'income_by_category': category_breakdown(
            incomes, db_service.find_many('income_categories'), 'income_category_id'),
        'expenses_by_category': category_breakdown(
            expenses, db_service.find_many('expense_categories'), 'expense_category_id'),
        'by_grade': payment_status_by_grade(students),
        'monthly_income': monthly_totals(incomes, 'transaction_date'),
        'monthly_expenses': monthly_totals(expenses, 'expense_date'),
    }


@reports_bp.route('')
def index():
    period = request.args.get('period', 'all')
    if period not in PERIODS:
        period = 'all'

    report = None
    try:
        report = build_report(period)
    except BackendError as e:
        flash_backend_error(e, 'Build Report')

    months = []
    if report:
        months = sorted(set(report['monthly_income']) | set(report['monthly_expenses']))
    return render_template('reports.html', report=report, period=period, periods=PERIODS,
                           months=months)
