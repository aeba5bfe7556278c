import random
from datetime import date, datetime
from decimal import Decimal

from pta_dashboard.stats import (budget_usage, category_breakdown, collection_rate,
                                 financial_summary, monthly_totals, payment_status_by_grade,
                                 payment_summary, percentage, recent_transactions, sum_amounts)


def students(paid, unpaid):
    return ([{'pta_contribution_paid': True}] * paid
            + [{'pta_contribution_paid': False}] * unpaid)


def rows(*amounts, status='completed'):
    return [{'amount': Decimal(str(a)), 'status': status} for a in amounts]


def test_three_of_five_paid():
    summary = payment_summary(students(3, 2))
    assert summary['total_students'] == 5
    assert summary['paid'] == 3
    assert summary['unpaid'] == 2
    assert summary['paid_percentage'] == 60.0
    assert summary['unpaid_percentage'] == 40.0


def test_no_students_gives_zero_percentages():
    summary = payment_summary([])
    assert summary == {'total_students': 0, 'paid': 0, 'unpaid': 0,
                       'paid_percentage': 0.0, 'unpaid_percentage': 0.0}


def test_missing_paid_flag_counts_as_unpaid():
    summary = payment_summary([{'pta_contribution_paid': None}, {}])
    assert summary['unpaid'] == 2


def test_paid_plus_unpaid_is_total():
    generator = random.Random(7)
    for _ in range(50):
        group = [{'pta_contribution_paid': generator.choice([True, False, None])}
                 for _ in range(generator.randint(0, 40))]
        summary = payment_summary(group)
        assert summary['paid'] + summary['unpaid'] == summary['total_students'] == len(group)


def test_financial_scenario():
    summary = financial_summary(rows(250, 250, 250, 5000), rows(1500, 800, 2200))
    assert summary['total_income'] == Decimal('5750.00')
    assert summary['total_expenses'] == Decimal('4500.00')
    assert summary['current_balance'] == Decimal('1250.00')


def test_balance_is_income_minus_expenses():
    generator = random.Random(11)
    for _ in range(50):
        incomes = rows(*[Decimal(generator.randint(1, 500000)) / 100 for _ in range(generator.randint(0, 20))])
        expenses = rows(*[Decimal(generator.randint(1, 500000)) / 100 for _ in range(generator.randint(0, 20))])
        summary = financial_summary(incomes, expenses)
        assert summary['total_income'] - summary['total_expenses'] == summary['current_balance']


def test_cents_do_not_drift():
    assert sum_amounts(rows('0.10', '0.20', '0.30')) == Decimal('0.60')


def test_rejected_rows_are_excluded():
    incomes = rows(100) + rows(999, status='rejected')
    assert financial_summary(incomes, [])['total_income'] == Decimal('100.00')


def test_percentage_rounds_to_one_decimal():
    assert percentage(1, 3) == 33.3
    assert percentage(2, 3) == 66.7
    assert percentage(5, 0) == 0.0
    assert collection_rate(3, 4) == 75.0


def test_recent_transactions_newest_first():
    incomes = [{'id': 1, 'amount': 10, 'created_at': datetime(2024, 6, 1), 'description': 'PTA'},
               {'id': 2, 'amount': 20, 'created_at': datetime(2024, 6, 3)}]
    expenses = [{'id': 1, 'amount': 5, 'created_at': datetime(2024, 6, 2), 'status': 'pending'}]
    merged = recent_transactions(incomes, expenses, limit=2)
    assert [(item['type'], item['id']) for item in merged] == [('income', 2), ('expense', 1)]
    assert merged[0]['description'] == 'Income Transaction'
    assert merged[1]['status'] == 'pending'


def test_category_breakdown_sorted_by_amount():
    categories = [{'id': 1, 'category_name': 'PTA'}, {'id': 2, 'category_name': 'Donation'}]
    incomes = [
        {'income_category_id': 1, 'amount': 250, 'status': 'completed'},
        {'income_category_id': 2, 'amount': 750, 'status': 'completed'},
        {'income_category_id': None, 'amount': 100, 'status': 'rejected'},
    ]
    breakdown = category_breakdown(incomes, categories, 'income_category_id')
    assert [(item['category'], item['percentage']) for item in breakdown] == [
        ('Donation', 75.0), ('PTA', 25.0),
    ]


def test_payment_status_by_grade():
    group = [
        {'grade_name': 'Grade 1', 'pta_contribution_paid': True},
        {'grade_name': 'Grade 1', 'pta_contribution_paid': False},
        {'grade_name': None, 'pta_contribution_paid': True},
    ]
    by_grade = payment_status_by_grade(group)
    assert [entry['grade'] for entry in by_grade] == ['Grade 1', 'Unassigned']
    assert by_grade[0]['paid_percentage'] == 50.0
    assert by_grade[1]['total'] == 1


def test_monthly_totals_are_chronological():
    incomes = [
        {'transaction_date': date(2024, 9, 2), 'amount': 100, 'status': 'completed'},
        {'transaction_date': date(2024, 7, 15), 'amount': 50, 'status': 'completed'},
        {'transaction_date': date(2024, 9, 20), 'amount': 25, 'status': 'completed'},
        {'transaction_date': None, 'amount': 1000, 'status': 'completed'},
    ]
    totals = monthly_totals(incomes, 'transaction_date')
    assert list(totals.items()) == [('2024-07', Decimal('50.00')), ('2024-09', Decimal('125.00'))]


def test_budget_usage_counts_approved_spending_only():
    categories = [{'id': 1, 'category_name': 'Supplies', 'budget_limit': Decimal('1000')},
                  {'id': 2, 'category_name': 'Events', 'budget_limit': None}]
    expenses = [
        {'expense_category_id': 1, 'amount': 400, 'status': 'approved'},
        {'expense_category_id': 1, 'amount': 300, 'status': 'pending'},
        {'expense_category_id': 2, 'amount': 50, 'status': 'approved'},
    ]
    supplies, events = budget_usage(categories, expenses)
    assert supplies['spent'] == Decimal('400.00')
    assert supplies['percentage'] == 40.0
    assert events['budget_limit'] is None
    assert events['percentage'] == 0.0
