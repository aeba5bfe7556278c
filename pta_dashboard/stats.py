"""
Dashboard and report aggregation.

All figures are computed from freshly fetched rows with a single linear
pass; nothing is cached between page loads. Rows may be model instances or
plain mappings.
"""
from collections import OrderedDict
from decimal import Decimal, ROUND_HALF_UP

CENTS = Decimal('0.01')
EXCLUDED_STATUSES = ('rejected',)


def _get(row, name, default=None):
    if isinstance(row, dict):
        return row.get(name, default)
    return getattr(row, name, default)


def to_money(value):
    if value is None:
        return Decimal('0.00')
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def percentage(part, whole):
    """Share of ``whole`` as a percentage with one decimal place, 0.0 for an empty whole."""
    if not whole:
        return 0.0
    share = Decimal(str(part)) * 100 / Decimal(str(whole))
    return float(share.quantize(Decimal('0.1'), rounding=ROUND_HALF_UP))


def counts_toward_totals(row):
    return _get(row, 'status') not in EXCLUDED_STATUSES


def sum_amounts(rows):
    total = Decimal('0.00')
    for row in rows:
        if counts_toward_totals(row):
            total += to_money(_get(row, 'amount'))
    return total


def payment_summary(students):
    paid = 0
    unpaid = 0
    for student in students:
        if _get(student, 'pta_contribution_paid') is True:
            paid += 1
        else:
            unpaid += 1
    total = paid + unpaid
    return {
        'total_students': total,
        'paid': paid,
        'unpaid': unpaid,
        'paid_percentage': percentage(paid, total),
        'unpaid_percentage': percentage(unpaid, total),
    }


def financial_summary(incomes, expenses):
    total_income = sum_amounts(incomes)
    total_expenses = sum_amounts(expenses)
    return {
        'total_income': total_income,
        'total_expenses': total_expenses,
        'current_balance': total_income - total_expenses,
    }


def collection_rate(paid, total):
    return percentage(paid, total)


def recent_transactions(incomes, expenses, limit=5):
    """Income and expense rows merged newest first."""
    merged = []
    for kind, rows in (('income', incomes), ('expense', expenses)):
        for row in rows:
            merged.append({
                'id': _get(row, 'id'),
                'type': kind,
                'transaction_number': _get(row, 'transaction_number'),
                'description': _get(row, 'description') or f"{kind.title()} Transaction",
                'amount': to_money(_get(row, 'amount')),
                'date': _get(row, 'created_at'),
                'status': _get(row, 'status') or 'completed',
            })
    merged.sort(key=lambda item: (item['date'] is not None, item['date']), reverse=True)
    return merged[:limit]


def category_breakdown(rows, categories, category_attr):
    """Amount and share of the total per category, largest first."""
    names = {_get(c, 'id'): _get(c, 'category_name') for c in categories}
    amounts = {}
    for row in rows:
        if not counts_toward_totals(row):
            continue
        name = names.get(_get(row, category_attr), 'Uncategorized')
        amounts[name] = amounts.get(name, Decimal('0.00')) + to_money(_get(row, 'amount'))

    total = sum(amounts.values(), Decimal('0.00'))
    breakdown = [
        {'category': name, 'amount': amount, 'percentage': percentage(amount, total)}
        for name, amount in amounts.items()
    ]
    breakdown.sort(key=lambda item: item['amount'], reverse=True)
    return breakdown


def payment_status_by_grade(students):
    grades = {}
    for student in students:
        grade = _get(student, 'grade_name') or 'Unassigned'
        entry = grades.setdefault(grade, {'grade': grade, 'paid': 0, 'unpaid': 0, 'total': 0})
        if _get(student, 'pta_contribution_paid') is True:
            entry['paid'] += 1
        else:
            entry['unpaid'] += 1
        entry['total'] += 1
    for entry in grades.values():
        entry['paid_percentage'] = percentage(entry['paid'], entry['total'])
    return [grades[name] for name in sorted(grades)]


def monthly_totals(rows, date_attr):
    """Sums keyed by ``YYYY-MM`` in chronological order."""
    months = {}
    for row in rows:
        when = _get(row, date_attr)
        if when is None or not counts_toward_totals(row):
            continue
        key = when.strftime('%Y-%m')
        months[key] = months.get(key, Decimal('0.00')) + to_money(_get(row, 'amount'))
    return OrderedDict(sorted(months.items()))


def budget_usage(categories, expenses):
    """Approved spending against each category's budget limit."""
    usage = []
    for category in categories:
        category_id = _get(category, 'id')
        spent = sum(
            (to_money(_get(e, 'amount')) for e in expenses
             if _get(e, 'expense_category_id') == category_id and _get(e, 'status') == 'approved'),
            Decimal('0.00'),
        )
        budget = _get(category, 'budget_limit')
        usage.append({
            'category': _get(category, 'category_name'),
            'budget_limit': to_money(budget) if budget is not None else None,
            'spent': spent,
            'percentage': percentage(spent, budget) if budget else 0.0,
        })
    return usage


def dashboard_stats(service):
    """Fetch every row the dashboard needs and reduce it."""
    students = service.find_many('students')
    incomes = service.find_many('income_transactions', order_by='created_at', ascending=False)
    expenses = service.find_many('expense_transactions', order_by='created_at', ascending=False)

    payments = payment_summary(students)
    finances = financial_summary(incomes, expenses)
    return {
        **finances,
        'total_students': payments['total_students'],
        'total_parents': service.count('parents'),
        'total_members': service.count('users'),
        'pta_paid_students': payments['paid'],
        'pta_unpaid_students': payments['unpaid'],
        'paid_percentage': payments['paid_percentage'],
        'unpaid_percentage': payments['unpaid_percentage'],
        'recent_transactions': recent_transactions(incomes, expenses),
    }
