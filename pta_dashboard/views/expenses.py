from datetime import date

from flask import Blueprint, flash, g, redirect, render_template, request, url_for

from ..backend import BackendError, db_service
from ..forms import ExpenseForm
from ..guard import ADMIN_ROLES, APPROVER_ROLES, current_role, role_required
from ..helpers import generate_transaction_number, get_school_settings
from ..models import TRANSACTION_STATUSES
from ..stats import budget_usage, sum_amounts
from . import (category_choices, flash_backend_error, flash_form_errors, get_or_404,
               remove_receipt_files, save_receipt)

expenses_bp = Blueprint('expenses', __name__, url_prefix='/dashboard/expenses')


@expenses_bp.route('')
def index():
    form = ExpenseForm()
    status = request.args.get('status') or None
    category_id = request.args.get('category', type=int)

    transactions = []
    usage = []
    try:
        form.expense_category_id.choices = category_choices('expense_categories')
        categories = db_service.find_many('expense_categories', filters={'is_active': True},
                                          order_by='category_name')
        all_expenses = db_service.find_many('expense_transactions', order_by='expense_date',
                                            ascending=False)
        usage = budget_usage(categories, all_expenses)
        transactions = [
            e for e in all_expenses
            if (not status or e.status == status)
            and (not category_id or e.expense_category_id == category_id)
        ]
    except BackendError as e:
        flash_backend_error(e, 'Get All Expense Transactions')

    return render_template(
        'expenses.html',
        form=form,
        transactions=transactions,
        listed_total=sum_amounts(transactions),
        usage=usage,
        status=status,
        category_id=category_id,
        statuses=TRANSACTION_STATUSES,
        can_approve=current_role() in APPROVER_ROLES,
    )


@expenses_bp.route('/new', methods=['POST'])
def create():
    form = ExpenseForm()
    try:
        form.expense_category_id.choices = category_choices('expense_categories')
    except BackendError as e:
        flash_backend_error(e, 'Load Expense Form')
        return redirect(url_for('expenses.index'))

    if not form.validate_on_submit():
        flash_form_errors(form)
        return redirect(url_for('expenses.index'))

    try:
        transaction = db_service.create('expense_transactions', {
            'transaction_number': generate_transaction_number('EXP'),
            'expense_category_id': form.expense_category_id.data,
            'amount': form.amount.data,
            'description': form.description.data,
            'vendor_name': form.vendor_name.data,
            'payment_method': form.payment_method.data,
            'reference_number': form.reference_number.data or None,
            'expense_date': form.expense_date.data or date.today(),
            'school_year': get_school_settings().school_year,
            'status': 'pending',
            'recorded_by': g.get('user_id'),
        })
    except BackendError as e:
        flash_backend_error(e, 'Create Expense Transaction')
        return redirect(url_for('expenses.index'))

    save_receipt(form.receipt.data, expense_transaction_id=transaction.id)
    flash('Expense transaction recorded successfully!', 'success')
    return redirect(url_for('expenses.index'))


def _review(transaction_id, status):
    transaction = get_or_404('expense_transactions', transaction_id)
    if transaction.status != 'pending':
        flash('Only pending transactions can be reviewed.', 'error')
        return redirect(url_for('expenses.index'))

    try:
        db_service.update('expense_transactions', transaction_id, {
            'status': status,
            'approved_by': g.get('user_id'),
        })
        flash(f'Transaction {status} successfully!', 'success')
    except BackendError as e:
        flash_backend_error(e, 'Review Expense Transaction')
    return redirect(url_for('expenses.index'))


@expenses_bp.route('/<int:transaction_id>/approve', methods=['POST'])
@role_required(*APPROVER_ROLES)
def approve(transaction_id):
    return _review(transaction_id, 'approved')


@expenses_bp.route('/<int:transaction_id>/reject', methods=['POST'])
@role_required(*APPROVER_ROLES)
def reject(transaction_id):
    return _review(transaction_id, 'rejected')


@expenses_bp.route('/<int:transaction_id>/delete', methods=['POST'])
@role_required(*ADMIN_ROLES)
def delete(transaction_id):
    try:
        receipts = db_service.find_many('receipts', filters={'expense_transaction_id': transaction_id})
        paths = [receipt.file_path for receipt in receipts]
        if db_service.delete('expense_transactions', transaction_id):
            remove_receipt_files(paths)
            flash('Expense transaction deleted.', 'success')
        else:
            flash('Expense transaction not found!', 'error')
    except BackendError as e:
        flash_backend_error(e, 'Delete Expense Transaction')
    return redirect(url_for('expenses.index'))
