import logging
from datetime import date, datetime

from flask import Blueprint, flash, g, redirect, render_template, request, url_for

from .. import db
from ..backend import BackendError, db_service
from ..forms import IncomeForm, optional_id
from ..guard import ADMIN_ROLES, FINANCE_ROLES, role_required
from ..helpers import generate_transaction_number, get_school_settings
from ..models import (PTA_CATEGORY_NAME, TRANSACTION_STATUSES, IncomeCategory, IncomeTransaction,
                      Parent, Student)
from ..stats import sum_amounts
from . import (category_choices, flash_backend_error, flash_form_errors, get_or_404, parent_choices,
               remove_receipt_files, save_receipt, student_choices)

logger = logging.getLogger(__name__)

income_bp = Blueprint('income', __name__, url_prefix='/dashboard/income')

PAGE_SIZE = 20
SEARCH_COLUMNS = ['transaction_number', 'reference_number', 'description', 'notes']
PAID_STATUSES = ('completed', 'approved')


def populate_income_form(form):
    form.income_category_id.choices = category_choices('income_categories')
    form.parent_id.choices = parent_choices()
    form.student_id.choices = student_choices()


def apply_pta_payment(transaction):
    """Mark the student and parent paid for a completed PTA contribution.

    Changes are left in the session for the caller to commit together with
    the transaction row.
    """
    if transaction.status not in PAID_STATUSES or not transaction.student_id:
        return False
    category = db.session.get(IncomeCategory, transaction.income_category_id)
    if category is None or category.category_name != PTA_CATEGORY_NAME:
        return False

    student = db.session.get(Student, transaction.student_id)
    student.pta_contribution_paid = True
    student.pta_contribution_amount = transaction.amount

    parent = db.session.get(Parent, transaction.parent_id) if transaction.parent_id else None
    if parent is not None:
        parent.pta_contribution_paid = True
        parent.pta_contribution_date = datetime.utcnow()

    logger.info("Student %s marked PTA paid by %s", student.student_id, transaction.transaction_number)
    return True


def record_income_transaction(data, recorded_by=None):
    """Insert an income transaction and the student status it implies in one commit."""
    def operation():
        transaction = IncomeTransaction(
            transaction_number=generate_transaction_number('INC'),
            recorded_by=recorded_by,
            **data,
        )
        db.session.add(transaction)
        db.session.flush()
        apply_pta_payment(transaction)
        db.session.commit()
        return transaction

    return db_service.run(operation, 'Create Income Transaction')


def set_income_status(transaction, status):
    def operation():
        transaction.status = status
        apply_pta_payment(transaction)
        db.session.commit()
        return transaction

    return db_service.run(operation, 'Update Income Transaction')


def build_income_data(form):
    """Form values as column data, or None after flashing why they are unusable."""
    category = db_service.find_by_id('income_categories', form.income_category_id.data)
    amount = form.amount.data
    if amount is None and category is not None:
        amount = category.default_amount
    if not amount:
        flash('Amount: enter an amount or choose a category with a default amount.', 'error')
        return None

    student_id = optional_id(form.student_id.data)
    if student_id:
        student = db_service.find_by_id('students', student_id)
        if student is None or student.parent_id != form.parent_id.data:
            flash('Student: the selected student does not belong to this parent.', 'error')
            return None

    return {
        'income_category_id': form.income_category_id.data,
        'parent_id': form.parent_id.data,
        'student_id': student_id,
        'amount': amount,
        'payment_method': form.payment_method.data,
        'reference_number': form.reference_number.data or None,
        'description': form.description.data or (category.category_name if category else None),
        'notes': form.notes.data or None,
        'transaction_date': form.transaction_date.data or date.today(),
        'status': form.status.data,
        'school_year': get_school_settings().school_year,
    }


@income_bp.route('')
def index():
    form = IncomeForm()
    q = request.args.get('q', '').strip()
    status = request.args.get('status') or None
    page = max(request.args.get('page', 1, type=int), 1)

    transactions = []
    total = 0
    try:
        populate_income_form(form)
        if q:
            transactions = db_service.search('income_transactions', q, SEARCH_COLUMNS,
                                             filters={'status': status}, limit=100)
            total = len(transactions)
        else:
            filters = {'status': status}
            total = db_service.count('income_transactions', filters)
            transactions = db_service.find_many('income_transactions', filters=filters,
                                                order_by='created_at', ascending=False,
                                                limit=PAGE_SIZE, offset=(page - 1) * PAGE_SIZE)
    except BackendError as e:
        flash_backend_error(e, 'Get All Income Transactions')

    return render_template(
        'income.html',
        form=form,
        transactions=transactions,
        listed_total=sum_amounts(transactions),
        total=total,
        page=page,
        pages=max((total + PAGE_SIZE - 1) // PAGE_SIZE, 1),
        q=q,
        status=status,
        statuses=TRANSACTION_STATUSES,
    )


@income_bp.route('/new', methods=['POST'])
def create():
    form = IncomeForm()
    try:
        populate_income_form(form)
    except BackendError as e:
        flash_backend_error(e, 'Load Income Form')
        return redirect(url_for('income.index'))

    if not form.validate_on_submit():
        flash_form_errors(form)
        return redirect(url_for('income.index'))

    data = build_income_data(form)
    if data is None:
        return redirect(url_for('income.index'))

    try:
        transaction = record_income_transaction(data, recorded_by=g.get('user_id'))
    except BackendError as e:
        flash_backend_error(e, 'Create Income Transaction')
        return redirect(url_for('income.index'))

    if save_receipt(form.receipt.data, income_transaction_id=transaction.id):
        db_service.update('income_transactions', transaction.id, {'receipt_issued': True})

    flash(f'Income transaction {transaction.transaction_number} recorded successfully!', 'success')
    return redirect(url_for('income.index'))


@income_bp.route('/<int:transaction_id>/status', methods=['POST'])
@role_required(*FINANCE_ROLES)
def update_status(transaction_id):
    transaction = get_or_404('income_transactions', transaction_id)
    status = request.form.get('status')
    if status not in TRANSACTION_STATUSES:
        flash('Invalid status.', 'error')
        return redirect(url_for('income.index'))

    try:
        set_income_status(transaction, status)
        flash(f'Transaction {transaction.transaction_number} marked {status}.', 'success')
    except BackendError as e:
        flash_backend_error(e, 'Update Income Transaction')
    return redirect(url_for('income.index'))


@income_bp.route('/<int:transaction_id>/delete', methods=['POST'])
@role_required(*ADMIN_ROLES)
def delete(transaction_id):
    try:
        receipts = db_service.find_many('receipts', filters={'income_transaction_id': transaction_id})
        paths = [receipt.file_path for receipt in receipts]
        if db_service.delete('income_transactions', transaction_id):
            remove_receipt_files(paths)
            flash('Income transaction deleted.', 'success')
        else:
            flash('Income transaction not found!', 'error')
    except BackendError as e:
        flash_backend_error(e, 'Delete Income Transaction')
    return redirect(url_for('income.index'))
