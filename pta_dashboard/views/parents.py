from datetime import datetime

from flask import Blueprint, flash, redirect, render_template, request, url_for

from ..backend import BackendError, db_service
from ..forms import ParentForm
from ..guard import EDITOR_ROLES, current_role, role_required
from . import flash_backend_error, flash_form_errors, get_or_404

parents_bp = Blueprint('parents', __name__, url_prefix='/dashboard/parents')

SEARCH_COLUMNS = ['first_name', 'last_name', 'email', 'contact_number']


def parent_data(form, parent=None):
    paid = form.pta_contribution_paid.data
    paid_date = parent.pta_contribution_date if parent is not None else None
    if paid and paid_date is None:
        paid_date = datetime.utcnow()
    elif not paid:
        paid_date = None

    return {
        'first_name': form.first_name.data,
        'middle_name': form.middle_name.data or None,
        'last_name': form.last_name.data,
        'email': form.email.data.strip().lower() if form.email.data else None,
        'contact_number': form.contact_number.data or None,
        'address': form.address.data or None,
        'occupation': form.occupation.data or None,
        'emergency_contact': form.emergency_contact.data or None,
        'emergency_phone': form.emergency_phone.data or None,
        'relationship_to_student': form.relationship_to_student.data,
        'pta_contribution_paid': paid,
        'pta_contribution_date': paid_date,
    }


@parents_bp.route('')
def index():
    q = request.args.get('q', '').strip()
    parents = []
    try:
        if q:
            parents = db_service.search('parents', q, SEARCH_COLUMNS)
        else:
            parents = db_service.find_many('parents', order_by='last_name')
    except BackendError as e:
        flash_backend_error(e, 'Get All Parents')

    return render_template('parents.html', parents=parents, q=q,
                           can_edit=current_role() in EDITOR_ROLES)


@parents_bp.route('/new', methods=['GET', 'POST'])
@role_required(*EDITOR_ROLES)
def create():
    form = ParentForm()
    if form.validate_on_submit():
        try:
            parent = db_service.create('parents', parent_data(form))
            flash(f'Parent {parent.full_name} added successfully!', 'success')
            return redirect(url_for('parents.detail', parent_id=parent.id))
        except BackendError as e:
            flash_backend_error(e, 'Create Parent')
    elif request.method == 'POST':
        flash_form_errors(form)

    return render_template('parent_form.html', form=form, parent=None)


@parents_bp.route('/<int:parent_id>')
def detail(parent_id):
    parent = get_or_404('parents', parent_id)
    return render_template('parent_detail.html', parent=parent,
                           can_edit=current_role() in EDITOR_ROLES)


@parents_bp.route('/<int:parent_id>/edit', methods=['GET', 'POST'])
@role_required(*EDITOR_ROLES)
def edit(parent_id):
    parent = get_or_404('parents', parent_id)
    form = ParentForm(obj=parent)
    if form.validate_on_submit():
        try:
            db_service.update('parents', parent_id, parent_data(form, parent))
            flash('Parent updated successfully!', 'success')
            return redirect(url_for('parents.detail', parent_id=parent_id))
        except BackendError as e:
            flash_backend_error(e, 'Update Parent')
    elif request.method == 'POST':
        flash_form_errors(form)

    return render_template('parent_form.html', form=form, parent=parent)


@parents_bp.route('/<int:parent_id>/delete', methods=['POST'])
@role_required(*EDITOR_ROLES)
def delete(parent_id):
    try:
        if db_service.delete('parents', parent_id):
            flash('Parent deleted successfully!', 'success')
        else:
            flash('Parent not found!', 'error')
    except BackendError as e:
        flash_backend_error(e, 'Delete Parent')
    return redirect(url_for('parents.index'))
