from flask import Blueprint, current_app, flash, g, redirect, render_template, request, url_for

from .. import db
from ..backend import BackendError, db_service
from ..config import check_config
from ..forms import (ExpenseCategoryForm, GradeForm, IncomeCategoryForm, MemberForm,
                     SchoolSettingsForm, SectionForm, optional_id)
from ..helpers import get_school_settings
from . import flash_backend_error, flash_form_errors, get_or_404, teacher_choices

settings_bp = Blueprint('settings', __name__, url_prefix='/dashboard/settings')


def grade_choices():
    grades = db_service.find_many('grades', filters={'is_active': True}, order_by='grade_level')
    return [(grade.id, grade.grade_name) for grade in grades]


def build_forms():
    settings = get_school_settings()
    section_form = SectionForm(prefix='section')
    section_form.grade_id.choices = grade_choices()
    section_form.teacher_id.choices = teacher_choices()
    return {
        'school_form': SchoolSettingsForm(prefix='school', obj=settings),
        'grade_form': GradeForm(prefix='grade'),
        'section_form': section_form,
        'income_category_form': IncomeCategoryForm(prefix='income'),
        'expense_category_form': ExpenseCategoryForm(prefix='expense'),
    }


@settings_bp.route('')
def index():
    context = {'members': [], 'grades': [], 'sections': [], 'income_categories': [],
               'expense_categories': []}
    try:
        context.update(build_forms())
        context['members'] = db_service.find_many('users', order_by='full_name')
        context['grades'] = db_service.find_many('grades', order_by='grade_level')
        context['sections'] = db_service.find_many('sections', order_by='section_name')
        context['income_categories'] = db_service.find_many('income_categories', order_by='category_name')
        context['expense_categories'] = db_service.find_many('expense_categories', order_by='category_name')
    except BackendError as e:
        flash_backend_error(e, 'Load Settings')
        return redirect(url_for('dashboard.index'))

    context['roles'] = MemberForm().role.choices
    context['checks'] = check_config(current_app.config)
    return render_template('settings.html', **context)


@settings_bp.route('/school', methods=['POST'])
def update_school():
    form = SchoolSettingsForm(prefix='school')
    if not form.validate_on_submit():
        flash_form_errors(form)
        return redirect(url_for('settings.index'))

    data = {
        'school_name': form.school_name.data,
        'school_address': form.school_address.data or None,
        'contact_number': form.contact_number.data or None,
        'email': form.email.data or None,
        'school_year': form.school_year.data,
        'pta_contribution_amount': form.pta_contribution_amount.data,
    }
    try:
        setting = get_school_settings()
        if setting.id is None:
            db_service.create('school_settings', data)
        else:
            db_service.update('school_settings', setting.id, data)
        flash('School settings saved.', 'success')
    except BackendError as e:
        db.session.rollback()
        flash_backend_error(e, 'Save School Settings')
    return redirect(url_for('settings.index'))


@settings_bp.route('/members/<int:user_id>', methods=['POST'])
def update_member(user_id):
    member = get_or_404('users', user_id)
    form = MemberForm()
    if not form.validate_on_submit():
        flash_form_errors(form)
        return redirect(url_for('settings.index'))

    if member.id == g.get('user_id') and (form.role.data != 'admin' or not form.is_active.data):
        flash('You cannot remove your own admin access.', 'error')
        return redirect(url_for('settings.index'))

    try:
        db_service.update('users', user_id, {'role': form.role.data, 'is_active': form.is_active.data})
        flash(f'{member.full_name} is now {form.role.data}.', 'success')
    except BackendError as e:
        flash_backend_error(e, 'Update Member')
    return redirect(url_for('settings.index'))


@settings_bp.route('/grades', methods=['POST'])
def create_grade():
    form = GradeForm(prefix='grade')
    if form.validate_on_submit():
        try:
            db_service.create('grades', {'grade_name': form.grade_name.data,
                                         'grade_level': form.grade_level.data})
            flash('Grade added.', 'success')
        except BackendError as e:
            flash_backend_error(e, 'Create Grade')
    else:
        flash_form_errors(form)
    return redirect(url_for('settings.index'))


@settings_bp.route('/sections', methods=['POST'])
def create_section():
    form = SectionForm(prefix='section')
    try:
        form.grade_id.choices = grade_choices()
        form.teacher_id.choices = teacher_choices()
    except BackendError as e:
        flash_backend_error(e, 'Load Section Form')
        return redirect(url_for('settings.index'))

    if form.validate_on_submit():
        try:
            db_service.create('sections', {
                'section_name': form.section_name.data,
                'grade_id': form.grade_id.data,
                'teacher_id': optional_id(form.teacher_id.data),
                'max_students': form.max_students.data or 40,
                'school_year': get_school_settings().school_year,
            })
            flash('Section added.', 'success')
        except BackendError as e:
            flash_backend_error(e, 'Create Section')
    else:
        flash_form_errors(form)
    return redirect(url_for('settings.index'))


@settings_bp.route('/income-categories', methods=['POST'])
def create_income_category():
    form = IncomeCategoryForm(prefix='income')
    if form.validate_on_submit():
        try:
            db_service.create('income_categories', {
                'category_name': form.category_name.data,
                'description': form.description.data or None,
                'is_per_family': form.is_per_family.data,
                'default_amount': form.default_amount.data,
            })
            flash('Income category added.', 'success')
        except BackendError as e:
            flash_backend_error(e, 'Create Income Category')
    else:
        flash_form_errors(form)
    return redirect(url_for('settings.index'))


@settings_bp.route('/expense-categories', methods=['POST'])
def create_expense_category():
    form = ExpenseCategoryForm(prefix='expense')
    if form.validate_on_submit():
        try:
            db_service.create('expense_categories', {
                'category_name': form.category_name.data,
                'description': form.description.data or None,
                'budget_limit': form.budget_limit.data,
            })
            flash('Expense category added.', 'success')
        except BackendError as e:
            flash_backend_error(e, 'Create Expense Category')
    else:
        flash_form_errors(form)
    return redirect(url_for('settings.index'))


@settings_bp.route('/<kind>-categories/<int:category_id>/toggle', methods=['POST'])
def toggle_category(kind, category_id):
    if kind not in ('income', 'expense'):
        return redirect(url_for('settings.index'))
    table = f'{kind}_categories'
    category = get_or_404(table, category_id)
    active = not category.is_active
    try:
        db_service.update(table, category_id, {'is_active': active})
        flash(f"{category.category_name} {'activated' if active else 'deactivated'}.", 'success')
    except BackendError as e:
        flash_backend_error(e, 'Update Category')
    return redirect(url_for('settings.index'))
