from flask import Blueprint, flash, redirect, render_template, request, url_for

from ..backend import BackendError, db_service
from ..forms import StudentForm, optional_id
from ..guard import EDITOR_ROLES, current_role, role_required
from ..helpers import generate_student_id
from ..stats import payment_summary
from . import (flash_backend_error, flash_form_errors, get_or_404, parent_choices,
               section_choices)

students_bp = Blueprint('students', __name__, url_prefix='/dashboard/students')


def filter_students(students, term='', grade_id=None, section_id=None, pta=None):
    """Search by name, student code or parent name, then narrow by grade, section and PTA status."""
    term = (term or '').strip().lower()
    matches = []
    for student in students:
        if term:
            parent_name = student.parent.full_name if student.parent else ''
            haystack = (student.full_name, student.student_id, parent_name)
            if not any(term in value.lower() for value in haystack):
                continue
        if section_id and student.section_id != section_id:
            continue
        if grade_id and (not student.section or student.section.grade_id != grade_id):
            continue
        if pta == 'paid' and not student.pta_contribution_paid:
            continue
        if pta == 'unpaid' and student.pta_contribution_paid:
            continue
        matches.append(student)
    return matches


def populate_student_form(form):
    form.section_id.choices = section_choices()
    form.parent_id.choices = parent_choices(with_none=True)


def student_data(form):
    return {
        'student_id': form.student_id.data.strip(),
        'first_name': form.first_name.data,
        'middle_name': form.middle_name.data or None,
        'last_name': form.last_name.data,
        'birth_date': form.birth_date.data,
        'gender': form.gender.data or None,
        'section_id': optional_id(form.section_id.data),
        'parent_id': optional_id(form.parent_id.data),
        'is_active': form.is_active.data,
        'pta_contribution_paid': form.pta_contribution_paid.data,
        'pta_contribution_amount': form.pta_contribution_amount.data or 0,
    }


@students_bp.route('')
def index():
    q = request.args.get('q', '')
    grade_id = request.args.get('grade', type=int)
    section_id = request.args.get('section', type=int)
    pta = request.args.get('pta') or None

    students = []
    grades = []
    sections = []
    try:
        all_students = db_service.find_many('students', order_by='last_name')
        grades = db_service.find_many('grades', filters={'is_active': True}, order_by='grade_level')
        sections = db_service.find_many('sections', filters={'is_active': True}, order_by='section_name')
        students = filter_students(all_students, q, grade_id, section_id, pta)
    except BackendError as e:
        flash_backend_error(e, 'Get All Students')

    return render_template(
        'students.html',
        students=students,
        summary=payment_summary(students),
        grades=grades,
        sections=sections,
        q=q,
        grade_id=grade_id,
        section_id=section_id,
        pta=pta,
        can_edit=current_role() in EDITOR_ROLES,
    )


@students_bp.route('/new', methods=['GET', 'POST'])
@role_required(*EDITOR_ROLES)
def create():
    form = StudentForm()
    try:
        populate_student_form(form)
        if request.method == 'GET':
            form.student_id.data = generate_student_id()
    except BackendError as e:
        flash_backend_error(e, 'Load Student Form')
        return redirect(url_for('students.index'))

    if form.validate_on_submit():
        try:
            student = db_service.create('students', student_data(form))
            flash(f'Student {student.full_name} added successfully!', 'success')
            return redirect(url_for('students.index'))
        except BackendError as e:
            flash_backend_error(e, 'Create Student')
    elif request.method == 'POST':
        flash_form_errors(form)

    return render_template('student_form.html', form=form, student=None)


@students_bp.route('/<int:student_id>')
def detail(student_id):
    student = get_or_404('students', student_id)
    return render_template('student_detail.html', student=student,
                           can_edit=current_role() in EDITOR_ROLES)


@students_bp.route('/<int:student_id>/edit', methods=['GET', 'POST'])
@role_required(*EDITOR_ROLES)
def edit(student_id):
    student = get_or_404('students', student_id)
    form = StudentForm(obj=student)
    try:
        populate_student_form(form)
    except BackendError as e:
        flash_backend_error(e, 'Load Student Form')
        return redirect(url_for('students.index'))

    if request.method == 'GET':
        form.section_id.data = student.section_id or 0
        form.parent_id.data = student.parent_id or 0

    if form.validate_on_submit():
        try:
            db_service.update('students', student_id, student_data(form))
            flash('Student updated successfully!', 'success')
            return redirect(url_for('students.detail', student_id=student_id))
        except BackendError as e:
            flash_backend_error(e, 'Update Student')
    elif request.method == 'POST':
        flash_form_errors(form)

    return render_template('student_form.html', form=form, student=student)


@students_bp.route('/<int:student_id>/delete', methods=['POST'])
@role_required(*EDITOR_ROLES)
def delete(student_id):
    try:
        if db_service.delete('students', student_id):
            flash('Student deleted successfully!', 'success')
        else:
            flash('Student not found!', 'error')
    except BackendError as e:
        flash_backend_error(e, 'Delete Student')
    return redirect(url_for('students.index'))
