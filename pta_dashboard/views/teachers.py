import secrets

from flask import Blueprint, flash, redirect, render_template, request, url_for

from .. import db
from ..auth import find_user_by_email, hash_password
from ..backend import BackendError, db_service
from ..forms import TeacherForm
from ..guard import ADMIN_ROLES, current_role, role_required
from ..models import Teacher, User
from . import flash_backend_error, flash_form_errors, get_or_404

teachers_bp = Blueprint('teachers', __name__, url_prefix='/dashboard/teachers')


def create_teacher(form):
    """Create the teacher profile and its user row together; returns (teacher, one-time password)."""
    temporary_password = secrets.token_urlsafe(9)

    def operation():
        user = User(
            email=form.email.data.strip().lower(),
            full_name=form.full_name.data,
            phone=form.phone.data or None,
            role='teacher',
            is_active=form.is_active.data,
            password_hash=hash_password(temporary_password),
        )
        teacher = Teacher(
            user=user,
            employee_id=form.employee_id.data or None,
            department=form.department.data or None,
            position=form.position.data or None,
            hire_date=form.hire_date.data,
            is_active=form.is_active.data,
        )
        db.session.add(teacher)
        db.session.commit()
        return teacher

    return db_service.run(operation, 'Create Teacher'), temporary_password


def delete_teacher(teacher_id):
    """Remove the teacher profile and deactivate its sign-in account."""
    def operation():
        teacher = db.session.get(Teacher, teacher_id)
        if teacher is None:
            return False
        if teacher.user is not None:
            teacher.user.is_active = False
        db.session.delete(teacher)
        db.session.commit()
        return True

    return db_service.run(operation, 'Delete Teacher')


@teachers_bp.route('')
def index():
    teachers = []
    try:
        teachers = db_service.find_many('teachers', order_by='created_at', ascending=False)
    except BackendError as e:
        flash_backend_error(e, 'Get All Teachers')
    return render_template('teachers.html', teachers=teachers,
                           can_edit=current_role() in ADMIN_ROLES)


@teachers_bp.route('/new', methods=['GET', 'POST'])
@role_required(*ADMIN_ROLES)
def create():
    form = TeacherForm()
    if form.validate_on_submit():
        if find_user_by_email(form.email.data):
            flash('An account with this email already exists.', 'error')
        else:
            try:
                teacher, password = create_teacher(form)
                flash(f'Teacher {teacher.full_name} added. One-time password: {password}', 'success')
                return redirect(url_for('teachers.detail', teacher_id=teacher.id))
            except BackendError as e:
                flash_backend_error(e, 'Create Teacher')
    elif request.method == 'POST':
        flash_form_errors(form)

    return render_template('teacher_form.html', form=form, teacher=None)


@teachers_bp.route('/<int:teacher_id>')
def detail(teacher_id):
    teacher = get_or_404('teachers', teacher_id)
    return render_template('teacher_detail.html', teacher=teacher,
                           can_edit=current_role() in ADMIN_ROLES)


@teachers_bp.route('/<int:teacher_id>/edit', methods=['GET', 'POST'])
@role_required(*ADMIN_ROLES)
def edit(teacher_id):
    teacher = get_or_404('teachers', teacher_id)
    form = TeacherForm(obj=teacher)
    if request.method == 'GET' and teacher.user:
        form.full_name.data = teacher.user.full_name
        form.email.data = teacher.user.email
        form.phone.data = teacher.user.phone

    if form.validate_on_submit():
        existing = find_user_by_email(form.email.data)
        if existing and existing.id != teacher.user_id:
            flash('An account with this email already exists.', 'error')
            return render_template('teacher_form.html', form=form, teacher=teacher)
        try:
            db_service.update('teachers', teacher_id, {
                'employee_id': form.employee_id.data or None,
                'department': form.department.data or None,
                'position': form.position.data or None,
                'hire_date': form.hire_date.data,
                'is_active': form.is_active.data,
            })
            if teacher.user_id:
                db_service.update('users', teacher.user_id, {
                    'full_name': form.full_name.data,
                    'email': form.email.data.strip().lower(),
                    'phone': form.phone.data or None,
                })
            flash('Teacher updated successfully!', 'success')
            return redirect(url_for('teachers.detail', teacher_id=teacher_id))
        except BackendError as e:
            flash_backend_error(e, 'Update Teacher')
    elif request.method == 'POST':
        flash_form_errors(form)

    return render_template('teacher_form.html', form=form, teacher=teacher)


@teachers_bp.route('/<int:teacher_id>/delete', methods=['POST'])
@role_required(*ADMIN_ROLES)
def delete(teacher_id):
    try:
        if delete_teacher(teacher_id):
            flash('Teacher deleted successfully!', 'success')
        else:
            flash('Teacher not found!', 'error')
    except BackendError as e:
        flash_backend_error(e, 'Delete Teacher')
    return redirect(url_for('teachers.index'))
