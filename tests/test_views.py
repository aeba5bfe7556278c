import io
import os
from decimal import Decimal

from pta_dashboard import db
from pta_dashboard.models import (ExpenseTransaction, Grade, IncomeTransaction, Parent, Receipt,
                                  SchoolSetting, Student, Teacher, User)
from pta_dashboard.storage import storage

from .conftest import PASSWORD, create_user


def income_form(school, **overrides):
    data = {
        'income_category_id': school['pta'],
        'parent_id': school['parent'],
        'student_id': school['student'],
        'amount': '',
        'payment_method': 'Cash',
        'status': 'completed',
    }
    data.update(overrides)
    return data


def student_form(**overrides):
    data = {
        'student_id': 'VEL-2024-010',
        'first_name': 'Lito',
        'last_name': 'Garcia',
        'gender': 'Male',
        'section_id': '0',
        'parent_id': '0',
        'is_active': 'y',
    }
    data.update(overrides)
    return data


def test_health_reports_database(client):
    response = client.get('/health')
    assert response.status_code == 200
    assert response.json['status'] == 'ok'
    assert response.json['database'] == 'ok'


def test_unknown_page_renders_404(client):
    response = client.get('/no-such-page')
    assert response.status_code == 404
    assert b'Page not found.' in response.data


def test_security_headers(client):
    response = client.get('/')
    assert response.headers['X-Frame-Options'] == 'SAMEORIGIN'
    assert response.headers['X-Content-Type-Options'] == 'nosniff'
    assert 'default-src' in response.headers['Content-Security-Policy']


def test_legacy_paths_redirect(client, login):
    login('treasurer')
    response = client.get('/income')
    assert response.status_code == 302
    assert response.location.endswith('/dashboard/income')


def test_pta_payment_marks_student_and_parent_paid(app, client, login, school):
    login('treasurer')
    response = client.post('/dashboard/income/new', data=income_form(school))
    assert response.status_code == 302

    with app.app_context():
        transaction = db.session.scalar(db.select(IncomeTransaction))
        assert transaction.amount == Decimal('250.00')
        assert transaction.transaction_number.startswith('INC-')
        assert transaction.description == 'PTA Contribution'
        assert transaction.school_year == '2024-2025'

        student = db.session.get(Student, school['student'])
        assert student.pta_contribution_paid is True
        assert student.pta_contribution_amount == Decimal('250.00')

        parent = db.session.get(Parent, school['parent'])
        assert parent.pta_contribution_paid is True
        assert parent.pta_contribution_date is not None


def test_pending_payment_marks_paid_once_completed(app, client, login, school):
    login('treasurer')
    client.post('/dashboard/income/new', data=income_form(school, status='pending'))

    with app.app_context():
        assert db.session.get(Student, school['student']).pta_contribution_paid is False
        transaction_id = db.session.scalar(db.select(IncomeTransaction.id))

    client.post(f'/dashboard/income/{transaction_id}/status', data={'status': 'completed'})
    with app.app_context():
        assert db.session.get(Student, school['student']).pta_contribution_paid is True


def test_other_income_does_not_change_student_status(app, client, login, school):
    login('treasurer')
    client.post('/dashboard/income/new',
                data=income_form(school, income_category_id=school['donation'], amount='500'))
    with app.app_context():
        assert db.session.scalar(db.select(db.func.count(IncomeTransaction.id))) == 1
        assert db.session.get(Student, school['student']).pta_contribution_paid is False


def test_income_rejects_student_of_another_parent(app, client, login, school):
    login('treasurer')
    client.post('/dashboard/income/new', data=income_form(school, parent_id=school['other_parent']))
    with app.app_context():
        assert db.session.scalar(db.select(db.func.count(IncomeTransaction.id))) == 0

    response = client.get('/dashboard/income')
    assert b'does not belong to this parent' in response.data


def test_income_without_amount_or_default_is_rejected(app, client, login, school):
    login('treasurer')
    client.post('/dashboard/income/new',
                data=income_form(school, income_category_id=school['donation'], student_id='0'))
    with app.app_context():
        assert db.session.scalar(db.select(db.func.count(IncomeTransaction.id))) == 0


def test_income_list_and_search(client, login, school):
    login('treasurer')
    client.post('/dashboard/income/new', data=income_form(school, reference_number='GC-12345'))

    listing = client.get('/dashboard/income')
    assert listing.status_code == 200
    assert b'Maria Santos' in listing.data

    found = client.get('/dashboard/income?q=gc-123')
    assert b'Maria Santos' in found.data
    missing = client.get('/dashboard/income?q=nothing-like-this')
    assert b'No income transactions found.' in missing.data


def test_income_receipt_is_stored_and_linked(app, client, login, school):
    login('treasurer')
    data = income_form(school)
    data['receipt'] = (io.BytesIO(b'%PDF-1.4 official receipt'), 'or-0001.pdf', 'application/pdf')
    response = client.post('/dashboard/income/new', data=data, content_type='multipart/form-data')
    assert response.status_code == 302

    with app.app_context():
        transaction = db.session.scalar(db.select(IncomeTransaction))
        assert transaction.receipt_issued is True
        receipt = db.session.scalar(db.select(Receipt))
        assert receipt.income_transaction_id == transaction.id
        assert receipt.file_path.startswith(f'income/{transaction.id}/')
        with open(storage.open_path(receipt.file_path), 'rb') as fh:
            assert fh.read() == b'%PDF-1.4 official receipt'
        transaction_id = transaction.id
        stored = storage.open_path(receipt.file_path)

    login('admin')
    client.post(f'/dashboard/income/{transaction_id}/delete')
    assert not os.path.exists(stored)


def test_expense_with_receipt_then_approval(app, client, login, school):
    login('treasurer')
    response = client.post('/dashboard/expenses/new', data={
        'expense_category_id': school['supplies'],
        'amount': '350.50',
        'description': 'Bond paper',
        'vendor_name': 'National Book Store',
        'payment_method': 'Cash',
        'receipt': (io.BytesIO(b'%PDF-1.4 receipt'), 'receipt.pdf', 'application/pdf'),
    }, content_type='multipart/form-data')
    assert response.status_code == 302

    with app.app_context():
        expense = db.session.scalar(db.select(ExpenseTransaction))
        assert expense.status == 'pending'
        assert expense.transaction_number.startswith('EXP-')
        receipt = db.session.scalar(db.select(Receipt))
        assert receipt.expense_transaction_id == expense.id
        assert receipt.mime_type == 'application/pdf'
        expense_id = expense.id

    # Treasurers record expenses but cannot approve them
    client.post(f'/dashboard/expenses/{expense_id}/approve')
    with app.app_context():
        assert db.session.get(ExpenseTransaction, expense_id).status == 'pending'

    admin_id = login('admin')
    client.post(f'/dashboard/expenses/{expense_id}/approve')
    with app.app_context():
        expense = db.session.get(ExpenseTransaction, expense_id)
        assert expense.status == 'approved'
        assert expense.approved_by == admin_id

    # Only pending rows can be reviewed
    client.post(f'/dashboard/expenses/{expense_id}/reject')
    with app.app_context():
        assert db.session.get(ExpenseTransaction, expense_id).status == 'approved'

    page = client.get('/dashboard/expenses')
    assert page.status_code == 200
    assert b'Bond paper' in page.data


def test_deleting_expense_removes_its_receipts(app, client, login, school):
    login('admin')
    client.post('/dashboard/expenses/new', data={
        'expense_category_id': school['supplies'],
        'amount': '100',
        'description': 'Markers',
        'vendor_name': 'Shop',
        'payment_method': 'Cash',
        'receipt': (io.BytesIO(b'png'), 'markers.png', 'image/png'),
    }, content_type='multipart/form-data')
    with app.app_context():
        expense_id = db.session.scalar(db.select(ExpenseTransaction.id))
        stored = storage.open_path(db.session.scalar(db.select(Receipt.file_path)))
    assert os.path.isfile(stored)

    client.post(f'/dashboard/expenses/{expense_id}/delete')
    with app.app_context():
        assert db.session.get(ExpenseTransaction, expense_id) is None
        assert db.session.scalar(db.select(db.func.count(Receipt.id))) == 0
    assert not os.path.exists(stored)


def test_student_crud(app, client, login, school):
    login('principal')
    new_page = client.get('/dashboard/students/new')
    assert b'VEL-' in new_page.data

    response = client.post('/dashboard/students/new',
                           data=student_form(section_id=str(school['section']),
                                             parent_id=str(school['parent'])))
    assert response.status_code == 302
    with app.app_context():
        student = db.session.scalar(db.select(Student).filter_by(student_id='VEL-2024-010'))
        assert student.section_id == school['section']
        student_id = student.id

    client.post(f'/dashboard/students/{student_id}/edit', data=student_form(first_name='Carlito'))
    with app.app_context():
        student = db.session.get(Student, student_id)
        assert student.first_name == 'Carlito'
        assert student.section_id is None

    detail = client.get(f'/dashboard/students/{student_id}')
    assert b'Carlito Garcia' in detail.data

    client.post(f'/dashboard/students/{student_id}/delete')
    with app.app_context():
        assert db.session.get(Student, student_id) is None


def test_student_list_filters(client, login, school):
    login('teacher')
    assert b'Ana Santos' in client.get('/dashboard/students?q=maria').data
    assert b'Ana Santos' in client.get('/dashboard/students?pta=unpaid').data
    assert b'Ana Santos' not in client.get('/dashboard/students?pta=paid').data
    assert b'Ana Santos' in client.get(f'/dashboard/students?grade={school["grade"]}').data


def test_teacher_role_cannot_edit_students(app, client, login, school):
    login('teacher')
    response = client.post('/dashboard/students/new', data=student_form())
    assert response.status_code == 302
    assert response.location.endswith('/dashboard')
    with app.app_context():
        assert db.session.scalar(db.select(db.func.count(Student.id))) == 1


def test_admin_adds_teacher_with_account(app, client, login):
    login('admin')
    response = client.post('/dashboard/teachers/new', data={
        'full_name': 'Liza Mendoza',
        'email': 'liza@example.com',
        'employee_id': 'T-001',
        'is_active': 'y',
    })
    assert response.status_code == 302
    with app.app_context():
        teacher = db.session.scalar(db.select(Teacher))
        assert teacher.user.role == 'teacher'
        assert teacher.user.email == 'liza@example.com'
        teacher_id = teacher.id

    client.post(f'/dashboard/teachers/{teacher_id}/edit', data={
        'full_name': 'Liza M. Mendoza',
        'email': 'liza@example.com',
        'position': 'Teacher III',
        'is_active': 'y',
    })
    with app.app_context():
        teacher = db.session.get(Teacher, teacher_id)
        assert teacher.position == 'Teacher III'
        assert teacher.full_name == 'Liza M. Mendoza'

    assert b'Liza M. Mendoza' in client.get('/dashboard/teachers').data

    with app.app_context():
        user_id = db.session.get(Teacher, teacher_id).user_id
    client.post(f'/dashboard/teachers/{teacher_id}/delete')
    with app.app_context():
        assert db.session.get(Teacher, teacher_id) is None
        assert db.session.get(User, user_id).is_active is False


def test_parents_search_and_create(app, client, login, school):
    login('admin')
    client.post('/dashboard/parents/new', data={
        'first_name': 'Rosa',
        'last_name': 'Lim',
        'email': 'ROSA@example.com',
        'relationship_to_student': 'Guardian',
        'pta_contribution_paid': 'y',
    })
    with app.app_context():
        parent = db.session.scalar(db.select(Parent).filter_by(last_name='Lim'))
        assert parent.email == 'rosa@example.com'
        assert parent.pta_contribution_date is not None

    found = client.get('/dashboard/parents?q=rosa')
    assert b'Rosa Lim' in found.data
    assert b'Maria Santos' not in found.data


def test_dashboard_and_reports_show_totals(client, login, school):
    login('treasurer')
    client.post('/dashboard/income/new', data=income_form(school, amount='5750'))

    dashboard = client.get('/dashboard')
    assert dashboard.status_code == 200
    assert '₱5,750.00'.encode() in dashboard.data

    for period in ('all', 'year', 'month'):
        report = client.get(f'/dashboard/reports?period={period}')
        assert report.status_code == 200
    assert b'PTA Contribution' in client.get('/dashboard/reports').data


def test_settings_manage_school_and_members(app, client, login):
    admin_id = login('admin')
    assert client.get('/dashboard/settings').status_code == 200

    client.post('/dashboard/settings/school', data={
        'school-school_name': 'Vel Elementary School',
        'school-school_year': '2025-2026',
        'school-pta_contribution_amount': '300',
    })
    with app.app_context():
        setting = db.session.scalar(db.select(SchoolSetting))
        assert setting.school_year == '2025-2026'
        assert setting.pta_contribution_amount == Decimal('300.00')

    member_id = login('parent')
    login('admin')
    client.post(f'/dashboard/settings/members/{member_id}', data={'role': 'treasurer', 'is_active': 'y'})
    client.post(f'/dashboard/settings/members/{admin_id}', data={'role': 'parent', 'is_active': 'y'})
    with app.app_context():
        assert db.session.get(User, member_id).role == 'treasurer'
        assert db.session.get(User, admin_id).role == 'admin'


def test_member_changes_apply_to_live_sessions(app, client, login):
    admin_id = login('admin')
    member_client = app.test_client()
    member_id = create_user(app, 'treasurer')
    member_client.post('/auth/login', data={'email': 'treasurer@example.com', 'password': PASSWORD})
    assert member_client.get('/dashboard/income').status_code == 200

    client.post(f'/dashboard/settings/members/{member_id}', data={'role': 'parent', 'is_active': 'y'})
    demoted = member_client.get('/dashboard/income')
    assert demoted.status_code == 302
    assert demoted.location.endswith('/dashboard')

    client.post(f'/dashboard/settings/members/{member_id}', data={'role': 'parent'})
    deactivated = member_client.get('/dashboard')
    assert deactivated.status_code == 302
    assert '/auth/login' in deactivated.location

    # A deactivated account loses the session for good
    with app.app_context():
        db.session.get(User, member_id).is_active = True
        db.session.commit()
    assert member_client.get('/dashboard').status_code == 302

    with app.app_context():
        user = db.session.get(User, admin_id)
        user.is_active = False
        db.session.commit()
    response = client.get('/dashboard/settings')
    assert response.status_code == 302
    assert '/auth/login' in response.location


def test_settings_adds_lookups(app, client, login):
    login('admin')
    client.post('/dashboard/settings/grades', data={'grade-grade_name': 'Grade 2', 'grade-grade_level': '2'})
    client.post('/dashboard/settings/grades',
                data={'grade-grade_name': 'Kindergarten', 'grade-grade_level': '0'})
    with app.app_context():
        assert db.session.scalar(db.select(Grade.grade_level).where(Grade.grade_name == 'Kindergarten')) == 0
    client.post('/dashboard/settings/income-categories', data={
        'income-category_name': 'Field Trip', 'income-default_amount': '150',
    })
    client.post('/dashboard/settings/expense-categories', data={'expense-category_name': 'Repairs'})
    page = client.get('/dashboard/settings')
    for name in (b'Grade 2', b'Field Trip', b'Repairs'):
        assert name in page.data
