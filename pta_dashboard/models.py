from datetime import datetime, date

from . import db

ROLES = ('admin', 'principal', 'teacher', 'treasurer', 'parent')
TRANSACTION_STATUSES = ('pending', 'completed', 'approved', 'rejected')
INCOME_PAYMENT_METHODS = ('Cash', 'Check', 'Bank Transfer', 'GCash', 'PayMaya')
EXPENSE_PAYMENT_METHODS = ('Cash', 'Check', 'Bank Transfer')
PTA_CATEGORY_NAME = 'PTA Contribution'


class TimestampMixin:
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


# Database Models
class User(TimestampMixin, db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False, unique=True)
    full_name = db.Column(db.String(200), nullable=False)
    role = db.Column(db.String(20), nullable=False, default='parent')
    phone = db.Column(db.String(50))
    is_active = db.Column(db.Boolean, default=True)
    password_hash = db.Column(db.String(128))

    __table_args__ = (
        db.CheckConstraint(
            "role IN ('admin', 'principal', 'teacher', 'treasurer', 'parent')",
            name='ck_users_role',
        ),
    )


class Grade(TimestampMixin, db.Model):
    __tablename__ = 'grades'

    id = db.Column(db.Integer, primary_key=True)
    grade_name = db.Column(db.String(50), nullable=False, unique=True)
    grade_level = db.Column(db.Integer, nullable=False, unique=True)
    is_active = db.Column(db.Boolean, default=True)


class Teacher(TimestampMixin, db.Model):
    __tablename__ = 'teachers'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'))
    employee_id = db.Column(db.String(50), unique=True)
    department = db.Column(db.String(100))
    position = db.Column(db.String(100))
    hire_date = db.Column(db.Date)
    is_active = db.Column(db.Boolean, default=True)

    user = db.relationship('User', backref='teacher_profile')

    @property
    def full_name(self):
        return self.user.full_name if self.user else 'Unknown'


class Section(TimestampMixin, db.Model):
    __tablename__ = 'sections'

    id = db.Column(db.Integer, primary_key=True)
    section_name = db.Column(db.String(100), nullable=False)
    grade_id = db.Column(db.Integer, db.ForeignKey('grades.id', ondelete='RESTRICT'))
    teacher_id = db.Column(db.Integer, db.ForeignKey('teachers.id', ondelete='SET NULL'))
    school_year = db.Column(db.String(20), nullable=False)
    max_students = db.Column(db.Integer, default=40)
    is_active = db.Column(db.Boolean, default=True)

    grade = db.relationship('Grade', backref='sections')
    teacher = db.relationship('Teacher', backref='sections')

    __table_args__ = (
        db.UniqueConstraint('section_name', 'grade_id', 'school_year', name='unique_section_per_year'),
    )

    @property
    def label(self):
        grade_name = self.grade.grade_name if self.grade else 'No grade'
        return f"{grade_name} - {self.section_name}"


class Parent(TimestampMixin, db.Model):
    __tablename__ = 'parents'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'))
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=False)
    middle_name = db.Column(db.String(100))
    contact_number = db.Column(db.String(50))
    email = db.Column(db.String(255), unique=True)
    address = db.Column(db.String(500))
    occupation = db.Column(db.String(100))
    emergency_contact = db.Column(db.String(200))
    emergency_phone = db.Column(db.String(50))
    relationship_to_student = db.Column(db.String(50), default='Parent')
    pta_contribution_paid = db.Column(db.Boolean, default=False)
    pta_contribution_date = db.Column(db.DateTime)

    user = db.relationship('User', backref='parent_profile')

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}"


class Student(TimestampMixin, db.Model):
    __tablename__ = 'students'

    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.String(50), nullable=False, unique=True)
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=False)
    middle_name = db.Column(db.String(100))
    birth_date = db.Column(db.Date)
    gender = db.Column(db.String(10))
    section_id = db.Column(db.Integer, db.ForeignKey('sections.id', ondelete='SET NULL'))
    parent_id = db.Column(db.Integer, db.ForeignKey('parents.id', ondelete='CASCADE'))
    enrollment_date = db.Column(db.Date, default=date.today)
    is_active = db.Column(db.Boolean, default=True)
    pta_contribution_paid = db.Column(db.Boolean, default=False)
    pta_contribution_amount = db.Column(db.Numeric(10, 2), default=0)

    section = db.relationship('Section', backref='students')
    parent = db.relationship('Parent', backref='students')

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}"

    @property
    def grade_name(self):
        if self.section and self.section.grade:
            return self.section.grade.grade_name
        return None


class IncomeCategory(TimestampMixin, db.Model):
    __tablename__ = 'income_categories'

    id = db.Column(db.Integer, primary_key=True)
    category_name = db.Column(db.String(100), nullable=False, unique=True)
    description = db.Column(db.Text)
    is_per_family = db.Column(db.Boolean, default=False)
    default_amount = db.Column(db.Numeric(10, 2))
    is_active = db.Column(db.Boolean, default=True)


class ExpenseCategory(TimestampMixin, db.Model):
    __tablename__ = 'expense_categories'

    id = db.Column(db.Integer, primary_key=True)
    category_name = db.Column(db.String(100), nullable=False, unique=True)
    description = db.Column(db.Text)
    budget_limit = db.Column(db.Numeric(10, 2))
    is_active = db.Column(db.Boolean, default=True)


class IncomeTransaction(TimestampMixin, db.Model):
    __tablename__ = 'income_transactions'

    id = db.Column(db.Integer, primary_key=True)
    transaction_number = db.Column(db.String(50), nullable=False, unique=True)
    parent_id = db.Column(db.Integer, db.ForeignKey('parents.id', ondelete='CASCADE'))
    student_id = db.Column(db.Integer, db.ForeignKey('students.id', ondelete='SET NULL'))
    income_category_id = db.Column(db.Integer, db.ForeignKey('income_categories.id', ondelete='RESTRICT'))
    amount = db.Column(db.Numeric(10, 2), nullable=False)
    payment_method = db.Column(db.String(20), default='Cash')
    reference_number = db.Column(db.String(100))
    description = db.Column(db.String(400))
    notes = db.Column(db.Text)
    receipt_issued = db.Column(db.Boolean, default=False)
    recorded_by = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'))
    school_year = db.Column(db.String(20), nullable=False)
    transaction_date = db.Column(db.Date, default=date.today)
    status = db.Column(db.String(20), nullable=False, default='completed')

    parent = db.relationship('Parent', backref='income_transactions')
    student = db.relationship('Student', backref='income_transactions')
    income_category = db.relationship('IncomeCategory', backref='transactions')
    recorded_by_user = db.relationship('User', foreign_keys=[recorded_by])

    __table_args__ = (
        db.CheckConstraint('amount > 0', name='ck_income_amount_positive'),
    )


class ExpenseTransaction(TimestampMixin, db.Model):
    __tablename__ = 'expense_transactions'

    id = db.Column(db.Integer, primary_key=True)
    transaction_number = db.Column(db.String(50), nullable=False, unique=True)
    expense_category_id = db.Column(db.Integer, db.ForeignKey('expense_categories.id', ondelete='RESTRICT'))
    amount = db.Column(db.Numeric(10, 2), nullable=False)
    description = db.Column(db.String(400), nullable=False)
    vendor_name = db.Column(db.String(200))
    payment_method = db.Column(db.String(20), default='Cash')
    reference_number = db.Column(db.String(100))
    approved_by = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'))
    recorded_by = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'))
    expense_date = db.Column(db.Date, default=date.today)
    school_year = db.Column(db.String(20), nullable=False)
    status = db.Column(db.String(20), nullable=False, default='pending')

    expense_category = db.relationship('ExpenseCategory', backref='transactions')
    approved_by_user = db.relationship('User', foreign_keys=[approved_by])
    recorded_by_user = db.relationship('User', foreign_keys=[recorded_by])

    __table_args__ = (
        db.CheckConstraint('amount > 0', name='ck_expense_amount_positive'),
    )


class Receipt(db.Model):
    __tablename__ = 'receipts'

    id = db.Column(db.Integer, primary_key=True)
    income_transaction_id = db.Column(db.Integer, db.ForeignKey('income_transactions.id', ondelete='CASCADE'))
    expense_transaction_id = db.Column(db.Integer, db.ForeignKey('expense_transactions.id', ondelete='CASCADE'))
    file_name = db.Column(db.String(255), nullable=False)
    file_path = db.Column(db.String(500), nullable=False)
    file_size = db.Column(db.Integer)
    mime_type = db.Column(db.String(100))
    uploaded_by = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    income_transaction = db.relationship(
        'IncomeTransaction', backref=db.backref('receipts', cascade='all, delete-orphan'))
    expense_transaction = db.relationship(
        'ExpenseTransaction', backref=db.backref('receipts', cascade='all, delete-orphan'))

    # A receipt belongs to exactly one transaction
    __table_args__ = (
        db.CheckConstraint(
            '(income_transaction_id IS NOT NULL AND expense_transaction_id IS NULL) OR '
            '(income_transaction_id IS NULL AND expense_transaction_id IS NOT NULL)',
            name='receipt_transaction_check',
        ),
    )


class SchoolSetting(TimestampMixin, db.Model):
    __tablename__ = 'school_settings'

    id = db.Column(db.Integer, primary_key=True)
    school_name = db.Column(db.String(200), nullable=False, default='School Name')
    school_address = db.Column(db.String(500))
    contact_number = db.Column(db.String(50))
    email = db.Column(db.String(255))
    school_year = db.Column(db.String(20), nullable=False)
    pta_contribution_amount = db.Column(db.Numeric(10, 2), nullable=False, default=250)


# Table names used by the generic data-access helper
TABLES = {
    'users': User,
    'grades': Grade,
    'teachers': Teacher,
    'sections': Section,
    'parents': Parent,
    'students': Student,
    'income_categories': IncomeCategory,
    'expense_categories': ExpenseCategory,
    'income_transactions': IncomeTransaction,
    'expense_transactions': ExpenseTransaction,
    'receipts': Receipt,
    'school_settings': SchoolSetting,
}
