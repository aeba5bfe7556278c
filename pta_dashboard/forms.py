from decimal import Decimal

from flask_wtf import FlaskForm
from flask_wtf.file import FileField
from wtforms import (BooleanField, DateField, DecimalField, IntegerField, PasswordField,
                     SelectField, StringField, TextAreaField)
from wtforms.validators import (DataRequired, EqualTo, InputRequired, Length, NumberRange, Optional,
                                Regexp)

from .models import EXPENSE_PAYMENT_METHODS, INCOME_PAYMENT_METHODS, ROLES

EMAIL_REGEX = r'^[^@\s]+@[^@\s]+\.[^@\s]+$'
NONE_CHOICE = (0, '(none)')


def email_field(label='Email', required=True):
    validators = [DataRequired()] if required else [Optional()]
    validators += [Regexp(EMAIL_REGEX, message='Invalid email address.'), Length(max=255)]
    return StringField(label, validators=validators)


def money_field(label, required=True):
    validators = [DataRequired()] if required else [Optional()]
    validators.append(NumberRange(min=Decimal('0.01'), message='Amount must be greater than zero.'))
    return DecimalField(label, places=2, validators=validators)


def optional_id(value):
    """Select fields use 0 for 'no selection'."""
    return value or None


class LoginForm(FlaskForm):
    email = email_field()
    password = PasswordField('Password', validators=[DataRequired()])


class RegisterForm(FlaskForm):
    full_name = StringField('Full name', validators=[DataRequired(), Length(max=200)])
    email = email_field()
    password = PasswordField('Password', validators=[DataRequired(), Length(min=8)])
    confirm_password = PasswordField(
        'Confirm password', validators=[DataRequired(), EqualTo('password', message='Passwords do not match!')]
    )


class StudentForm(FlaskForm):
    student_id = StringField('Student ID', validators=[DataRequired(), Length(max=50)])
    first_name = StringField('First name', validators=[DataRequired(), Length(max=100)])
    middle_name = StringField('Middle name', validators=[Optional(), Length(max=100)])
    last_name = StringField('Last name', validators=[DataRequired(), Length(max=100)])
    birth_date = DateField('Birth date', validators=[Optional()])
    gender = SelectField('Gender', choices=[('', '(none)'), ('Male', 'Male'), ('Female', 'Female')],
                         validators=[Optional()])
    section_id = SelectField('Section', coerce=int, validators=[Optional()])
    parent_id = SelectField('Parent', coerce=int, validators=[Optional()])
    is_active = BooleanField('Active', default=True)
    pta_contribution_paid = BooleanField('PTA contribution paid')
    pta_contribution_amount = DecimalField('PTA amount paid', places=2, validators=[Optional()])


class ParentForm(FlaskForm):
    first_name = StringField('First name', validators=[DataRequired(), Length(max=100)])
    middle_name = StringField('Middle name', validators=[Optional(), Length(max=100)])
    last_name = StringField('Last name', validators=[DataRequired(), Length(max=100)])
    email = email_field(required=False)
    contact_number = StringField('Contact number', validators=[Optional(), Length(max=50)])
    address = StringField('Address', validators=[Optional(), Length(max=500)])
    occupation = StringField('Occupation', validators=[Optional(), Length(max=100)])
    emergency_contact = StringField('Emergency contact', validators=[Optional(), Length(max=200)])
    emergency_phone = StringField('Emergency phone', validators=[Optional(), Length(max=50)])
    relationship_to_student = StringField('Relationship', default='Parent',
                                          validators=[DataRequired(), Length(max=50)])
    pta_contribution_paid = BooleanField('PTA contribution paid')


class TeacherForm(FlaskForm):
    full_name = StringField('Full name', validators=[DataRequired(), Length(max=200)])
    email = email_field()
    phone = StringField('Phone', validators=[Optional(), Length(max=50)])
    employee_id = StringField('Employee ID', validators=[Optional(), Length(max=50)])
    department = StringField('Department', validators=[Optional(), Length(max=100)])
    position = StringField('Position', validators=[Optional(), Length(max=100)])
    hire_date = DateField('Hire date', validators=[Optional()])
    is_active = BooleanField('Active', default=True)


class IncomeForm(FlaskForm):
    income_category_id = SelectField('Category', coerce=int, validators=[DataRequired()])
    parent_id = SelectField('Parent', coerce=int, validators=[DataRequired()])
    student_id = SelectField('Student', coerce=int, validators=[Optional()])
    amount = money_field('Amount', required=False)
    payment_method = SelectField('Payment method', choices=[(m, m) for m in INCOME_PAYMENT_METHODS])
    reference_number = StringField('Reference number', validators=[Optional(), Length(max=100)])
    description = StringField('Description', validators=[Optional(), Length(max=400)])
    notes = TextAreaField('Notes', validators=[Optional()])
    transaction_date = DateField('Date', validators=[Optional()])
    status = SelectField('Status', choices=[('completed', 'Completed'), ('pending', 'Pending')])
    receipt = FileField('Receipt')


class ExpenseForm(FlaskForm):
    expense_category_id = SelectField('Category', coerce=int, validators=[DataRequired()])
    amount = money_field('Amount')
    description = StringField('Description', validators=[DataRequired(), Length(max=400)])
    vendor_name = StringField('Vendor', validators=[DataRequired(), Length(max=200)])
    payment_method = SelectField('Payment method', choices=[(m, m) for m in EXPENSE_PAYMENT_METHODS])
    reference_number = StringField('Reference number', validators=[Optional(), Length(max=100)])
    expense_date = DateField('Expense date', validators=[Optional()])
    receipt = FileField('Receipt')


class SchoolSettingsForm(FlaskForm):
    school_name = StringField('School name', validators=[DataRequired(), Length(max=200)])
    school_address = StringField('School address', validators=[Optional(), Length(max=500)])
    contact_number = StringField('Contact number', validators=[Optional(), Length(max=50)])
    email = email_field(required=False)
    school_year = StringField('School year', validators=[
        DataRequired(), Regexp(r'^\d{4}-\d{4}$', message='Use the format 2024-2025.')
    ])
    pta_contribution_amount = money_field('PTA contribution amount')


class MemberForm(FlaskForm):
    role = SelectField('Role', choices=[(r, r.title()) for r in ROLES])
    is_active = BooleanField('Active')


class GradeForm(FlaskForm):
    grade_name = StringField('Grade name', validators=[DataRequired(), Length(max=50)])
    grade_level = IntegerField('Grade level', validators=[InputRequired(), NumberRange(min=0)])


class SectionForm(FlaskForm):
    section_name = StringField('Section name', validators=[DataRequired(), Length(max=100)])
    grade_id = SelectField('Grade', coerce=int, validators=[DataRequired()])
    teacher_id = SelectField('Adviser', coerce=int, validators=[Optional()])
    max_students = IntegerField('Max students', default=40, validators=[Optional(), NumberRange(min=1)])


class IncomeCategoryForm(FlaskForm):
    category_name = StringField('Category name', validators=[DataRequired(), Length(max=100)])
    description = StringField('Description', validators=[Optional()])
    is_per_family = BooleanField('Per family')
    default_amount = money_field('Default amount', required=False)


class ExpenseCategoryForm(FlaskForm):
    category_name = StringField('Category name', validators=[DataRequired(), Length(max=100)])
    description = StringField('Description', validators=[Optional()])
    budget_limit = money_field('Budget limit', required=False)
