"""
Authentication against the users table.

A successful sign-in stores a signed JWT session claim (sub, email, role)
in the Flask session; the route guard decodes it on every request.
"""
import logging
from datetime import datetime, timedelta, timezone

import bcrypt
from flask import (Blueprint, current_app, flash, redirect, render_template, request,
                   session, url_for)
from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy import func, select

from . import db
from .forms import LoginForm, RegisterForm
from .models import ROLES, User

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__, url_prefix='/auth')

SESSION_KEY = 'access_token'


class AuthError(Exception):
    pass


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt()).decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def find_user_by_email(email):
    return db.session.scalar(select(User).where(func.lower(User.email) == email.strip().lower()))


def sign_in_with_email(email: str, password: str) -> User:
    user = find_user_by_email(email)
    if not user or not verify_password(password, user.password_hash):
        raise AuthError('Invalid email or password.')
    if not user.is_active:
        raise AuthError('This account is inactive. Please contact the PTA administrator.')
    return user


def sign_up_with_email(email: str, password: str, full_name: str, role: str = 'parent', phone=None) -> User:
    if role not in ROLES:
        raise AuthError(f"Unknown role '{role}'")
    if find_user_by_email(email):
        raise AuthError('An account with this email already exists.')

    user = User(
        email=email.strip().lower(),
        full_name=full_name,
        role=role,
        phone=phone,
        is_active=True,
        password_hash=hash_password(password),
    )
    db.session.add(user)
    db.session.commit()
    logger.info("Created %s account for %s", role, user.email)
    return user


def issue_session_token(user: User) -> str:
    expires = datetime.now(timezone.utc) + timedelta(minutes=current_app.config['SESSION_TOKEN_MINUTES'])
    claims = {
        'sub': str(user.id),
        'email': user.email,
        'role': user.role,
        'exp': expires,
    }
    return jwt.encode(claims, current_app.config['SECRET_KEY'], algorithm=current_app.config['JWT_ALGORITHM'])


def decode_session_token(token: str) -> dict:
    try:
        return jwt.decode(token, current_app.config['SECRET_KEY'],
                          algorithms=[current_app.config['JWT_ALGORITHM']])
    except ExpiredSignatureError:
        raise AuthError('Session expired')
    except JWTError:
        raise AuthError('Invalid session')


def start_session(user: User):
    session.clear()
    session[SESSION_KEY] = issue_session_token(user)
    session.permanent = True


def sign_out():
    session.clear()


def get_session_claims():
    """Claims of the current session, None when signed out."""
    token = session.get(SESSION_KEY)
    if not token:
        return None
    return decode_session_token(token)


def get_active_claims():
    """Session claims with role and email read back from the users row.

    A session whose account was removed or deactivated is cleared and
    reported as an ``AuthError``.
    """
    claims = get_session_claims()
    if not claims:
        return None
    try:
        user = db.session.get(User, int(claims['sub']))
    except (KeyError, TypeError, ValueError):
        user = None
    if user is None or not user.is_active:
        sign_out()
        raise AuthError('Account is no longer active')
    return dict(claims, role=user.role, email=user.email)


def safe_redirect_target(target):
    # Only local absolute paths are honoured
    if target and target.startswith('/') and not target.startswith('//'):
        return target
    return None


@auth_bp.route('/login', methods=['GET', 'POST'])
def login():
    form = LoginForm()
    redirect_to = safe_redirect_target(request.args.get('redirectTo'))

    if form.validate_on_submit():
        try:
            user = sign_in_with_email(form.email.data, form.password.data)
        except AuthError as e:
            logger.info("Failed sign in for %s", form.email.data)
            flash(str(e), 'error')
        else:
            start_session(user)
            flash('Login successful!', 'success')
            return redirect(redirect_to or url_for('dashboard.index'))

    return render_template('login.html', form=form, redirect_to=redirect_to)


@auth_bp.route('/register', methods=['GET', 'POST'])
def register():
    form = RegisterForm()
    if form.validate_on_submit():
        try:
            user = sign_up_with_email(form.email.data, form.password.data, form.full_name.data)
        except AuthError as e:
            flash(str(e), 'error')
        else:
            start_session(user)
            flash('Account created successfully!', 'success')
            return redirect(url_for('dashboard.index'))

    return render_template('register.html', form=form)


@auth_bp.route('/logout')
def logout():
    sign_out()
    flash('You have been logged out successfully!', 'info')
    return redirect(url_for('auth.login'))
