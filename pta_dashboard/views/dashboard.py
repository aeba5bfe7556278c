from flask import Blueprint, g, redirect, render_template

from ..backend import BackendError, db_service
from ..guard import EDITOR_ROLES, can_access, current_role
from ..stats import dashboard_stats
from . import flash_backend_error

dashboard_bp = Blueprint('dashboard', __name__)

QUICK_ACTIONS = [
    {'name': 'Record Income', 'href': '/dashboard/income#record'},
    {'name': 'Record Expense', 'href': '/dashboard/expenses#record'},
    {'name': 'Add Student', 'href': '/dashboard/students/new', 'roles': EDITOR_ROLES},
    {'name': 'Add Parent', 'href': '/dashboard/parents/new', 'roles': EDITOR_ROLES},
    {'name': 'View Reports', 'href': '/dashboard/reports'},
]


def quick_actions_for(role):
    return [
        action for action in QUICK_ACTIONS
        if can_access(role, action['href'].split('#')[0]) and role in action.get('roles', (role,))
    ]


@dashboard_bp.route('/')
def home():
    return render_template('landing.html', signed_in='user_id' in g)


@dashboard_bp.route('/dashboard')
def index():
    stats = None
    try:
        stats = dashboard_stats(db_service)
    except BackendError as e:
        flash_backend_error(e, 'Get Dashboard Stats')

    role = current_role()
    return render_template('dashboard.html', stats=stats, quick_actions=quick_actions_for(role))


# Older bookmarks without the /dashboard prefix
@dashboard_bp.route('/<any(income, expenses, students, parents, reports, settings):section>')
def legacy_redirect(section):
    return redirect(f'/dashboard/{section}')
