"""
Route protection.

Every request is matched against static protected/auth/public path lists
and a static role whitelist before any view runs.
"""
import logging
import re
from functools import wraps
from urllib.parse import urlencode

from flask import flash, g, redirect, request

from .auth import AuthError, get_active_claims, safe_redirect_target
from .models import ROLES

logger = logging.getLogger(__name__)

LOGIN_PATH = '/auth/login'
DASHBOARD_PATH = '/dashboard'
DEFAULT_ROLE = 'parent'

# Routes that require authentication
PROTECTED_ROUTES = [
    '/dashboard',
    '/dashboard/:path*',
    '/students',
    '/students/:path*',
    '/parents',
    '/parents/:path*',
    '/income',
    '/income/:path*',
    '/expenses',
    '/expenses/:path*',
    '/reports',
    '/reports/:path*',
    '/settings',
    '/settings/:path*',
]

# Routes that redirect to the dashboard when already signed in
AUTH_ROUTES = ['/auth/login', '/auth/register']

# Public routes that don't require authentication
PUBLIC_ROUTES = ['/', '/health']

SKIPPED_PREFIXES = ('/static', '/storage', '/api', '/favicon')

ALL_ROLES = ROLES
FINANCE_ROLES = ('admin', 'treasurer')
REPORT_ROLES = ('admin', 'principal', 'treasurer')

# In-page actions
EDITOR_ROLES = ('admin', 'principal')
APPROVER_ROLES = ('admin',)
ADMIN_ROLES = ('admin',)

# Longest prefix wins
ROUTE_ROLES = {
    '/dashboard': ALL_ROLES,
    '/dashboard/income': FINANCE_ROLES,
    '/dashboard/expenses': FINANCE_ROLES,
    '/dashboard/students': ('admin', 'principal', 'teacher', 'treasurer'),
    '/dashboard/teachers': ('admin', 'principal'),
    '/dashboard/parents': ('admin', 'principal', 'treasurer'),
    '/dashboard/reports': REPORT_ROLES,
    '/dashboard/settings': ('admin',),
    '/income': FINANCE_ROLES,
    '/expenses': FINANCE_ROLES,
    '/reports': REPORT_ROLES,
    '/settings': ('admin',),
}

NAVIGATION = [
    {'name': 'Dashboard', 'href': '/dashboard'},
    {'name': 'Income', 'href': '/dashboard/income'},
    {'name': 'Expenses', 'href': '/dashboard/expenses'},
    {'name': 'Students', 'href': '/dashboard/students'},
    {'name': 'Teachers', 'href': '/dashboard/teachers'},
    {'name': 'Parents', 'href': '/dashboard/parents'},
    {'name': 'Reports', 'href': '/dashboard/reports'},
    {'name': 'Settings', 'href': '/dashboard/settings'},
]

_PROTECTED_PATTERNS = [
    re.compile('^' + route.replace(':path*', '.*') + '$') for route in PROTECTED_ROUTES
]


def is_protected_route(pathname):
    return any(pattern.match(pathname) for pattern in _PROTECTED_PATTERNS)


def is_auth_route(pathname):
    return pathname in AUTH_ROUTES


def is_public_route(pathname):
    return pathname in PUBLIC_ROUTES


def should_skip(pathname):
    return pathname.startswith(SKIPPED_PREFIXES) or '.' in pathname


def allowed_roles(pathname):
    """Whitelist of the longest matching prefix, None when unrestricted."""
    best = None
    for prefix in ROUTE_ROLES:
        if pathname == prefix or pathname.startswith(prefix + '/'):
            if best is None or len(prefix) > len(best):
                best = prefix
    return ROUTE_ROLES[best] if best else None


def can_access(role, pathname):
    roles = allowed_roles(pathname)
    return roles is None or role in roles


def navigation_for(role):
    return [item for item in NAVIGATION if can_access(role, item['href'])]


def login_redirect(pathname):
    return redirect(f"{LOGIN_PATH}?{urlencode({'redirectTo': pathname})}")


def check_request(pathname, claims):
    """Decide a single request; returns a redirect response or None to continue."""
    if is_protected_route(pathname):
        if not claims:
            return login_redirect(pathname)

        role = claims.get('role') or DEFAULT_ROLE
        if not can_access(role, pathname):
            logger.debug("Role %s denied %s", role, pathname)
            return redirect(DASHBOARD_PATH)

    if is_auth_route(pathname) and claims:
        target = safe_redirect_target(request.args.get('redirectTo')) or DASHBOARD_PATH
        return redirect(target)

    return None


def route_guard():
    pathname = request.path
    if should_skip(pathname):
        return None

    try:
        try:
            claims = get_active_claims()
        except AuthError as e:
            logger.info("Auth middleware error: %s", e)
            if is_protected_route(pathname):
                return login_redirect(pathname)
            claims = None

        response = check_request(pathname, claims)
        if response is not None:
            return response

        if claims:
            g.user_id = int(claims['sub'])
            g.user_role = claims.get('role') or DEFAULT_ROLE
            g.user_email = claims.get('email') or ''
    except Exception:
        logger.exception("Middleware error on %s", pathname)
        if is_protected_route(pathname):
            return login_redirect(pathname)

    return None


def current_role():
    return g.get('user_role', DEFAULT_ROLE)


def role_required(*roles):
    """Restrict an in-page action to ``roles``."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if current_role() not in roles:
                flash('Access denied. You do not have permission for this action.', 'error')
                return redirect(DASHBOARD_PATH)
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def init_guard(app):
    app.before_request(route_guard)

    @app.context_processor
    def inject_user():
        role = g.get('user_role')
        return {
            'current_role': role,
            'current_email': g.get('user_email'),
            'navigation': navigation_for(role) if role else [],
        }
