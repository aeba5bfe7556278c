from flask import request

STATIC_MIMETYPES = ('text/css', 'application/javascript', 'image/')


def add_security_headers(response):
    """Add security headers to response"""
    # Content Security Policy
    response.headers['Content-Security-Policy'] = (
        "default-src 'self'; "
        "script-src 'self' cdn.jsdelivr.net; "
        "style-src 'self' 'unsafe-inline' cdn.jsdelivr.net; "
        "img-src 'self' data:; "
        "form-action 'self'"
    )

    response.headers['X-Frame-Options'] = 'SAMEORIGIN'
    response.headers['X-Content-Type-Options'] = 'nosniff'
    response.headers['Referrer-Policy'] = 'same-origin'
    response.headers['Permissions-Policy'] = 'geolocation=(), microphone=(), camera=()'

    # Long-lived caching only for static assets
    if (request.path.startswith('/static') and response.mimetype
            and response.mimetype.startswith(STATIC_MIMETYPES)):
        response.headers['Cache-Control'] = 'public, max-age=31536000'
    else:
        response.headers['Cache-Control'] = 'no-store, no-cache, must-revalidate, max-age=0'

    return response


def init_security(app):
    """Initialize security features for the Flask app"""
    if app.config.get('PREFERRED_URL_SCHEME') == 'https':
        app.config['SESSION_COOKIE_SECURE'] = True

    app.after_request(add_security_headers)
