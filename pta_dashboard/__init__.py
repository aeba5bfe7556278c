"""PTA Dashboard: contribution, income and expense tracking for a school PTA."""
import logging
import os
from datetime import datetime

from flask import Flask, render_template
from flask_sqlalchemy import SQLAlchemy
from flask_wtf.csrf import CSRFProtect, generate_csrf

__version__ = '1.0.0'

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

db = SQLAlchemy()
csrf = CSRFProtect()


def configure_logging(app):
    level = getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)
    logger = logging.getLogger(__name__)
    logger.setLevel(level)

    # Avoid duplicate console handlers when the factory runs more than once
    if not any(isinstance(h, logging.StreamHandler) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    for handler in logger.handlers:
        handler.setLevel(level)

    logger.propagate = False
    app.logger.setLevel(level)


def create_app(config_name=None, **overrides):
    from .config import get_config, validate_config

    config_class = get_config(config_name)
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_class)
    app.config.update(overrides)

    validate_config(app.config)
    os.makedirs(app.instance_path, exist_ok=True)
    config_class.init_app(app)

    configure_logging(app)

    db.init_app(app)
    csrf.init_app(app)

    from .security import init_security
    init_security(app)

    from .guard import init_guard
    init_guard(app)

    from .helpers import init_template_helpers
    init_template_helpers(app)

    from .auth import auth_bp
    from .views.dashboard import dashboard_bp
    from .views.expenses import expenses_bp
    from .views.health import health_bp
    from .views.income import income_bp
    from .views.parents import parents_bp
    from .views.reports import reports_bp
    from .views.settings import settings_bp
    from .views.storage import storage_bp
    from .views.students import students_bp
    from .views.teachers import teachers_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(health_bp)
    app.register_blueprint(dashboard_bp)
    app.register_blueprint(income_bp)
    app.register_blueprint(expenses_bp)
    app.register_blueprint(students_bp)
    app.register_blueprint(teachers_bp)
    app.register_blueprint(parents_bp)
    app.register_blueprint(reports_bp)
    app.register_blueprint(settings_bp)
    app.register_blueprint(storage_bp)

    # Ensure csrf_token() is available in Jinja templates
    @app.context_processor
    def inject_csrf_token():
        return dict(csrf_token=generate_csrf)

    @app.errorhandler(404)
    def not_found(error):
        return render_template('error.html', code=404, message='Page not found.'), 404

    @app.errorhandler(500)
    def server_error(error):
        db.session.rollback()
        return render_template(
            'error.html', code=500, message='An unexpected error occurred. Please try again.'
        ), 500

    logging.getLogger(__name__).info(
        "PTA Dashboard started at %s (%s)", datetime.utcnow().isoformat() + 'Z', config_class.__name__
    )
    return app
