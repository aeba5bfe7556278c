from datetime import datetime

from flask import Blueprint, jsonify

from .. import __version__
from ..backend import db_service

health_bp = Blueprint('health', __name__)


@health_bp.route('/health')
def health_check():
    """Health check endpoint for external monitoring"""
    database_ok = db_service.check_connection()
    return jsonify({
        'status': 'ok' if database_ok else 'degraded',
        'service': 'pta-dashboard',
        'database': 'ok' if database_ok else 'unavailable',
        'version': __version__,
        'timestamp': datetime.utcnow().isoformat() + 'Z',
    }), 200 if database_ok else 503
