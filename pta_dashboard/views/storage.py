from flask import Blueprint, abort, request, send_file

from ..auth import AuthError, get_active_claims
from ..backend import BackendError, db_service
from ..guard import DEFAULT_ROLE, can_access
from ..storage import DEFAULT_BUCKET, StorageError, StorageService, normalize_path

storage_bp = Blueprint('storage', __name__)

# Receipts are visible to whoever may open the page of their transaction
RECEIPT_PAGES = {
    'income': '/dashboard/income',
    'expenses': '/dashboard/expenses',
}
FALLBACK_PAGE = '/dashboard/settings'


def receipt_page(path):
    """Dashboard page whose role whitelist governs the file at ``path``."""
    receipts = db_service.find_many('receipts', filters={'file_path': path}, limit=1)
    if receipts:
        if receipts[0].income_transaction_id:
            return RECEIPT_PAGES['income']
        if receipts[0].expense_transaction_id:
            return RECEIPT_PAGES['expenses']
    return RECEIPT_PAGES.get(path.split('/', 1)[0], FALLBACK_PAGE)


@storage_bp.route('/storage/<bucket>/<path:path>')
def download(bucket, path):
    """Serve a stored file to a permitted signed-in user or to the holder of a signed URL."""
    if bucket != DEFAULT_BUCKET:
        abort(404)
    service = StorageService(bucket)
    try:
        path = normalize_path(path)
    except StorageError as e:
        abort(e.status)

    token = request.args.get('token')
    if token:
        if not service.verify_signed_token(token, path):
            abort(403)
    else:
        try:
            claims = get_active_claims()
        except AuthError:
            claims = None
        if not claims:
            abort(401)
        try:
            page = receipt_page(path)
        except BackendError as e:
            abort(e.status or 503)
        if not can_access(claims.get('role') or DEFAULT_ROLE, page):
            abort(403)

    try:
        full_path = service.open_path(path)
    except StorageError as e:
        abort(e.status)
    return send_file(full_path)
