import logging
import os
from datetime import datetime

from flask import abort, flash, g
from werkzeug.utils import secure_filename

from ..backend import BackendError, db_service, handle_api_error
from ..forms import NONE_CHOICE
from ..storage import StorageError
from ..storage import storage as receipt_storage

logger = logging.getLogger(__name__)


def get_or_404(table, id):
    row = db_service.find_by_id(table, id)
    if row is None:
        abort(404)
    return row


def flash_form_errors(form):
    for field_name, errors in form.errors.items():
        label = getattr(form, field_name).label.text if hasattr(form, field_name) else field_name
        for error in errors:
            flash(f"{label}: {error}", 'error')


def flash_backend_error(error, context):
    flash(handle_api_error(error, context), 'error')


def parent_choices(with_none=False):
    parents = db_service.find_many('parents', order_by='last_name')
    choices = [(p.id, f"{p.last_name}, {p.first_name}") for p in parents]
    return [NONE_CHOICE] + choices if with_none else choices


def section_choices():
    sections = db_service.find_many('sections', filters={'is_active': True}, order_by='section_name')
    return [NONE_CHOICE] + [(s.id, s.label) for s in sections]


def student_choices():
    students = db_service.find_many('students', filters={'is_active': True}, order_by='last_name')
    return [NONE_CHOICE] + [(s.id, f"{s.last_name}, {s.first_name} ({s.student_id})") for s in students]


def teacher_choices():
    teachers = db_service.find_many('teachers', filters={'is_active': True})
    return [NONE_CHOICE] + [(t.id, t.full_name) for t in teachers]


def category_choices(table):
    categories = db_service.find_many(table, filters={'is_active': True}, order_by='category_name')
    return [(c.id, c.category_name) for c in categories]


def save_receipt(file, income_transaction_id=None, expense_transaction_id=None):
    """Upload a receipt and link it to its transaction; returns the receipt row or None."""
    if not file or not file.filename:
        return None

    folder = 'income' if income_transaction_id else 'expenses'
    owner_id = income_transaction_id or expense_transaction_id
    file_name = secure_filename(file.filename) or 'receipt'
    stamp = datetime.utcnow().strftime('%Y%m%d%H%M%S')
    path = f"{folder}/{owner_id}/{stamp}-{file_name}"

    try:
        stored_path = receipt_storage.upload_file(file, path)
        file_size = os.path.getsize(receipt_storage.open_path(stored_path))
        return db_service.create('receipts', {
            'income_transaction_id': income_transaction_id,
            'expense_transaction_id': expense_transaction_id,
            'file_name': file_name,
            'file_path': stored_path,
            'file_size': file_size,
            'mime_type': file.mimetype,
            'uploaded_by': g.get('user_id'),
        })
    except StorageError as e:
        logger.warning("Receipt upload rejected: %s", e.message)
        flash(f"Receipt not saved: {e.message}", 'warning')
    except OSError as e:
        logger.error("Receipt upload failed for %s: %s", path, e)
        flash('Receipt not saved: the file could not be stored.', 'warning')
    except BackendError as e:
        flash_backend_error(e, 'Save Receipt')
    return None


def remove_receipt_files(paths):
    """Delete stored receipt files after their rows are gone."""
    for path in paths:
        try:
            receipt_storage.delete_file(path)
        except StorageError as e:
            logger.warning("Receipt file not removed: %s", e.message)
        except OSError as e:
            logger.error("Receipt file %s not removed: %s", path, e)
