"""
Receipt file storage.

Files live under ``UPLOAD_FOLDER/<bucket>/``. Public URLs point at the
storage download route; signed URLs carry a short-lived JWT so a receipt
link can be shared without a session.
"""
import logging
import os
import posixpath
from datetime import datetime, timedelta, timezone

from flask import current_app, url_for
from jose import JWTError, jwt

logger = logging.getLogger(__name__)

DEFAULT_BUCKET = 'receipts'


class StorageError(Exception):
    def __init__(self, message, status=400):
        super().__init__(message)
        self.message = message
        self.status = status


def normalize_path(path):
    """Bucket-relative POSIX path; refuses anything escaping the bucket."""
    cleaned = posixpath.normpath((path or '').replace('\\', '/')).lstrip('/')
    if cleaned in ('', '.') or cleaned == '..' or cleaned.startswith('../'):
        raise StorageError(f"Invalid storage path '{path}'")
    return cleaned


class StorageService:
    def __init__(self, bucket_name=DEFAULT_BUCKET, root=None):
        self.bucket_name = bucket_name
        self._root = root

    @property
    def root(self):
        base = self._root or current_app.config['UPLOAD_FOLDER']
        return os.path.join(base, self.bucket_name)

    def _full_path(self, path):
        return os.path.join(self.root, *normalize_path(path).split('/'))

    def upload_file(self, file, path, content_type=None, upsert=False):
        """Store a werkzeug ``FileStorage`` at ``path`` and return the stored path."""
        path = normalize_path(path)
        content_type = content_type or file.mimetype
        allowed = current_app.config['ALLOWED_FILE_TYPES']
        if allowed and content_type not in allowed:
            raise StorageError(f"File type '{content_type}' is not allowed")

        data = file.read()
        max_size = current_app.config['MAX_FILE_SIZE']
        if len(data) > max_size:
            raise StorageError(f"File exceeds the maximum size of {max_size // 1024 // 1024}MB", status=413)

        full_path = self._full_path(path)
        if os.path.exists(full_path) and not upsert:
            raise StorageError(f"'{path}' already exists", status=409)

        os.makedirs(os.path.dirname(full_path), exist_ok=True)
        with open(full_path, 'wb') as fh:
            fh.write(data)

        logger.info("Stored %s (%d bytes) in bucket %s", path, len(data), self.bucket_name)
        return path

    def get_public_url(self, path):
        return url_for('storage.download', bucket=self.bucket_name, path=normalize_path(path))

    def get_signed_url(self, path, expires_in=3600):
        path = normalize_path(path)
        claims = {
            'bucket': self.bucket_name,
            'path': path,
            'exp': datetime.now(timezone.utc) + timedelta(seconds=expires_in),
        }
        token = jwt.encode(claims, current_app.config['SECRET_KEY'],
                           algorithm=current_app.config['JWT_ALGORITHM'])
        return url_for('storage.download', bucket=self.bucket_name, path=path, token=token)

    def verify_signed_token(self, token, path):
        try:
            claims = jwt.decode(token, current_app.config['SECRET_KEY'],
                                algorithms=[current_app.config['JWT_ALGORITHM']])
        except JWTError:
            return False
        return claims.get('bucket') == self.bucket_name and claims.get('path') == normalize_path(path)

    def open_path(self, path):
        full_path = self._full_path(path)
        if not os.path.isfile(full_path):
            raise StorageError(f"'{path}' not found", status=404)
        return full_path

    def delete_file(self, path):
        full_path = self._full_path(path)
        if not os.path.isfile(full_path):
            raise StorageError(f"'{path}' not found", status=404)
        os.remove(full_path)
        logger.info("Deleted %s from bucket %s", path, self.bucket_name)

    def list_files(self, folder='', limit=None, offset=0, sort_by='name', order='asc'):
        directory = self._full_path(folder) if folder else self.root
        if not os.path.isdir(directory):
            return []

        entries = []
        for name in os.listdir(directory):
            full_path = os.path.join(directory, name)
            if not os.path.isfile(full_path):
                continue
            stat = os.stat(full_path)
            entries.append({
                'name': name,
                'path': posixpath.join(normalize_path(folder), name) if folder else name,
                'size': stat.st_size,
                'updated_at': datetime.fromtimestamp(stat.st_mtime, timezone.utc),
            })

        entries.sort(key=lambda entry: entry[sort_by], reverse=(order == 'desc'))
        entries = entries[offset:]
        if limit is not None:
            entries = entries[:limit]
        return entries


storage = StorageService()
