"""
Generic data access over the relational store.

Every call is a single round trip wrapped in a capped exponential-backoff
retry for transient failures. There is no caching, no batching and no
transaction spanning more than one call.
"""
import logging
import time

from flask import current_app
from sqlalchemy import func, or_, select
from sqlalchemy.exc import DBAPIError, DisconnectionError, OperationalError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from . import db
from .models import TABLES

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 10
LIKE_ESCAPE = '\\'
NON_RETRYABLE_STATUSES = (401, 403, 404)


class BackendError(Exception):
    """A failed call against the relational store."""

    def __init__(self, message, code=None, status=None, details=None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status = status
        self.details = details

    @classmethod
    def from_exception(cls, error):
        if isinstance(error, BackendError):
            return error
        if isinstance(error, (OperationalError, DisconnectionError, PoolTimeoutError)):
            return cls(str(error.orig if isinstance(error, DBAPIError) else error),
                       code='NETWORK_ERROR', status=503, details=error)
        if isinstance(error, SQLAlchemyError):
            orig = getattr(error, 'orig', None)
            return cls(str(orig or error), code=type(error).__name__, status=400, details=error)
        return cls(str(error), details=error)


def escape_like(term):
    """Escape LIKE wildcards so ``term`` matches literally."""
    return (term.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
            .replace('%', LIKE_ESCAPE + '%')
            .replace('_', LIKE_ESCAPE + '_'))


def is_retryable_error(error):
    """Network errors, timeouts and temporary server errors."""
    status = getattr(error, 'status', None)
    if status in NON_RETRYABLE_STATUSES:
        return False
    if isinstance(error, (OperationalError, DisconnectionError, PoolTimeoutError,
                          TimeoutError, ConnectionError)):
        return True
    if getattr(error, 'code', None) in ('NETWORK_ERROR', 'TIMEOUT'):
        return True
    if isinstance(status, int) and status >= 500:
        return True
    message = str(error).lower()
    return 'network' in message or 'timeout' in message


def with_retry(operation, retries=3, delay=1.0, backoff=2, sleep=time.sleep, context='Backend call'):
    """Run ``operation`` with up to ``retries`` extra attempts on transient errors."""
    attempts = retries + 1
    for attempt in range(attempts):
        try:
            return operation()
        except Exception as e:
            if attempt == attempts - 1 or not is_retryable_error(e):
                raise
            wait = delay * (backoff ** attempt)
            logger.warning(
                "%s - attempt %d/%d failed: %s, retrying in %ss",
                context, attempt + 1, attempts, e, wait,
            )
            sleep(wait)


class DatabaseService:
    """CRUD, search and count helpers addressed by table name."""

    def __init__(self, session=None, retries=None, delay=None, backoff=None, sleep=time.sleep):
        self._session = session
        self.retries = retries
        self.delay = delay
        self.backoff = backoff
        self.sleep = sleep

    @property
    def session(self):
        return self._session if self._session is not None else db.session

    def _policy(self):
        config = current_app.config
        return (
            self.retries if self.retries is not None else config.get('RETRY_MAX_RETRIES', 3),
            self.delay if self.delay is not None else config.get('RETRY_DELAY', 1.0),
            self.backoff if self.backoff is not None else config.get('RETRY_BACKOFF', 2),
        )

    def run(self, operation, context):
        retries, delay, backoff = self._policy()

        def attempt():
            try:
                return operation()
            except SQLAlchemyError as e:
                self.session.rollback()
                raise BackendError.from_exception(e)

        try:
            return with_retry(attempt, retries=retries, delay=delay, backoff=backoff,
                              sleep=self.sleep, context=context)
        except BackendError as e:
            logger.error("%s failed: %s", context, e.message)
            raise

    @staticmethod
    def model_for(table):
        try:
            return TABLES[table]
        except KeyError:
            raise BackendError(f"Unknown table '{table}'", code='UNKNOWN_TABLE', status=400)

    @staticmethod
    def _column(model, name):
        column = model.__table__.columns.get(name)
        if column is None:
            raise BackendError(
                f"Unknown column '{name}' on '{model.__tablename__}'",
                code='UNKNOWN_COLUMN', status=400,
            )
        return getattr(model, column.key)

    def _apply_filters(self, query, model, filters):
        for key, value in (filters or {}).items():
            if value is not None:
                query = query.where(self._column(model, key) == value)
        return query

    # Generic CRUD operations
    def create(self, table, data):
        model = self.model_for(table)
        for key in data:
            self._column(model, key)

        def operation():
            row = model(**data)
            self.session.add(row)
            self.session.commit()
            return row

        return self.run(operation, f"Create {table}")

    def find_by_id(self, table, id):
        model = self.model_for(table)
        return self.run(lambda: self.session.get(model, id), f"Get {table} by id")

    def find_many(self, table, filters=None, order_by=None, ascending=True, limit=None, offset=None):
        model = self.model_for(table)
        query = self._apply_filters(select(model), model, filters)

        if order_by:
            column = self._column(model, order_by)
            query = query.order_by(column.asc() if ascending else column.desc())
        if offset:
            query = query.offset(offset).limit(limit or DEFAULT_PAGE_SIZE)
        elif limit:
            query = query.limit(limit)

        return self.run(lambda: list(self.session.scalars(query)), f"Get all {table}")

    def update(self, table, id, data):
        model = self.model_for(table)
        for key in data:
            self._column(model, key)

        def operation():
            row = self.session.get(model, id)
            if row is None:
                return None
            for key, value in data.items():
                setattr(row, key, value)
            self.session.commit()
            return row

        return self.run(operation, f"Update {table}")

    def delete(self, table, id):
        model = self.model_for(table)

        def operation():
            row = self.session.get(model, id)
            if row is None:
                return False
            self.session.delete(row)
            self.session.commit()
            return True

        return self.run(operation, f"Delete {table}")

    # Search functionality
    def search(self, table, term, columns, filters=None, limit=None):
        model = self.model_for(table)
        query = self._apply_filters(select(model), model, filters)

        if term and columns:
            pattern = f"%{escape_like(term)}%"
            query = query.where(or_(*[self._column(model, name).ilike(pattern, escape=LIKE_ESCAPE)
                                      for name in columns]))
        if limit:
            query = query.limit(limit)

        return self.run(lambda: list(self.session.scalars(query)), f"Search {table}")

    # Count records
    def count(self, table, filters=None):
        model = self.model_for(table)
        query = self._apply_filters(select(func.count()).select_from(model), model, filters)
        return self.run(lambda: self.session.scalar(query) or 0, f"Count {table}")

    def check_connection(self):
        try:
            self.count('users')
            return True
        except BackendError as e:
            logger.error("Database connection check failed: %s", e.message)
            return False


def handle_api_error(error, context=None):
    """Log ``error`` and return the message shown to the user."""
    logger.error("API Error%s: %s", f" in {context}" if context else '', error)

    if isinstance(error, BackendError):
        return error.message
    if str(error):
        return str(error)
    return 'An unexpected error occurred. Please try again.'


# Default database service instance
db_service = DatabaseService()
