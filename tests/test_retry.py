import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from pta_dashboard.backend import BackendError, DatabaseService, is_retryable_error, with_retry


class Flaky:
    """Fails with ``error`` for the first ``failures`` calls."""

    def __init__(self, failures, error, result='ok'):
        self.failures = failures
        self.error = error
        self.result = result
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return self.result


def test_succeeds_on_third_attempt():
    sleeps = []
    operation = Flaky(2, ConnectionError('connection reset'))
    assert with_retry(operation, retries=3, delay=1.0, backoff=2, sleep=sleeps.append) == 'ok'
    assert operation.calls == 3
    assert sleeps == [1.0, 2.0]


def test_gives_up_after_max_attempts():
    sleeps = []
    operation = Flaky(10, TimeoutError('read timeout'))
    with pytest.raises(TimeoutError):
        with_retry(operation, retries=3, delay=0.5, backoff=2, sleep=sleeps.append)
    assert operation.calls == 4
    assert sleeps == [0.5, 1.0, 2.0]


def test_non_retryable_error_fails_immediately():
    sleeps = []
    operation = Flaky(1, ValueError('bad input'))
    with pytest.raises(ValueError):
        with_retry(operation, retries=3, sleep=sleeps.append)
    assert operation.calls == 1
    assert sleeps == []


def test_zero_retries_means_one_attempt():
    operation = Flaky(1, ConnectionError('down'))
    with pytest.raises(ConnectionError):
        with_retry(operation, retries=0, sleep=lambda s: None)
    assert operation.calls == 1


@pytest.mark.parametrize('error', [
    ConnectionError('refused'),
    TimeoutError('slow'),
    OperationalError('SELECT 1', {}, Exception('server closed the connection')),
    BackendError('gateway', status=502),
    BackendError('lost', code='NETWORK_ERROR'),
    RuntimeError('Network unreachable'),
    RuntimeError('request timeout'),
])
def test_retryable_errors(error):
    assert is_retryable_error(error)


@pytest.mark.parametrize('error', [
    ValueError('bad input'),
    BackendError('Not found', status=404),
    BackendError('network says no', status=403),
    BackendError('duplicate key', code='IntegrityError', status=400),
])
def test_non_retryable_errors(error):
    assert not is_retryable_error(error)


def test_service_retries_operational_errors(app):
    sleeps = []
    service = DatabaseService(retries=3, delay=1, backoff=2, sleep=sleeps.append)
    operation = Flaky(2, OperationalError('SELECT 1', {}, Exception('connection reset')), result=42)
    with app.app_context():
        assert service.run(operation, 'Flaky call') == 42
    assert sleeps == [1, 2]


def test_service_surfaces_integrity_errors_without_retry(app):
    sleeps = []
    service = DatabaseService(retries=3, sleep=sleeps.append)
    operation = Flaky(5, IntegrityError('INSERT', {}, Exception('UNIQUE constraint failed')))
    with app.app_context():
        with pytest.raises(BackendError) as excinfo:
            service.run(operation, 'Insert')
    assert excinfo.value.status == 400
    assert operation.calls == 1
    assert sleeps == []
