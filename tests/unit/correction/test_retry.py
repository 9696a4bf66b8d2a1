import pytest
from unittest.mock import Mock
from text_corrector.correction.retry import RetryClass, RetryOrchestrator, RetryPolicy, classify_failure
from text_corrector.errors import AuthError, BackendError, ParseError, RetryExhaustedError, TransientNetworkError


def transient(retry_class=RetryClass.TIMEOUT):
    return TransientNetworkError(f"simulated {retry_class.value}", retry_class=retry_class)


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def orchestrator(test_logger, sleeps, immediate_scheduler):
    return RetryOrchestrator(RetryPolicy(), logger=test_logger, sleep=sleeps.append, scheduler=immediate_scheduler)


def test_classify_failure():
    assert classify_failure(transient(RetryClass.TIMEOUT)) is RetryClass.TIMEOUT
    assert classify_failure(transient(RetryClass.CONNECTION_RESET)) is RetryClass.CONNECTION_RESET
    assert classify_failure(transient(RetryClass.GENERIC_IO)) is RetryClass.GENERIC_IO
    assert classify_failure(ParseError("bad")) is RetryClass.FATAL
    assert classify_failure(AuthError("denied")) is RetryClass.FATAL
    assert classify_failure(BackendError("boom", error_code=18)) is RetryClass.FATAL
    assert classify_failure(RuntimeError("unexpected")) is RetryClass.FATAL


def test_backoff_is_linear_per_class():
    policy = RetryPolicy()

    assert policy.delay_seconds(RetryClass.TIMEOUT, 1) == 2.0
    assert policy.delay_seconds(RetryClass.TIMEOUT, 3) == 6.0
    assert policy.delay_seconds(RetryClass.CONNECTION_RESET, 2) == 6.0
    assert policy.delay_seconds(RetryClass.GENERIC_IO, 2) == 4.0
    with pytest.raises(ValueError):
        policy.delay_seconds(RetryClass.FATAL, 1)


def test_success_on_first_attempt(orchestrator, sleeps):
    operation = Mock(return_value={"ok": True})

    assert orchestrator.call(operation) == {"ok": True}
    assert operation.call_count == 1
    assert sleeps == []


def test_recovers_after_transient_failures(orchestrator, sleeps):
    operation = Mock(side_effect=[transient(RetryClass.TIMEOUT), transient(RetryClass.CONNECTION_RESET), "done"])

    assert orchestrator.call(operation) == "done"
    assert operation.call_count == 3
    assert sleeps == [2.0, 6.0]


def test_gives_up_after_four_attempts(orchestrator, sleeps):
    last = transient(RetryClass.TIMEOUT)
    operation = Mock(side_effect=[transient(), transient(), transient(), last])

    with pytest.raises(RetryExhaustedError) as exc_info:
        orchestrator.call(operation)

    assert operation.call_count == 4
    assert sleeps == [2.0, 4.0, 6.0]
    assert exc_info.value.attempts == 4
    assert exc_info.value.last_error is last
    assert exc_info.value.__cause__ is last


@pytest.mark.parametrize("error", [ParseError("bad json"), AuthError("denied"), BackendError("quota", error_code=18)])
def test_fatal_errors_are_not_retried(orchestrator, sleeps, error):
    operation = Mock(side_effect=error)

    with pytest.raises(type(error)) as exc_info:
        orchestrator.call(operation)

    assert exc_info.value is error
    assert operation.call_count == 1
    assert sleeps == []


def test_zero_retries_means_single_attempt(test_logger, sleeps):
    orchestrator = RetryOrchestrator(RetryPolicy(max_retries=0), logger=test_logger, sleep=sleeps.append)
    operation = Mock(side_effect=transient())

    with pytest.raises(RetryExhaustedError) as exc_info:
        orchestrator.call(operation)

    assert exc_info.value.attempts == 1
    assert sleeps == []


def test_async_success(orchestrator, immediate_scheduler):
    on_success, on_failure = Mock(), Mock()

    orchestrator.call_async(Mock(return_value="result"), on_success, on_failure)

    on_success.assert_called_once_with("result")
    on_failure.assert_not_called()
    assert immediate_scheduler.delays == []


def test_async_matches_sync_retry_schedule(orchestrator, sleeps, immediate_scheduler):
    failures = [transient(RetryClass.GENERIC_IO), transient(RetryClass.CONNECTION_RESET), transient(RetryClass.TIMEOUT)]
    sync_operation = Mock(side_effect=failures + ["done"])
    async_operation = Mock(side_effect=failures + ["done"])
    on_success, on_failure = Mock(), Mock()

    assert orchestrator.call(sync_operation) == "done"
    orchestrator.call_async(async_operation, on_success, on_failure)

    on_success.assert_called_once_with("done")
    on_failure.assert_not_called()
    assert async_operation.call_count == sync_operation.call_count == 4
    assert immediate_scheduler.delays == sleeps == [2.0, 6.0, 6.0]


def test_async_exhaustion(orchestrator, immediate_scheduler):
    operation = Mock(side_effect=[transient() for _ in range(5)])
    on_success, on_failure = Mock(), Mock()

    orchestrator.call_async(operation, on_success, on_failure)

    on_success.assert_not_called()
    error = on_failure.call_args[0][0]
    assert isinstance(error, RetryExhaustedError)
    assert error.attempts == 4
    assert operation.call_count == 4
    assert immediate_scheduler.delays == [2.0, 4.0, 6.0]


def test_async_fatal_error_is_delivered_unchanged(orchestrator, immediate_scheduler):
    error = ParseError("not json")
    on_success, on_failure = Mock(), Mock()

    orchestrator.call_async(Mock(side_effect=error), on_success, on_failure)

    on_failure.assert_called_once_with(error)
    assert immediate_scheduler.delays == []


def test_async_retry_does_not_block_caller(test_logger):
    scheduled = []
    orchestrator = RetryOrchestrator(logger=test_logger, scheduler=lambda delay, fn: scheduled.append((delay, fn)))
    operation = Mock(side_effect=[transient(RetryClass.CONNECTION_RESET), "late"])
    on_success, on_failure = Mock(), Mock()

    orchestrator.call_async(operation, on_success, on_failure)

    # The retry is parked with the scheduler; nothing has completed yet
    assert operation.call_count == 1
    assert [delay for delay, _ in scheduled] == [3.0]
    on_success.assert_not_called()

    scheduled[0][1]()

    on_success.assert_called_once_with("late")
