"""
Tests for the retry middleware and the default retry predicate.
"""

import asyncio
from unittest.mock import AsyncMock, Mock, patch

import pytest

from request_orchestrator.exceptions import (
    RequestCancelledError,
    TransportError,
    ValidationError,
    WrappedError,
)
from request_orchestrator.middleware import (
    MiddlewareContext,
    MiddlewareEngine,
    create_retry_middleware,
    is_retryable_error,
)
from request_orchestrator.observability import RETRIES_TOTAL, UnifiedMetricsCollector
from request_orchestrator.types import (
    BackoffKind,
    CancellationToken,
    RequestDescriptor,
    RetryPolicy,
    TransportResponse,
)


def flaky_executor(failures, error_factory=lambda: TransportError("unavailable", status=503)):
    """Executor failing ``failures`` times before succeeding."""
    calls = {"count": 0}

    async def executor(context):
        calls["count"] += 1
        if calls["count"] <= failures:
            raise error_factory()
        context.response = TransportResponse(200, data="ok")
        return context.response

    return executor, calls


def make_engine(executor, **kwargs):
    engine = MiddlewareEngine()
    engine.use(create_retry_middleware(**kwargs))
    engine.set_executor(executor)
    return engine


@pytest.fixture
def sleep_mock():
    with patch("request_orchestrator.middleware.retry.asyncio.sleep", new_callable=AsyncMock) as m:
        yield m


class TestRetryBackoff:
    @pytest.mark.asyncio
    async def test_exponential_backoff_until_success(self, sleep_mock):
        executor, calls = flaky_executor(3)
        engine = make_engine(executor)
        context = MiddlewareContext(
            RequestDescriptor("/a", retry=RetryPolicy(times=3, delay=1.0))
        )
        response = await engine.execute(context)
        assert response.data == "ok"
        assert calls["count"] == 4
        assert [c.args[0] for c in sleep_mock.await_args_list] == [1.0, 2.0, 4.0]
        assert context.retry_count == 3

    @pytest.mark.asyncio
    async def test_linear_backoff(self, sleep_mock):
        executor, calls = flaky_executor(3)
        engine = make_engine(executor)
        policy = RetryPolicy(times=3, delay=0.5, backoff=BackoffKind.LINEAR)
        await engine.execute(MiddlewareContext(RequestDescriptor("/a", retry=policy)))
        assert [c.args[0] for c in sleep_mock.await_args_list] == [0.5, 1.0, 1.5]

    @pytest.mark.asyncio
    async def test_wait_capped_at_max_delay(self, sleep_mock):
        executor, _ = flaky_executor(2)
        engine = make_engine(executor)
        policy = RetryPolicy(times=2, delay=20.0)
        await engine.execute(MiddlewareContext(RequestDescriptor("/a", retry=policy)))
        assert [c.args[0] for c in sleep_mock.await_args_list] == [20.0, 30.0]

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise_last_error(self, sleep_mock):
        executor, calls = flaky_executor(10)
        engine = make_engine(executor)
        with pytest.raises(TransportError):
            await engine.execute(
                MiddlewareContext(RequestDescriptor("/a", retry=RetryPolicy(times=2)))
            )
        assert calls["count"] == 3

    @pytest.mark.asyncio
    async def test_permanent_failure_surfaces_last_error(self, sleep_mock):
        raised = []

        def make_error():
            raised.append(TransportError("unavailable", status=503))
            return raised[-1]

        executor, calls = flaky_executor(100, make_error)
        engine = make_engine(executor)
        policy = RetryPolicy(times=3, delay=1.0, backoff=BackoffKind.EXPONENTIAL)
        with pytest.raises(TransportError) as exc_info:
            await engine.execute(MiddlewareContext(RequestDescriptor("/a", retry=policy)))
        assert calls["count"] == 4
        assert [c.args[0] for c in sleep_mock.await_args_list] == [1.0, 2.0, 4.0]
        assert exc_info.value is raised[3]

    @pytest.mark.asyncio
    async def test_zero_delay_does_not_sleep(self, sleep_mock):
        executor, calls = flaky_executor(1)
        engine = make_engine(executor)
        await engine.execute(
            MiddlewareContext(RequestDescriptor("/a", retry=RetryPolicy(times=1, delay=0)))
        )
        assert calls["count"] == 2
        sleep_mock.assert_not_awaited()


class TestRetryConditions:
    @pytest.mark.asyncio
    async def test_disabled_policy_runs_once(self, sleep_mock):
        executor, calls = flaky_executor(1)
        engine = make_engine(executor)
        with pytest.raises(TransportError):
            await engine.execute(MiddlewareContext(RequestDescriptor("/a")))
        assert calls["count"] == 1

    @pytest.mark.asyncio
    async def test_predicate_rejection_stops_immediately(self, sleep_mock):
        executor, calls = flaky_executor(5)
        engine = make_engine(executor)
        policy = RetryPolicy(times=5, condition=lambda e: False)
        with pytest.raises(TransportError):
            await engine.execute(MiddlewareContext(RequestDescriptor("/a", retry=policy)))
        assert calls["count"] == 1
        sleep_mock.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_non_retryable_status_not_retried(self, sleep_mock):
        executor, calls = flaky_executor(1, lambda: TransportError("nf", status=404))
        engine = make_engine(executor)
        with pytest.raises(TransportError):
            await engine.execute(
                MiddlewareContext(RequestDescriptor("/a", retry=RetryPolicy(times=3)))
            )
        assert calls["count"] == 1

    @pytest.mark.asyncio
    async def test_on_retry_observer(self, sleep_mock):
        executor, _ = flaky_executor(2)
        engine = make_engine(executor)
        observer = Mock()
        policy = RetryPolicy(times=3, on_retry=observer)
        await engine.execute(MiddlewareContext(RequestDescriptor("/a", retry=policy)))
        assert [c.args[1] for c in observer.call_args_list] == [1, 2]
        assert all(isinstance(c.args[0], TransportError) for c in observer.call_args_list)

    @pytest.mark.asyncio
    async def test_failing_on_retry_does_not_abort(self, sleep_mock):
        executor, calls = flaky_executor(1)
        engine = make_engine(executor)
        policy = RetryPolicy(times=1, on_retry=Mock(side_effect=RuntimeError("observer")))
        await engine.execute(MiddlewareContext(RequestDescriptor("/a", retry=policy)))
        assert calls["count"] == 2

    @pytest.mark.asyncio
    async def test_cancelled_token_stops_retrying(self, sleep_mock):
        executor, calls = flaky_executor(5)
        engine = make_engine(executor)
        token = CancellationToken()
        token.cancel()
        context = MiddlewareContext(
            RequestDescriptor("/a", retry=RetryPolicy(times=3)), token=token
        )
        with pytest.raises(TransportError):
            await engine.execute(context)
        assert calls["count"] == 1

    @pytest.mark.asyncio
    async def test_default_policy_fills_unset_fields(self, sleep_mock):
        executor, calls = flaky_executor(2)
        engine = make_engine(executor, default_policy=RetryPolicy(times=5, delay=0.25))
        await engine.execute(MiddlewareContext(RequestDescriptor("/a")))
        assert calls["count"] == 3
        assert [c.args[0] for c in sleep_mock.await_args_list] == [0.25, 0.5]

    @pytest.mark.asyncio
    async def test_request_times_zero_opts_out_of_default(self, sleep_mock):
        executor, calls = flaky_executor(10)
        engine = make_engine(executor, default_policy=RetryPolicy(times=3, delay=0))
        with pytest.raises(TransportError):
            await engine.execute(
                MiddlewareContext(RequestDescriptor("/a", retry=RetryPolicy(times=0)))
            )
        assert calls["count"] == 1

    @pytest.mark.asyncio
    async def test_request_times_kept_other_fields_from_default(self, sleep_mock):
        executor, calls = flaky_executor(10)
        engine = make_engine(executor, default_policy=RetryPolicy(times=5, delay=0.25))
        with pytest.raises(TransportError):
            await engine.execute(
                MiddlewareContext(RequestDescriptor("/a", retry=RetryPolicy(times=2)))
            )
        assert calls["count"] == 3
        assert [c.args[0] for c in sleep_mock.await_args_list] == [0.25, 0.5]

    @pytest.mark.asyncio
    async def test_retry_metric(self, sleep_mock):
        collector = UnifiedMetricsCollector()
        executor, _ = flaky_executor(2)
        engine = make_engine(executor, metrics_collector=collector)
        await engine.execute(
            MiddlewareContext(RequestDescriptor("/a", retry=RetryPolicy(times=2)))
        )
        assert collector.get_counter(RETRIES_TOTAL, {"method": "GET"}) == 2


class TestIsRetryableError:
    @pytest.mark.parametrize("status", [408, 429, 500, 502, 503, 599])
    def test_retryable_statuses(self, status):
        assert is_retryable_error(TransportError("x", status=status))

    @pytest.mark.parametrize("status", [400, 401, 404, 422])
    def test_non_retryable_statuses(self, status):
        assert not is_retryable_error(TransportError("x", status=status))

    def test_network_and_timeout(self):
        assert is_retryable_error(TransportError("x", is_network=True))
        assert is_retryable_error(TransportError("x", is_timeout=True))
        assert is_retryable_error(TransportError("x", code="ECONNRESET"))
        assert is_retryable_error(TransportError("x", code="ECONNABORTED"))

    def test_builtin_errors(self):
        assert is_retryable_error(ConnectionError())
        assert is_retryable_error(asyncio.TimeoutError())
        assert not is_retryable_error(ValueError())

    def test_unwraps_wrapped_errors(self):
        assert is_retryable_error(WrappedError(ConnectionResetError()))
        assert not is_retryable_error(WrappedError(KeyError()))

    def test_never_retries_validation_or_cancellation(self):
        assert not is_retryable_error(ValidationError("bad"))
        assert not is_retryable_error(RequestCancelledError())
