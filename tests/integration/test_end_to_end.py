"""
End-to-end integration tests for the request orchestrator.

These tests drive complete request flows through Orchestrator.submit:
defaults, locking, admission, the default middleware chain and the
transport, including both success and error paths.
"""

import asyncio

import pytest

from request_orchestrator import (
    CachePolicy,
    CapacityError,
    Middleware,
    Orchestrator,
    OrchestratorConfig,
    OrchestratorError,
    RequestCancelledError,
    RequestDescriptor,
    RetryPolicy,
    TransportError,
    TransportResponse,
    ValidationError,
    WrappedError,
    create_orchestrator,
)
from request_orchestrator.observability import (
    REQUESTS_COMPLETED_TOTAL,
    REQUESTS_FAILED_TOTAL,
)


async def settle(rounds=5):
    for _ in range(rounds):
        await asyncio.sleep(0)


class TestBasicFlow:
    @pytest.mark.asyncio
    async def test_submit_returns_transport_response(self, transport):
        async with Orchestrator(transport) as orchestrator:
            response = await orchestrator.submit(RequestDescriptor("/users"))
        assert isinstance(response, TransportResponse)
        assert response.data == {"url": "/users"}
        assert transport.calls[0].timeout == 10.0
        assert transport.calls[0].priority == 5

    @pytest.mark.asyncio
    async def test_submit_requires_start(self, transport):
        orchestrator = Orchestrator(transport)
        with pytest.raises(OrchestratorError, match="not running"):
            await orchestrator.submit(RequestDescriptor("/users"))

    @pytest.mark.asyncio
    async def test_lifecycle(self, transport):
        orchestrator = create_orchestrator(transport, max_concurrent=2)
        assert orchestrator.config.max_concurrent == 2
        assert not orchestrator.is_running()
        await orchestrator.start()
        assert orchestrator.is_running()
        assert orchestrator.cache.running
        await orchestrator.stop()
        await orchestrator.stop()
        assert not orchestrator.is_running()
        assert not orchestrator.cache.running

    @pytest.mark.asyncio
    async def test_priority_order_under_contention(self, transport):
        transport.gate = asyncio.Event()
        async with create_orchestrator(transport, max_concurrent=1) as orchestrator:
            calls = [
                asyncio.create_task(
                    orchestrator.submit(RequestDescriptor(f"/p{p}", priority=p))
                )
                for p in (1, 10, 5)
            ]
            transport.gate.set()
            await asyncio.gather(*calls)
        assert transport.started == ["/p10", "/p5", "/p1"]

    @pytest.mark.asyncio
    async def test_queue_overflow(self, transport):
        transport.gate = asyncio.Event()
        async with create_orchestrator(
            transport, max_concurrent=1, max_queue_size=1
        ) as orchestrator:
            first = asyncio.create_task(orchestrator.submit(RequestDescriptor("/a")))
            await settle()
            second = asyncio.create_task(orchestrator.submit(RequestDescriptor("/b")))
            await settle()
            with pytest.raises(CapacityError):
                await orchestrator.submit(RequestDescriptor("/c"))
            transport.gate.set()
            await asyncio.gather(first, second)


class TestCaching:
    @pytest.mark.asyncio
    async def test_cached_get_skips_transport(self, transport):
        async with Orchestrator(transport) as orchestrator:
            d = RequestDescriptor("/users", params={"page": 1}, cache=True)
            first = await orchestrator.submit(d)
            second = await orchestrator.submit(d)
            stats = orchestrator.get_cache_stats()
        assert second is first
        assert transport.call_count == 1
        assert stats["hit_count"] == 1
        assert stats["size"] == 1

    @pytest.mark.asyncio
    async def test_default_cache_policy(self, transport):
        config = OrchestratorConfig(default_cache=CachePolicy(enabled=True))
        async with Orchestrator(transport, config) as orchestrator:
            await orchestrator.submit(RequestDescriptor("/users"))
            await orchestrator.submit(RequestDescriptor("/users"))
            assert orchestrator.clear_cache("/users") == 1
            await orchestrator.submit(RequestDescriptor("/users"))
        assert transport.call_count == 2


class TestLocking:
    @pytest.mark.asyncio
    async def test_request_lock_single_flight(self, transport):
        transport.gate = asyncio.Event()
        async with Orchestrator(transport) as orchestrator:
            d = RequestDescriptor("/users", request_lock=True)
            calls = [asyncio.create_task(orchestrator.submit(d)) for _ in range(3)]
            await settle()
            assert orchestrator.get_lock_stats()["pending_requests"] == 1
            transport.gate.set()
            results = await asyncio.gather(*calls)
        assert transport.call_count == 1
        assert results[0] is results[1] is results[2]

    @pytest.mark.asyncio
    async def test_debounce_collapses_burst(self, transport):
        config = OrchestratorConfig(debounce_delay=0.05)
        async with Orchestrator(transport, config) as orchestrator:
            d = RequestDescriptor("/search", params={"q": "a"}, debounce=True)
            calls = []
            for _ in range(3):
                calls.append(asyncio.create_task(orchestrator.submit(d)))
                await asyncio.sleep(0.005)
            results = await asyncio.gather(*calls)
        assert transport.call_count == 1
        assert all(r.data == {"url": "/search"} for r in results)

    @pytest.mark.asyncio
    async def test_cleanup_locks(self, transport):
        transport.gate = asyncio.Event()
        async with Orchestrator(transport) as orchestrator:
            call = asyncio.create_task(
                orchestrator.submit(RequestDescriptor("/slow", request_lock=True))
            )
            await settle()
            assert orchestrator.cleanup_locks(max_age=-1) == 1
            with pytest.raises(RequestCancelledError):
                await call


class TestRetriesAndErrors:
    @pytest.mark.asyncio
    async def test_retry_until_success(self, transport):
        attempts = []

        async def flaky(descriptor, token):
            attempts.append(1)
            if len(attempts) < 3:
                raise TransportError("unavailable", status=503)
            return TransportResponse(200, data="ok")

        transport.handler = flaky
        async with Orchestrator(transport) as orchestrator:
            d = RequestDescriptor("/flaky", retry=RetryPolicy(times=3, delay=0))
            response = await orchestrator.submit(d)
        assert response.data == "ok"
        assert transport.call_count == 3

    @pytest.mark.asyncio
    async def test_request_can_disable_default_retry(self, transport):
        async def unavailable(descriptor, token):
            raise TransportError("unavailable", status=503)

        transport.handler = unavailable
        config = OrchestratorConfig(
            default_retry=RetryPolicy(times=3, delay=0), log_errors=False
        )
        async with Orchestrator(transport, config) as orchestrator:
            with pytest.raises(TransportError):
                await orchestrator.submit(
                    RequestDescriptor("/once", retry=RetryPolicy(times=0))
                )
            assert transport.call_count == 1
            with pytest.raises(TransportError):
                await orchestrator.submit(RequestDescriptor("/default"))
        assert transport.call_count == 5

    @pytest.mark.asyncio
    async def test_timeout_becomes_transport_error(self, transport):
        async def slow(descriptor, token):
            await asyncio.sleep(1)
            return TransportResponse(200)

        transport.handler = slow
        async with Orchestrator(transport, OrchestratorConfig(log_errors=False)) as orchestrator:
            with pytest.raises(TransportError) as exc_info:
                await orchestrator.submit(RequestDescriptor("/slow", timeout=0.02))
        assert exc_info.value.is_timeout
        assert exc_info.value.code == "ETIMEDOUT"

    @pytest.mark.asyncio
    async def test_global_validation(self, transport):
        config = OrchestratorConfig(
            global_validate_error=lambda r: r.data.get("error") is not None,
            log_errors=False,
        )

        async def failing_body(descriptor, token):
            return TransportResponse(200, data={"error": "quota"})

        transport.handler = failing_body
        async with Orchestrator(transport, config) as orchestrator:
            with pytest.raises(ValidationError):
                await orchestrator.submit(RequestDescriptor("/a"))
            metrics = orchestrator.get_metrics()["metrics"]
        assert metrics["counters"][REQUESTS_FAILED_TOTAL] == {"reason=validation": 1}

    @pytest.mark.asyncio
    async def test_foreign_errors_are_wrapped(self, transport):
        async def broken(descriptor, token):
            raise KeyError("payload")

        transport.handler = broken
        async with Orchestrator(transport, OrchestratorConfig(log_errors=False)) as orchestrator:
            with pytest.raises(WrappedError) as exc_info:
                await orchestrator.submit(RequestDescriptor("/a", request_id="r1"))
        assert isinstance(exc_info.value.original, KeyError)
        assert exc_info.value.context["request_id"] == "r1"


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_running_request(self, transport):
        transport.gate = asyncio.Event()
        async with Orchestrator(transport) as orchestrator:
            call = asyncio.create_task(
                orchestrator.submit(RequestDescriptor("/a", request_id="req-1"))
            )
            await settle()
            assert orchestrator.cancel("req-1") is True
            with pytest.raises(RequestCancelledError):
                await call
            assert transport.tokens[0].cancelled

    @pytest.mark.asyncio
    async def test_stop_cancels_outstanding(self, transport):
        transport.gate = asyncio.Event()
        orchestrator = create_orchestrator(transport, max_concurrent=1)
        await orchestrator.start()
        calls = [
            asyncio.create_task(orchestrator.submit(RequestDescriptor(f"/r{i}")))
            for i in range(3)
        ]
        await settle()
        await orchestrator.stop()
        results = await asyncio.gather(*calls, return_exceptions=True)
        assert all(isinstance(r, RequestCancelledError) for r in results)


class TestManagementSurface:
    @pytest.mark.asyncio
    async def test_custom_middleware(self, transport):
        seen = []

        async def tag(context, call_next):
            seen.append(context.descriptor.url)
            return await call_next()

        async with Orchestrator(transport) as orchestrator:
            orchestrator.register_middleware(Middleware("tag", tag, priority=50))
            names = [m.name for m in orchestrator.get_middlewares()]
            await orchestrator.submit(RequestDescriptor("/a"))
            assert orchestrator.remove_middleware("tag") is True
            await orchestrator.submit(RequestDescriptor("/b"))
        assert names == ["timing", "cache", "tag", "retry", "error_handler"]
        assert seen == ["/a"]

    @pytest.mark.asyncio
    async def test_runtime_config_updates(self, transport):
        async with Orchestrator(transport) as orchestrator:
            orchestrator.update_queue_config(max_concurrent=3)
            orchestrator.update_cache_config(ttl=5, max_size=10)
            orchestrator.set_debounce_delay(0.1)
            assert orchestrator.get_queue_stats()["max_concurrent"] == 3
            assert orchestrator.get_cache_stats()["max_size"] == 10
            assert orchestrator.locks.debounce_delay == 0.1

    @pytest.mark.asyncio
    async def test_metrics_snapshot(self, transport):
        async with Orchestrator(transport) as orchestrator:
            await orchestrator.submit(RequestDescriptor("/a"))
            snapshot = orchestrator.get_metrics()
        assert snapshot["running"] is True
        assert snapshot["queue"]["running"] == 0
        assert snapshot["metrics"]["counters"][REQUESTS_COMPLETED_TOTAL] == {"": 1}

    @pytest.mark.asyncio
    async def test_metrics_disabled(self, transport):
        config = OrchestratorConfig(metrics_enabled=False)
        async with Orchestrator(transport, config) as orchestrator:
            await orchestrator.submit(RequestDescriptor("/a"))
            assert orchestrator.get_metrics()["metrics"] == {}
