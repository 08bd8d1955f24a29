"""
Tests for the error classification middleware.
"""

import logging
from unittest.mock import Mock

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
    create_error_handler_middleware,
)
from request_orchestrator.types import RequestDescriptor, TransportResponse


def make_engine(executor, **kwargs):
    engine = MiddlewareEngine()
    engine.use(create_error_handler_middleware(**kwargs))
    engine.set_executor(executor)
    return engine


def responding(status=200, data=None):
    async def executor(context):
        context.response = TransportResponse(status, data=data)
        return context.response

    return executor


def raising(error):
    async def executor(context):
        raise error

    return executor


class TestValidation:
    @pytest.mark.asyncio
    async def test_passes_valid_response(self):
        engine = make_engine(responding(data={"ok": True}))
        d = RequestDescriptor("/a", validate_error=lambda r: False)
        response = await engine.execute(MiddlewareContext(d))
        assert response.data == {"ok": True}

    @pytest.mark.asyncio
    async def test_true_verdict_raises_validation_error(self):
        engine = make_engine(responding(data={"code": 1}), log_errors=False)
        d = RequestDescriptor("/a", validate_error=lambda r: r.data["code"] != 0)
        with pytest.raises(ValidationError, match="Custom validation failed") as exc_info:
            await engine.execute(MiddlewareContext(d))
        assert exc_info.value.response.data == {"code": 1}

    @pytest.mark.asyncio
    async def test_exception_verdict_uses_its_message(self):
        engine = make_engine(responding(), log_errors=False)
        d = RequestDescriptor("/a", validate_error=lambda r: RuntimeError("quota exceeded"))
        with pytest.raises(ValidationError, match="quota exceeded"):
            await engine.execute(MiddlewareContext(d))


class TestClassification:
    @pytest.mark.asyncio
    async def test_transport_error_passes_with_diagnostics(self):
        engine = make_engine(raising(TransportError("down", status=502)), log_errors=False)
        context = MiddlewareContext(RequestDescriptor("/a", request_id="r1"))
        with pytest.raises(TransportError) as exc_info:
            await engine.execute(context)
        assert exc_info.value.context["url"] == "/a"
        assert exc_info.value.context["request_id"] == "r1"
        assert context.error is exc_info.value

    @pytest.mark.asyncio
    async def test_foreign_error_is_wrapped(self):
        original = KeyError("missing")
        engine = make_engine(raising(original), log_errors=False)
        with pytest.raises(WrappedError) as exc_info:
            await engine.execute(MiddlewareContext(RequestDescriptor("/a")))
        assert exc_info.value.original is original
        assert exc_info.value.context["method"] == "GET"

    @pytest.mark.asyncio
    async def test_cancellation_passes_untouched(self):
        on_error = Mock()
        engine = make_engine(raising(RequestCancelledError()), on_error=on_error)
        with pytest.raises(RequestCancelledError):
            await engine.execute(MiddlewareContext(RequestDescriptor("/a")))
        on_error.assert_not_called()


class TestCallbacks:
    @pytest.mark.asyncio
    async def test_on_error_called(self):
        on_error = Mock()
        engine = make_engine(raising(TransportError("x")), log_errors=False, on_error=on_error)
        context = MiddlewareContext(RequestDescriptor("/a"))
        with pytest.raises(TransportError):
            await engine.execute(context)
        error, ctx = on_error.call_args.args
        assert isinstance(error, TransportError)
        assert ctx is context

    @pytest.mark.asyncio
    async def test_transform_error_replaces_error(self):
        engine = make_engine(
            raising(TransportError("x", status=500)),
            log_errors=False,
            transform_error=lambda e, ctx: ValueError(f"status {e.status}"),
        )
        with pytest.raises(ValueError, match="status 500"):
            await engine.execute(MiddlewareContext(RequestDescriptor("/a")))

    @pytest.mark.asyncio
    async def test_non_exception_transform_is_wrapped(self):
        engine = make_engine(
            raising(TransportError("x")),
            log_errors=False,
            transform_error=lambda e, ctx: "friendly message",
        )
        with pytest.raises(WrappedError, match="friendly message"):
            await engine.execute(MiddlewareContext(RequestDescriptor("/a")))

    @pytest.mark.asyncio
    async def test_logs_errors(self, caplog):
        engine = make_engine(raising(TransportError("boom", status=503)))
        with caplog.at_level(logging.ERROR, logger="request_orchestrator.middleware.errors"):
            with pytest.raises(TransportError):
                await engine.execute(MiddlewareContext(RequestDescriptor("/a")))
        assert "status=503" in caplog.text
        assert "GET /a" in caplog.text

    @pytest.mark.asyncio
    async def test_logging_disabled(self, caplog):
        engine = make_engine(raising(TransportError("boom")), log_errors=False)
        with caplog.at_level(logging.ERROR, logger="request_orchestrator.middleware.errors"):
            with pytest.raises(TransportError):
                await engine.execute(MiddlewareContext(RequestDescriptor("/a")))
        assert caplog.text == ""
