"""Unit tests for tracetour/core/context.py."""

import asyncio
import uuid

import pytest
from loguru import logger

from tracetour.core.context import (
    ABSENT,
    CancellationToken,
    ContextKey,
    CorrelationContext,
    RequestContext,
    generate_correlation_id,
    generate_request_id,
)
from tracetour.core.exceptions import RequestCancelledError


@pytest.mark.unit
class TestRequestContextBinding:
    """Binding and looking up values on the immutable context chain."""

    def test_with_value_returns_new_context_and_leaves_parent_unchanged(
        self,
    ) -> None:
        """Test that binding a value never mutates the receiver."""
        parent = RequestContext.background()
        child = parent.with_value(ContextKey.INTERACTOR, "interactor")

        assert child is not parent
        assert child.lookup(ContextKey.INTERACTOR) == "interactor"
        assert parent.lookup(ContextKey.INTERACTOR) is ABSENT

    def test_lookup_returns_absent_for_unbound_key(self) -> None:
        """Test that an unbound key yields the ABSENT marker, never raising."""
        ctx = RequestContext.background()

        assert ctx.lookup(ContextKey.LOGGER) is ABSENT
        assert not ABSENT
        assert repr(ABSENT) == "ABSENT"

    def test_later_binding_shadows_earlier_one(self) -> None:
        """Test that the nearest binding of a key wins."""
        ctx = (
            RequestContext.background()
            .with_value(ContextKey.INTERACTOR, "first")
            .with_value(ContextKey.LOGGER, logger)
            .with_value(ContextKey.INTERACTOR, "second")
        )

        assert ctx.lookup(ContextKey.INTERACTOR) == "second"
        assert ctx.lookup(ContextKey.LOGGER) is logger

    def test_with_value_rejects_string_keys(self) -> None:
        """Test that only ContextKey members can be used as keys."""
        ctx = RequestContext.background()

        with pytest.raises(TypeError, match="ContextKey"):
            ctx.with_value("logger", logger)  # type: ignore[arg-type]

    def test_with_value_rejects_absent(self) -> None:
        """Test that the ABSENT marker itself cannot be bound."""
        ctx = RequestContext.background()

        with pytest.raises(ValueError, match="ABSENT"):
            ctx.with_value(ContextKey.INTERACTOR, ABSENT)

    def test_derived_contexts_share_correlation_id_and_cancellation(self) -> None:
        """Test that children inherit the correlation ID and cancellation token."""
        token = CancellationToken()
        root = RequestContext("corr-1", token)
        child = root.with_logger(logger).with_interactor(object())

        assert child.correlation_id == "corr-1"
        assert child.cancellation is token

    def test_typed_accessors_fall_back_when_unbound(self) -> None:
        """Test that the typed accessors have safe defaults."""
        ctx = RequestContext.background()

        assert ctx.logger is logger
        assert ctx.repository_locator is None
        assert ctx.interactor is None

    def test_typed_accessors_return_bound_values(self) -> None:
        """Test that the typed helpers bind under their own keys."""
        bound_logger = logger.bind(correlation_id="abc")
        locator = object()
        interactor = object()

        ctx = (
            RequestContext.background()
            .with_logger(bound_logger)
            .with_repository_locator(locator)  # type: ignore[arg-type]
            .with_interactor(interactor)
        )

        assert ctx.logger is bound_logger
        assert ctx.repository_locator is locator
        assert ctx.interactor is interactor

    def test_generated_correlation_id_when_omitted(self) -> None:
        """Test that a root context gets a UUID4 correlation ID."""
        ctx = RequestContext()

        assert uuid.UUID(ctx.correlation_id).version == 4

    def test_repr_lists_bound_keys_in_binding_order(self) -> None:
        """Test that repr shows the correlation ID and bound keys."""
        ctx = RequestContext("corr-2").with_logger(logger).with_interactor("uc")

        assert repr(ctx) == (
            "RequestContext(correlation_id='corr-2', keys=['logger', 'interactor'])"
        )


@pytest.mark.unit
class TestCancellationToken:
    """Cancellation carried alongside the context."""

    def test_new_token_is_not_cancelled(self) -> None:
        """Test that a fresh token does not raise."""
        token = CancellationToken()

        token.raise_if_cancelled()
        assert token.cancelled is False
        assert token.reason is None

    def test_cancel_is_idempotent_and_keeps_first_reason(self) -> None:
        """Test that cancelling twice keeps the first reason."""
        token = CancellationToken()
        token.cancel("client disconnected")
        token.cancel("second reason")

        assert token.cancelled is True
        assert token.reason == "client disconnected"

    def test_raise_if_cancelled_raises_request_cancelled(self) -> None:
        """Test that a cancelled token raises RequestCancelledError."""
        token = CancellationToken()
        token.cancel()

        with pytest.raises(RequestCancelledError) as exc_info:
            token.raise_if_cancelled()

        assert exc_info.value.context == {"reason": "client disconnected"}


@pytest.mark.unit
class TestCorrelationContext:
    """Correlation ID stored in a ContextVar."""

    def test_set_and_get_correlation_id(self) -> None:
        """Test that a stored correlation ID can be read back."""
        CorrelationContext.set_correlation_id("corr-3")

        assert CorrelationContext.get_correlation_id() == "corr-3"

    def test_clear_removes_correlation_id(self) -> None:
        """Test that clear() resets the correlation ID to None."""
        CorrelationContext.set_correlation_id("corr-4")
        CorrelationContext.clear()

        assert CorrelationContext.get_correlation_id() is None

    async def test_correlation_id_is_isolated_between_tasks(self) -> None:
        """Test that concurrent tasks do not see each other's correlation IDs."""

        async def worker(correlation_id: str) -> str | None:
            CorrelationContext.set_correlation_id(correlation_id)
            await asyncio.sleep(0)
            return CorrelationContext.get_correlation_id()

        results = await asyncio.gather(*(worker(f"task-{i}") for i in range(5)))

        assert results == [f"task-{i}" for i in range(5)]


@pytest.mark.unit
class TestIdGeneration:
    """Correlation and request ID generators."""

    def test_generate_correlation_id_is_uuid4(self) -> None:
        """Test that correlation IDs are unique UUID4 strings."""
        first = generate_correlation_id()
        second = generate_correlation_id()

        assert uuid.UUID(first).version == 4
        assert first != second

    def test_generate_request_id_format(self) -> None:
        """Test that request IDs are 'req-' followed by a UUID4."""
        request_id = generate_request_id()

        assert request_id.startswith("req-")
        assert uuid.UUID(request_id.removeprefix("req-")).version == 4
