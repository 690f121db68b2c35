"""Tests for operation tracing."""

import asyncio
import logging

import pytest

from release_provider.context import current_trace, trace_context


def test_nested_labels(caplog: pytest.LogCaptureFixture) -> None:
    """Test nested operations are labeled with their resource."""
    caplog.set_level(logging.DEBUG, logger="release_provider.context")
    with trace_context("Create", "urn:a") as outer:
        assert outer == "Create(urn:a)"
        with trace_context("Resolve chart") as inner:
            assert inner == "Create(urn:a) > Resolve chart"
            assert current_trace() == inner
        assert current_trace() == outer
    assert current_trace() == ""

    messages = [r.getMessage() for r in caplog.records]
    assert messages[0] == "[Trace] > Create(urn:a)"
    assert messages[1] == "[Trace] > Create(urn:a) > Resolve chart"
    assert messages[2].startswith("[Trace] < Create(urn:a) > Resolve chart (")
    assert messages[3].startswith("[Trace] < Create(urn:a) (")


def test_failed_operation(caplog: pytest.LogCaptureFixture) -> None:
    """Test a failing operation is logged and the error propagates."""
    caplog.set_level(logging.DEBUG, logger="release_provider.context")
    with pytest.raises(ValueError, match="boom"):
        with trace_context("Delete", "r1"):
            raise ValueError("boom")
    assert current_trace() == ""

    messages = [r.getMessage() for r in caplog.records]
    assert len(messages) == 2
    assert messages[1].startswith("[Trace] ! Delete(r1) failed after ")
    assert messages[1].endswith(": boom")


async def test_concurrent_operations() -> None:
    """Test concurrent tasks do not see each other's operations."""
    seen: dict[str, str] = {}

    async def op(resource: str) -> None:
        with trace_context("Read", resource):
            await asyncio.sleep(0)
            seen[resource] = current_trace()

    await asyncio.gather(op("r1"), op("r2"))
    assert seen == {"r1": "Read(r1)", "r2": "Read(r2)"}
