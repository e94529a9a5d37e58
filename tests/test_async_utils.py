"""
Tests for async_utils module.

Covers run_sync, gather_all and gather_settled.
"""

import asyncio

import pytest

from tagplan_mcp.core.async_utils import gather_all, gather_settled, run_sync


def _sync_add(a: int, b: int) -> int:
    """Simple sync function for testing."""
    return a + b


async def _value(x, delay=0.0):
    await asyncio.sleep(delay)
    return x


async def _fail(message):
    raise ValueError(message)


async def test_run_sync_calls_function():
    """run_sync delegates to asyncio.to_thread with correct args."""
    result = await run_sync(_sync_add, 3, 4)
    assert result == 7


async def test_run_sync_passes_kwargs():
    """run_sync forwards keyword arguments."""

    def _kw_func(*, name: str) -> str:
        return f"hello {name}"

    result = await run_sync(_kw_func, name="world")
    assert result == "hello world"


async def test_run_sync_propagates_exceptions():
    def _boom():
        raise KeyError("missing")

    with pytest.raises(KeyError):
        await run_sync(_boom)


async def test_gather_all_preserves_order():
    """Results come back in input order, not completion order."""
    results = await gather_all([_value("slow", 0.02), _value("fast")])
    assert results == ["slow", "fast"]


async def test_gather_all_empty():
    assert await gather_all([]) == []


async def test_gather_all_raises_first_error():
    with pytest.raises(ValueError, match="bad"):
        await gather_all([_value(1), _fail("bad")])


async def test_gather_settled_returns_exceptions_in_place():
    results = await gather_settled([_value(1), _fail("bad"), _value(3)])

    assert results[0] == 1
    assert isinstance(results[1], ValueError)
    assert results[2] == 3
