"""
Unit Tests for the Cleanup Registry
===================================
"""

import pytest

from src.core.orchestration.cleanup import CleanupRegistry


class TestCleanupRegistry:
    """Test LIFO, exactly-once release."""

    @pytest.mark.asyncio
    async def test_releases_in_reverse_order(self):
        """Test releases in reverse order."""
        registry = CleanupRegistry()
        order = []
        registry.register(lambda: order.append("browser"), label="browser")
        registry.register(lambda: order.append("bundle"), label="bundle")
        registry.register(lambda: order.append("server"), label="server")

        await registry.run_all()

        assert order == ["server", "bundle", "browser"]
        assert registry.released == ["server", "bundle", "browser"]
        assert registry.pending == []

    @pytest.mark.asyncio
    async def test_awaits_async_disposers(self):
        """Test awaits async disposers."""
        registry = CleanupRegistry()
        closed = []

        async def close():
            closed.append(True)

        registry.register(close, label="server")
        await registry.run_all()

        assert closed == [True]

    @pytest.mark.asyncio
    async def test_second_run_releases_nothing_twice(self):
        """Test second run releases nothing twice."""
        registry = CleanupRegistry()
        calls = []
        registry.register(lambda: calls.append("a"), label="a")

        await registry.run_all()
        await registry.run_all()

        assert calls == ["a"]

    @pytest.mark.asyncio
    async def test_late_registration_released_by_next_run(self):
        """Test late registration released by next run."""
        registry = CleanupRegistry()
        calls = []
        registry.register(lambda: calls.append("a"), label="a")
        await registry.run_all()

        registry.register(lambda: calls.append("b"), label="b")
        await registry.run_all()

        assert calls == ["a", "b"]

    @pytest.mark.asyncio
    async def test_failure_is_logged_and_others_still_run(self):
        """Test failure is logged and others still run."""
        registry = CleanupRegistry()
        calls = []

        def broken():
            raise RuntimeError("cannot close")

        registry.register(lambda: calls.append("first"), label="first")
        registry.register(broken, label="broken")

        await registry.run_all()

        assert calls == ["first"]
        assert registry.released == ["broken", "first"]

    @pytest.mark.asyncio
    async def test_call_registers_with_function_name(self):
        """Test call registers with function name."""
        registry = CleanupRegistry()

        def remove_bundle():
            return None

        registry(remove_bundle)

        assert registry.pending == ["remove_bundle"]
