"""Tests for the session registry."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from one_agent.domain.context.state.state_manager import SessionRegistry
from one_agent.domain.models.agent_state import Message


class TestSessionLifecycle:

    @pytest.mark.asyncio
    async def test_created_on_first_use(self):
        registry = SessionRegistry()

        async with registry.session("s1") as session:
            assert session.id == "s1"

        assert "s1" in registry
        assert len(registry) == 1
        assert registry.get("missing") is None

    @pytest.mark.asyncio
    async def test_same_object_across_uses(self):
        registry = SessionRegistry()

        async with registry.session("s1") as first:
            first.append(Message.user("hi"))
        async with registry.session("s1") as second:
            assert second is first
            assert len(second.messages) == 1

    @pytest.mark.asyncio
    async def test_loader_runs_once(self):
        registry = SessionRegistry()
        loader = AsyncMock(return_value=[Message.user("old"), Message.assistant("reply")])

        async with registry.session("s1", loader=loader) as session:
            assert [m.content for m in session.messages] == ["old", "reply"]
        async with registry.session("s1", loader=loader):
            pass

        loader.assert_awaited_once_with("s1")

    @pytest.mark.asyncio
    async def test_loader_failure_is_tolerated(self):
        registry = SessionRegistry()
        loader = AsyncMock(side_effect=RuntimeError("store offline"))

        async with registry.session("s1", loader=loader) as session:
            assert session.messages == []


class TestLocking:

    @pytest.mark.asyncio
    async def test_one_holder_per_session(self):
        registry = SessionRegistry()
        order = []

        async def hold(tag):
            async with registry.session("s1"):
                order.append(f"{tag}-in")
                await asyncio.sleep(0.01)
                order.append(f"{tag}-out")

        await asyncio.gather(hold("a"), hold("b"))

        assert order in (["a-in", "a-out", "b-in", "b-out"], ["b-in", "b-out", "a-in", "a-out"])

    @pytest.mark.asyncio
    async def test_different_sessions_run_concurrently(self):
        registry = SessionRegistry()
        order = []

        async def hold(session_id):
            async with registry.session(session_id):
                order.append(f"{session_id}-in")
                await asyncio.sleep(0.01)
                order.append(f"{session_id}-out")

        await asyncio.gather(hold("a"), hold("b"))

        assert order[:2] == ["a-in", "b-in"]


class TestEviction:

    @pytest.mark.asyncio
    async def test_capacity_evicts_least_recently_used(self):
        registry = SessionRegistry(max_sessions=2)
        hook = AsyncMock()
        registry.add_teardown_hook(hook)

        for session_id in ("a", "b"):
            async with registry.session(session_id):
                pass
        async with registry.session("a"):
            pass
        async with registry.session("c"):
            pass

        assert "b" not in registry
        assert "a" in registry and "c" in registry
        hook.assert_awaited_once()
        assert hook.await_args.args[0].id == "b"

    @pytest.mark.asyncio
    async def test_sessions_in_use_are_not_evicted(self):
        registry = SessionRegistry(max_sessions=1)

        async with registry.session("a"):
            async with registry.session("b"):
                pass
            assert "a" in registry

    @pytest.mark.asyncio
    async def test_ttl_expiry(self):
        registry = SessionRegistry(ttl=0)
        async with registry.session("a"):
            pass
        await asyncio.sleep(0.01)

        assert await registry.evict_expired() == 1
        assert "a" not in registry

    @pytest.mark.asyncio
    async def test_no_ttl_never_expires(self):
        registry = SessionRegistry(ttl=None)
        async with registry.session("a"):
            pass

        assert await registry.evict_expired() == 0

    @pytest.mark.asyncio
    async def test_close_refused_while_in_use(self):
        registry = SessionRegistry()

        async with registry.session("a"):
            assert await registry.close("a") is False

        assert await registry.close("a") is True
        assert await registry.close("a") is False

    @pytest.mark.asyncio
    async def test_failing_hook_does_not_stop_teardown(self):
        registry = SessionRegistry()
        registry.add_teardown_hook(AsyncMock(side_effect=RuntimeError("hook failed")))
        second = AsyncMock()
        registry.add_teardown_hook(second)

        async with registry.session("a"):
            pass
        await registry.shutdown()

        assert len(registry) == 0
        second.assert_awaited_once()
