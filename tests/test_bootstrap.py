"""Tests for component wiring."""

import pytest

from conftest import ScriptedInference, fake_search
from one_agent.application.bootstrap import build_capability_registry, summary_keeper
from one_agent.domain.models.agent_state import Session
from one_agent.domain.models.memory import MemoryKind


class TestCapabilityRegistry:

    def test_without_search(self, memory_store, settings):
        registry = build_capability_registry(memory_store, settings.memory, settings.search)

        assert registry.names() == ["query_memory", "save_memory"]
        assert registry.get("query_memory").fallback is None

    def test_with_search(self, memory_store, settings):
        registry = build_capability_registry(memory_store, settings.memory, settings.search, fake_search)

        assert registry.names() == ["query_memory", "save_memory", "web_search"]
        assert registry.get("query_memory").fallback == "web_search"


class TestTeardown:

    @pytest.mark.asyncio
    async def test_summary_is_kept_as_agent_note(self, memory_store):
        session = Session(id="s1")
        session.merge_summary("user likes coffee")

        await summary_keeper(memory_store)(session)

        records = await memory_store.retrieve("s1", "coffee")
        assert records[0].record.kind == MemoryKind.AGENT_NOTE
        assert records[0].text == "Conversation summary: user likes coffee"

    @pytest.mark.asyncio
    async def test_no_summary_writes_nothing(self, memory_store):
        await summary_keeper(memory_store)(Session(id="s1"))

        assert await memory_store.count("s1") == 0

    @pytest.mark.asyncio
    async def test_orchestrator_registers_hook(self, make_orchestrator):
        orchestrator = make_orchestrator(ScriptedInference())

        assert len(orchestrator.session_registry.teardown_hooks) == 1
