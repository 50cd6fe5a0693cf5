"""
Component wiring for the running service.

Everything concrete (Ollama models, Tavily, in-memory stores) is chosen here;
the domain layer only sees the abstract interfaces.
"""

from typing import Optional

from langchain_core.embeddings import Embeddings
import structlog

from one_agent.domain.context.context_manager import ContextWindowManager
from one_agent.domain.context.memory.runtime_memory import InMemoryTranscriptStore, TranscriptStore
from one_agent.domain.context.memory.vector_memory_store import VectorMemoryStore
from one_agent.domain.context.prompt_builder import PromptBuilder
from one_agent.domain.context.state.state_manager import SessionRegistry
from one_agent.domain.inference.base_inference import InferenceProvider
from one_agent.domain.models.agent_state import Session
from one_agent.domain.models.memory import MemoryKind
from one_agent.domain.orchestration.core.content_policy import ContentPolicy
from one_agent.domain.orchestration.core.main_agent import AgentOrchestrator
from one_agent.domain.streaming.streaming_handler import StreamingHandler
from one_agent.domain.tool.capabilities.memory_capabilities import (
    create_query_memory_capability, create_save_memory_capability
)
from one_agent.domain.tool.capabilities.web_search import (
    SearchProvider, WEB_SEARCH, create_web_search_capability, tavily_provider
)
from one_agent.domain.tool.tool_registry import CapabilityRegistry
from one_agent.infrastructure.config.settings import AgentSettings, MemorySettings, SearchSettings
from one_agent.infrastructure.llm.chat_model_inference import ChatModelInference, build_chat_model

logger = structlog.get_logger(__name__)


def build_embeddings(settings: AgentSettings) -> Embeddings:
    from langchain_ollama import OllamaEmbeddings

    return OllamaEmbeddings(model=settings.memory.embedding_model, base_url=settings.inference.base_url)


def build_capability_registry(
    memory_store: VectorMemoryStore,
    memory: MemorySettings,
    search: SearchSettings,
    search_provider: Optional[SearchProvider] = None
) -> CapabilityRegistry:
    """Register the memory capabilities, plus web search when a provider is available"""

    if search_provider is None and search.tavily_api_key:
        search_provider = tavily_provider(search.tavily_api_key)

    registry = CapabilityRegistry()
    registry.register(create_query_memory_capability(
        memory_store,
        top_k=memory.top_k,
        char_budget=memory.char_budget,
        min_score=memory.min_score,
        fallback=WEB_SEARCH if search_provider else None
    ))
    registry.register(create_save_memory_capability(memory_store))

    if search_provider:
        registry.register(create_web_search_capability(
            search_provider, max_results=search.max_results, timeout=search.timeout
        ))
    else:
        logger.warning("No search API key configured, web_search disabled")

    return registry


def summary_keeper(memory_store: VectorMemoryStore):
    """Teardown hook that files an evicted session's summary as an agent note"""

    async def keep_summary(session: Session):
        if session.summary:
            await memory_store.write(session.id, f"Conversation summary: {session.summary}", MemoryKind.AGENT_NOTE)

    return keep_summary


def build_orchestrator(
    settings: AgentSettings,
    inference: Optional[InferenceProvider] = None,
    embeddings: Optional[Embeddings] = None,
    transcript_store: Optional[TranscriptStore] = None,
    search_provider: Optional[SearchProvider] = None
) -> AgentOrchestrator:
    """Wire an orchestrator; any collaborator can be overridden"""

    inference = inference or ChatModelInference(build_chat_model(settings.inference))
    memory_store = VectorMemoryStore(embeddings or build_embeddings(settings))
    transcript_store = transcript_store or InMemoryTranscriptStore()

    session_registry = SessionRegistry(ttl=settings.memory.session_ttl, max_sessions=settings.memory.max_sessions)
    session_registry.add_teardown_hook(summary_keeper(memory_store))

    context = settings.context
    return AgentOrchestrator(
        inference=inference,
        registry=build_capability_registry(memory_store, settings.memory, settings.search, search_provider),
        context_manager=ContextWindowManager(
            window_size=context.window_size,
            max_messages=context.max_messages,
            retained_tail=context.retained_tail,
            summary_timeout=context.summary_timeout
        ),
        session_registry=session_registry,
        streaming_handler=StreamingHandler(transcript_store, memory_store, persist_timeout=context.persist_timeout),
        transcript_store=transcript_store,
        content_policy=ContentPolicy(context.denylist),
        prompt_builder=PromptBuilder(),
        max_depth=context.max_depth,
        turn_timeout=context.turn_timeout
    )
