from typing import Any, Dict, Optional

import structlog

from one_agent.domain.context.memory.vector_memory_store import VectorMemoryStore
from one_agent.domain.models.capability import Sentinel
from one_agent.domain.models.memory import MemoryKind
from one_agent.domain.tool.tool_registry import CapabilityDescriptor

logger = structlog.get_logger(__name__)

QUERY_MEMORY = "query_memory"
SAVE_MEMORY = "save_memory"

MEMORY_FOUND_PREFIX = "Relevant memory found:\n"
MEMORY_SAVED = "Memory stored successfully."
TRUNCATION_MARKER = "..."


def truncate_to_budget(text: str, budget: int) -> str:
    if budget > 0 and len(text) > budget:
        return text[:budget] + TRUNCATION_MARKER
    return text


def create_query_memory_capability(
    store: VectorMemoryStore,
    top_k: int = 2,
    char_budget: int = 800,
    min_score: Optional[float] = None,
    fallback: Optional[str] = "web_search"
) -> CapabilityDescriptor:
    """Capability that searches this session's long-term memory"""

    async def query_memory(arguments: Dict[str, Any], session_id: str) -> str:
        try:
            results = await store.retrieve(session_id, arguments["query"], k=top_k, min_score=min_score)
        except Exception as e:
            logger.error("Memory retrieval failed", session_id=session_id, error=str(e))
            return Sentinel.MISSING_MEMORY.value

        texts = [result.text for result in results if result.text.strip()]
        if not texts:
            return Sentinel.MISSING_MEMORY.value

        return MEMORY_FOUND_PREFIX + truncate_to_budget("\n\n".join(texts), char_budget)

    description = (
        "Preferred first step. Look up the user's preferences, facts or earlier conversation "
        f"in long-term memory. If it returns {Sentinel.MISSING_MEMORY.value}, do not call it again"
    )
    if fallback:
        description += f"; use {fallback} instead when the question needs outside information."
    else:
        description += "."

    return CapabilityDescriptor(
        name=QUERY_MEMORY,
        description=description,
        argument_schema={
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "minLength": 1,
                    "description": "Search keywords, e.g. 'the user's name' or 'what we discussed yesterday'"
                }
            },
            "required": ["query"],
            "additionalProperties": False
        },
        invoke=query_memory,
        failure_signals=frozenset({Sentinel.MISSING_MEMORY}),
        default_failure=Sentinel.MISSING_MEMORY,
        fallback=fallback
    )


def create_save_memory_capability(store: VectorMemoryStore) -> CapabilityDescriptor:
    """Capability that lets the model record a fact for later turns"""

    async def save_memory(arguments: Dict[str, Any], session_id: str) -> str:
        try:
            await store.write(session_id, arguments["content"], MemoryKind.AGENT_NOTE)
        except Exception as e:
            logger.error("Memory write failed", session_id=session_id, error=str(e))
            return Sentinel.MEMORY_WRITE_FAILED.value
        return MEMORY_SAVED

    return CapabilityDescriptor(
        name=SAVE_MEMORY,
        description=(
            "Store a key fact in long-term memory. Call it whenever the user introduces themselves "
            "or mentions names, jobs, relationships or preferences worth remembering."
        ),
        argument_schema={
            "type": "object",
            "properties": {
                "content": {
                    "type": "string",
                    "minLength": 1,
                    "description": "A short factual statement, e.g. 'User: Li Ming (teacher), friend Wang Yang (his student)'"
                }
            },
            "required": ["content"],
            "additionalProperties": False
        },
        invoke=save_memory,
        failure_signals=frozenset({Sentinel.MEMORY_WRITE_FAILED}),
        default_failure=Sentinel.MEMORY_WRITE_FAILED
    )
