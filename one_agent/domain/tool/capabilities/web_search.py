"""
Web search capability.

Backed by Tavily by default. The provider is any callable taking
``(query, max_results)`` and returning a list of result dicts with
``title``, ``content`` and ``url`` keys, so other engines can be plugged in.
"""

import asyncio
from typing import Any, Callable, Dict, List, Optional

import structlog

from one_agent.domain.models.capability import Sentinel
from one_agent.domain.tool.tool_registry import CapabilityDescriptor

logger = structlog.get_logger(__name__)

WEB_SEARCH = "web_search"

SearchProvider = Callable[[str, int], List[Dict[str, Any]]]


def tavily_provider(api_key: str) -> SearchProvider:
    """Build a synchronous Tavily search function"""
    from tavily import TavilyClient

    client = TavilyClient(api_key=api_key)

    def search(query: str, max_results: int) -> List[Dict[str, Any]]:
        response = client.search(query=query, max_results=max_results)
        return response.get("results", [])

    return search


def format_results(results: List[Dict[str, Any]], max_results: int) -> str:
    blocks = []
    for result in results[:max_results]:
        title = (result.get("title") or "").strip()
        snippet = (result.get("content") or result.get("snippet") or "").strip()
        source = (result.get("url") or result.get("source") or "").strip()
        if not (title or snippet):
            continue
        blocks.append(f"Title: {title}\nSnippet: {snippet}\nSource: {source}")
    return "\n\n".join(blocks)


def create_web_search_capability(
    provider: SearchProvider,
    max_results: int = 3,
    timeout: Optional[float] = 15.0
) -> CapabilityDescriptor:
    """Capability that searches the web through ``provider``"""

    async def web_search(arguments: Dict[str, Any], session_id: str) -> str:
        query = arguments["query"]
        try:
            results = await asyncio.to_thread(provider, query, max_results)
        except Exception as e:
            logger.error("Web search failed", session_id=session_id, query=query[:50], error=str(e))
            return Sentinel.API_ERROR.value

        text = format_results(results or [], max_results)
        if not text:
            return Sentinel.SEARCH_NO_RESULT.value

        logger.info("Web search complete", session_id=session_id, query=query[:50], results=len(results))
        return text

    return CapabilityDescriptor(
        name=WEB_SEARCH,
        description=(
            "Search the web for current or general information. Use it when long-term memory "
            f"returned {Sentinel.MISSING_MEMORY.value} and the question needs outside facts."
        ),
        argument_schema={
            "type": "object",
            "properties": {
                "query": {"type": "string", "minLength": 1, "description": "Search query"}
            },
            "required": ["query"],
            "additionalProperties": False
        },
        invoke=web_search,
        failure_signals=frozenset({Sentinel.SEARCH_NO_RESULT, Sentinel.API_ERROR}),
        default_failure=Sentinel.API_ERROR,
        timeout=timeout
    )
