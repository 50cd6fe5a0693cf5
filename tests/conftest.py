"""
Shared test fixtures.

ScriptedInference replays canned responses so agent-loop tests are
deterministic; KeywordEmbeddings gives vectors whose similarity is easy to
reason about.
"""

from typing import Any, AsyncIterator, List, Optional, Tuple

import pytest
from langchain_core.embeddings import Embeddings

from one_agent.application.bootstrap import build_orchestrator
from one_agent.domain.context.memory.runtime_memory import InMemoryTranscriptStore
from one_agent.domain.context.memory.vector_memory_store import VectorMemoryStore
from one_agent.domain.inference.base_inference import CapabilitySpec, InferenceChunk, InferenceProvider
from one_agent.domain.models.agent_state import Message
from one_agent.domain.models.capability import CapabilityCall
from one_agent.domain.streaming.streaming_handler import TurnSink
from one_agent.infrastructure.config.settings import AgentSettings

VOCABULARY = ["name", "coffee", "tea", "weather", "cat", "paris", "python", "teacher"]


class KeywordEmbeddings(Embeddings):
    """Bag-of-words over a small vocabulary, plus a constant component"""

    def _embed(self, text: str) -> List[float]:
        lowered = text.lower()
        return [float(lowered.count(word)) for word in VOCABULARY] + [0.1]

    def embed_documents(self, texts: List[str]) -> List[List[float]]:
        return [self._embed(text) for text in texts]

    def embed_query(self, text: str) -> List[float]:
        return self._embed(text)


class FailingEmbeddings(KeywordEmbeddings):
    def embed_documents(self, texts: List[str]) -> List[List[float]]:
        raise RuntimeError("embedding backend down")

    def embed_query(self, text: str) -> List[float]:
        raise RuntimeError("embedding backend down")


def call(name: str, **arguments: Any) -> CapabilityCall:
    return CapabilityCall(name=name, arguments=arguments)


class ScriptedInference(InferenceProvider):
    """Replays responses in order; the last one repeats once the script runs out.

    A response is a string (streamed as two chunks), a list of CapabilityCall,
    or an exception to raise.
    """

    def __init__(self, responses: Optional[List[Any]] = None, summary: Any = "summary of earlier talk"):
        self.responses = list(responses or ["ok"])
        self.summary = summary
        self.calls: List[Tuple[List[Message], Optional[List[str]]]] = []
        self.complete_calls: List[List[Message]] = []

    def _next(self) -> Any:
        if len(self.responses) > 1:
            return self.responses.pop(0)
        return self.responses[0]

    async def stream(
        self,
        messages: List[Message],
        capabilities: Optional[List[CapabilitySpec]] = None
    ) -> AsyncIterator[InferenceChunk]:
        self.calls.append((list(messages), [spec.name for spec in capabilities] if capabilities else None))
        response = self._next()

        if isinstance(response, Exception):
            raise response
        if isinstance(response, str):
            middle = len(response) // 2
            for piece in (response[:middle], response[middle:]):
                if piece:
                    yield InferenceChunk(content=piece)
            return
        yield InferenceChunk(capability_calls=list(response))

    async def complete(self, messages: List[Message]) -> str:
        self.complete_calls.append(list(messages))
        if isinstance(self.summary, Exception):
            raise self.summary
        return self.summary

    @property
    def offered(self) -> List[Optional[List[str]]]:
        """Capability names offered on each inference call"""
        return [names for _, names in self.calls]


class ListSink(TurnSink):
    """Records every emitted event in order"""

    def __init__(self):
        self.events: List[Tuple[str, Any]] = []

    async def emit_chunk(self, content: str):
        self.events.append(("chunk", content))

    async def emit_done(self):
        self.events.append(("done", True))

    async def emit_error(self, message: str):
        self.events.append(("error", message))

    @property
    def text(self) -> str:
        return "".join(value for kind, value in self.events if kind == "chunk")

    @property
    def terminal(self) -> Tuple[str, Any]:
        return self.events[-1]


def fake_search(query: str, max_results: int):
    return [
        {"title": "Weather in Paris", "content": f"Sunny, results for {query}", "url": "https://example.com/paris"},
    ]


@pytest.fixture
def embeddings():
    return KeywordEmbeddings()


@pytest.fixture
def memory_store(embeddings):
    return VectorMemoryStore(embeddings)


@pytest.fixture
def transcript_store():
    return InMemoryTranscriptStore()


@pytest.fixture
def sink():
    return ListSink()


@pytest.fixture
def settings():
    return AgentSettings()


@pytest.fixture
def make_orchestrator(settings, embeddings, transcript_store):
    """Factory for a fully wired orchestrator around a scripted model"""

    def factory(inference: ScriptedInference, search_provider=fake_search, **context_overrides):
        for key, value in context_overrides.items():
            setattr(settings.context, key, value)
        return build_orchestrator(
            settings,
            inference=inference,
            embeddings=embeddings,
            transcript_store=transcript_store,
            search_provider=search_provider
        )

    return factory
