from abc import ABC, abstractmethod
from typing import AsyncIterator, Optional
import asyncio
import structlog

from one_agent.application.api.schema.events import ChunkEvent, DoneEvent, ErrorEvent, StreamEvent
from one_agent.domain.context.memory.runtime_memory import TranscriptStore
from one_agent.domain.context.memory.vector_memory_store import (
    VectorMemoryStore, format_exchange, strip_reasoning_markup
)
from one_agent.domain.models.memory import MemoryKind
from one_agent.infrastructure.observability.logging import metrics

logger = structlog.get_logger(__name__)


class TurnSink(ABC):
    """Where a turn's output goes"""

    @abstractmethod
    async def emit_chunk(self, content: str):
        pass

    @abstractmethod
    async def emit_done(self):
        pass

    @abstractmethod
    async def emit_error(self, message: str):
        pass


class QueueSink(TurnSink):
    """Buffers events for a consumer that may go away.

    Emitting never blocks on the consumer, so a disconnected client cannot
    stall the turn that produces the events.
    """

    def __init__(self):
        self.queue: "asyncio.Queue[StreamEvent]" = asyncio.Queue()
        self.finished = False

    async def emit_chunk(self, content: str):
        if content and not self.finished:
            self.queue.put_nowait(ChunkEvent(content=content))

    async def emit_done(self):
        self._finish(DoneEvent())

    async def emit_error(self, message: str):
        self._finish(ErrorEvent(error=message))

    def _finish(self, event: StreamEvent):
        if self.finished:
            return
        self.finished = True
        self.queue.put_nowait(event)

    async def events(self) -> AsyncIterator[StreamEvent]:
        """Yield events until and including the terminal one"""
        while True:
            event = await self.queue.get()
            yield event
            if event.is_terminal:
                return


class StreamingHandler:
    """Closes out finished turns: persists them, then signals completion"""

    def __init__(
        self,
        transcript_store: TranscriptStore,
        memory_store: VectorMemoryStore,
        persist_timeout: Optional[float] = 30.0
    ):
        self.transcript_store = transcript_store
        self.memory_store = memory_store
        self.persist_timeout = persist_timeout

    async def finalize_turn(self, sink: TurnSink, session_id: str, user_text: str, assistant_text: str):
        """Persist the exchange, then emit the terminal done event.

        Persistence failures and timeouts are logged only; the answer has
        already been streamed and is not retracted.
        """
        try:
            if self.persist_timeout:
                await asyncio.wait_for(self.persist_turn(session_id, user_text, assistant_text), self.persist_timeout)
            else:
                await self.persist_turn(session_id, user_text, assistant_text)
        except asyncio.TimeoutError:
            metrics.increment_counter("persistence.timeouts")
            logger.error("Turn persistence timed out", session_id=session_id, timeout=self.persist_timeout)

        await sink.emit_done()

    async def persist_turn(self, session_id: str, user_text: str, assistant_text: str) -> bool:
        ok = True

        try:
            await self.transcript_store.add_user_message(session_id, user_text)
            if assistant_text:
                await self.transcript_store.add_assistant_message(session_id, assistant_text)
        except Exception as e:
            ok = False
            logger.error("Transcript persistence failed", session_id=session_id, error=str(e))

        cleaned = strip_reasoning_markup(assistant_text)
        kind = MemoryKind.QA_PAIR if cleaned else MemoryKind.USER_QUERY
        try:
            await self.memory_store.write(session_id, format_exchange(user_text, cleaned), kind)
        except Exception as e:
            ok = False
            logger.error("Memory persistence failed", session_id=session_id, error=str(e))

        return ok
