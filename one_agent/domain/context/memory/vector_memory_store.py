from typing import Dict, List, Optional
import asyncio
import itertools
import re
from datetime import datetime

import structlog
from langchain_core.documents import Document
from langchain_core.embeddings import Embeddings
from langchain_core.vectorstores import InMemoryVectorStore, VectorStore

from one_agent.domain.models.memory import MemoryKind, MemoryRecord, ScoredMemory

logger = structlog.get_logger(__name__)

_REASONING_MARKUP = re.compile(r"<think>[\s\S]*?</think>", re.IGNORECASE)


def strip_reasoning_markup(text: str) -> str:
    """Remove <think>...</think> blocks emitted by reasoning models"""
    return _REASONING_MARKUP.sub("", text or "").strip()


def format_exchange(user_text: str, assistant_text: Optional[str] = None) -> str:
    """Render a turn the way it is stored in the index"""
    if assistant_text:
        return f"User: {user_text}\nAssistant: {assistant_text}"
    return f"User: {user_text}"


def _to_record(document: Document) -> MemoryRecord:
    metadata = document.metadata
    return MemoryRecord(
        id=metadata["record_id"],
        text=document.page_content,
        session_id=metadata["session_id"],
        kind=MemoryKind(metadata["kind"]),
        created_at=datetime.fromisoformat(metadata["created_at"])
    )


class VectorMemoryStore:
    """Session-scoped semantic memory on top of a langchain vector store.

    Every record carries its session id as document metadata and every
    search filters on it, so a query can only ever score records written
    under the same session. Writes are append-only; nothing here updates or
    deletes a record.
    """

    def __init__(self, embeddings: Embeddings, vector_store: Optional[VectorStore] = None):
        self.embeddings = embeddings
        self.vector_store = vector_store or InMemoryVectorStore(embedding=embeddings)
        self._counts: Dict[str, int] = {}
        self._sequence = itertools.count()
        self._lock = asyncio.Lock()

    async def write(
        self,
        session_id: str,
        text: str,
        kind: MemoryKind,
        timestamp: Optional[datetime] = None
    ) -> MemoryRecord:
        """Embed and append a record. Duplicate texts produce duplicate records."""

        record = MemoryRecord(
            text=text,
            session_id=session_id,
            kind=kind,
            created_at=timestamp or datetime.utcnow()
        )
        document = Document(
            page_content=text,
            metadata={
                "record_id": record.id,
                "session_id": session_id,
                "kind": kind.value,
                "created_at": record.created_at.isoformat(),
                "seq": next(self._sequence),
            }
        )

        await self.vector_store.aadd_documents([document], ids=[record.id])

        async with self._lock:
            self._counts[session_id] = self._counts.get(session_id, 0) + 1

        logger.debug("Memory record written", session_id=session_id, kind=kind.value, record_id=record.id)
        return record

    async def retrieve(
        self,
        session_id: str,
        query: str,
        k: int = 2,
        min_score: Optional[float] = None
    ) -> List[ScoredMemory]:
        """Return up to k records of this session, most similar first.

        Ties are broken by recency, newest first. An unknown session yields an
        empty list.
        """

        if k <= 0:
            return []

        candidates = await self.count(session_id)
        if not candidates:
            return []

        # Fetch the whole session so ties straddling k are ordered by recency
        hits = await self.vector_store.asimilarity_search_with_score(
            query,
            k=candidates,
            filter=lambda document: document.metadata.get("session_id") == session_id
        )

        scored = []
        for document, score in hits:
            score = float(score)
            if min_score is not None and score < min_score:
                continue
            record = _to_record(document)
            scored.append((score, record.created_at, document.metadata["seq"], record))

        scored.sort(key=lambda item: (item[0], item[1], item[2]), reverse=True)

        return [
            ScoredMemory(record=record, score=score, rank=rank)
            for rank, (score, _, _, record) in enumerate(scored[:k], start=1)
        ]

    async def count(self, session_id: str) -> int:
        async with self._lock:
            return self._counts.get(session_id, 0)
