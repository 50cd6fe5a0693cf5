from typing import Optional
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from enum import Enum
import uuid


class MemoryKind(str, Enum):
    """Kinds of long-term memory records"""
    USER_QUERY = "user_query"
    QA_PAIR = "qa_pair"
    AGENT_NOTE = "agent_note"


class MemoryRecord(BaseModel):
    """Write-once record in the memory index"""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    text: str
    session_id: str
    kind: MemoryKind
    created_at: datetime = Field(default_factory=datetime.utcnow)


class ScoredMemory(BaseModel):
    """A retrieved record with its similarity score"""
    record: MemoryRecord
    score: float
    rank: Optional[int] = None

    @property
    def text(self) -> str:
        return self.record.text
