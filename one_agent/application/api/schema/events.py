from typing import Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

from one_agent.domain.models.agent_state import DEFAULT_SESSION_ID


class StreamEvent(BaseModel):
    """Base model for all server-sent events"""

    @property
    def is_terminal(self) -> bool:
        return False

    def to_sse(self) -> str:
        """Format as one SSE ``data:`` frame"""
        return f"data: {self.model_dump_json()}\n\n"


class ChunkEvent(StreamEvent):
    """Incremental answer content"""
    content: str


class DoneEvent(StreamEvent):
    """Turn completed"""
    done: Literal[True] = True

    @property
    def is_terminal(self) -> bool:
        return True


class ErrorEvent(StreamEvent):
    """Turn failed"""
    error: str

    @property
    def is_terminal(self) -> bool:
        return True


class ChatRequest(BaseModel):
    """Chat request; accepts the wire names used by the web client"""
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(DEFAULT_SESSION_ID, alias="sessionId")
    user_input: Optional[str] = None
    user_name: Optional[str] = Field(None, alias="userName")

    @field_validator("session_id", mode="before")
    @classmethod
    def default_blank_session(cls, value):
        if value is None or (isinstance(value, str) and not value.strip()):
            return DEFAULT_SESSION_ID
        return value
