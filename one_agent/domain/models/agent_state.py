from typing import Dict, Any, List, Optional
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from enum import Enum

from .capability import CapabilityCall


DEFAULT_SESSION_ID = "default-session"
DEFAULT_DISPLAY_NAME = "Guest"
SUMMARY_SEPARATOR = "\n"


class Role(str, Enum):
    """Message author role"""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class TurnState(str, Enum):
    """States of the per-turn agent loop"""
    START = "start"
    INFER = "infer"
    AWAIT_CAPABILITY = "await_capability"
    EXEC_CAPABILITY = "exec_capability"
    DONE = "done"
    ERROR = "error"


# The single legitimate cycle is INFER -> AWAIT_CAPABILITY -> EXEC_CAPABILITY -> INFER.
TURN_TRANSITIONS: Dict[TurnState, frozenset] = {
    TurnState.START: frozenset({TurnState.INFER, TurnState.ERROR}),
    TurnState.INFER: frozenset({TurnState.DONE, TurnState.AWAIT_CAPABILITY, TurnState.ERROR}),
    TurnState.AWAIT_CAPABILITY: frozenset({TurnState.EXEC_CAPABILITY, TurnState.ERROR}),
    TurnState.EXEC_CAPABILITY: frozenset({TurnState.INFER}),
    TurnState.DONE: frozenset(),
    TurnState.ERROR: frozenset(),
}


class Message(BaseModel):
    """A single chat message; immutable once created"""
    model_config = ConfigDict(frozen=True)

    role: Role
    content: str = ""
    capability_calls: List[CapabilityCall] = Field(default_factory=list)
    capability_call_id: Optional[str] = Field(None, description="Originating call id for tool messages")

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(cls, content: str, capability_calls: Optional[List[CapabilityCall]] = None) -> "Message":
        return cls(role=Role.ASSISTANT, content=content, capability_calls=capability_calls or [])

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role=Role.SYSTEM, content=content)

    @classmethod
    def tool(cls, content: str, call_id: Optional[str]) -> "Message":
        return cls(role=Role.TOOL, content=content, capability_call_id=call_id)


class Session(BaseModel):
    """Per-conversation mutable record.

    Fields are only changed through the merge methods below so that each one
    has a single, explicit update rule.
    """
    id: str
    messages: List[Message] = Field(default_factory=list)
    summary: str = Field("", description="Accumulated summary of messages dropped from the window")
    display_name: str = DEFAULT_DISPLAY_NAME
    turn_count: int = 0
    created_at: datetime = Field(default_factory=datetime.utcnow)
    last_activity: datetime = Field(default_factory=datetime.utcnow)

    def append(self, message: Message):
        """Append a message to the log"""
        self.messages.append(message)
        self.touch()

    def extend(self, messages: List[Message]):
        self.messages.extend(messages)
        self.touch()

    def truncate_to_tail(self, size: int) -> List[Message]:
        """Drop messages from the front, keeping the last ``size``. Returns the dropped ones."""
        if size <= 0:
            dropped, self.messages = self.messages, []
        elif len(self.messages) <= size:
            return []
        else:
            dropped = self.messages[:-size]
            self.messages = self.messages[-size:]
        return dropped

    def merge_summary(self, new_summary: Optional[str]):
        """Accumulate summary text; empty updates never clear existing history"""
        new_summary = (new_summary or "").strip()
        if not new_summary:
            return
        self.summary = f"{self.summary}{SUMMARY_SEPARATOR}{new_summary}" if self.summary else new_summary

    def set_display_name(self, name: Optional[str]):
        """Last write wins, None/blank keeps the current value"""
        if name and name.strip():
            self.display_name = name.strip()

    def commit_turn(self, user_message: Message, assistant_message: Message):
        """Append a completed exchange as one unit"""
        self.extend([user_message, assistant_message])
        self.turn_count += 1

    def touch(self):
        self.last_activity = datetime.utcnow()

    def get_state_summary(self) -> Dict[str, Any]:
        """Get a summary of the current state"""
        return {
            "session_id": self.id,
            "messages": len(self.messages),
            "has_summary": bool(self.summary),
            "display_name": self.display_name,
            "turn_count": self.turn_count,
            "last_activity": self.last_activity.isoformat()
        }


class TurnRequest(BaseModel):
    """Inbound unit of work"""
    session_id: str = DEFAULT_SESSION_ID
    user_input: str
    display_name: Optional[str] = None


class TurnResult(BaseModel):
    """Outcome of one turn"""
    session_id: str
    state: TurnState
    text: str = ""
    error: Optional[str] = None
    depth: int = 0
    capability_calls: int = 0
