from typing import Dict, Any, Optional
from pydantic import BaseModel, ConfigDict, Field
from enum import Enum
import uuid


class Sentinel(str, Enum):
    """Reserved strings a capability returns instead of a normal result.

    The inference step only sees plain text, so the values themselves are part
    of the prompt contract and must not change.
    """
    MISSING_MEMORY = "[MISSING_MEMORY]"
    SEARCH_NO_RESULT = "[SEARCH_NO_RESULT]"
    API_ERROR = "[API_ERROR]"
    MEMORY_WRITE_FAILED = "[MEMORY_WRITE_FAILED]"
    INVALID_ARGUMENTS = "[INVALID_ARGUMENTS]"


class CapabilityCall(BaseModel):
    """A capability invocation requested by the inference step"""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: f"call_{uuid.uuid4().hex[:12]}")
    name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)


class CapabilityResult(BaseModel):
    """Structured capability outcome; ``text`` is what the model reads"""
    model_config = ConfigDict(frozen=True)

    call_id: Optional[str] = None
    name: str
    ok: bool
    sentinel: Optional[Sentinel] = None
    text: str

    @classmethod
    def success(cls, name: str, text: str, call_id: Optional[str] = None) -> "CapabilityResult":
        return cls(call_id=call_id, name=name, ok=True, text=text)

    @classmethod
    def failure(
        cls,
        name: str,
        sentinel: Sentinel,
        call_id: Optional[str] = None,
        text: Optional[str] = None
    ) -> "CapabilityResult":
        return cls(call_id=call_id, name=name, ok=False, sentinel=sentinel, text=text or sentinel.value)
