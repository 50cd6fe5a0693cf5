from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, List, Optional

from pydantic import BaseModel, Field

from one_agent.domain.models.agent_state import Message
from one_agent.domain.models.capability import CapabilityCall


class CapabilitySpec(BaseModel):
    """What the inference step is told about a capability"""
    name: str
    description: str
    parameters: Dict[str, Any] = Field(default_factory=dict, description="JSON Schema of the arguments")


class InferenceChunk(BaseModel):
    """One streamed increment; calls arrive on the final chunk"""
    content: str = ""
    capability_calls: List[CapabilityCall] = Field(default_factory=list)


class InferenceProvider(ABC):
    """The reasoning step: prompt in, token stream out"""

    @abstractmethod
    def stream(
        self,
        messages: List[Message],
        capabilities: Optional[List[CapabilitySpec]] = None
    ) -> AsyncIterator[InferenceChunk]:
        """Stream a response.

        When ``capabilities`` is None or empty, capability calling is disabled
        for this call.
        """
        pass

    @abstractmethod
    async def complete(self, messages: List[Message]) -> str:
        """Return a full response with capability calling disabled"""
        pass
