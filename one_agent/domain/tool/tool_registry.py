from typing import Any, Awaitable, Callable, Dict, FrozenSet, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from one_agent.domain.inference.base_inference import CapabilitySpec
from one_agent.domain.models.capability import Sentinel

CapabilityFunction = Callable[[Dict[str, Any], str], Awaitable[str]]


class CapabilityDescriptor(BaseModel):
    """A named, schema-validated external action"""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str
    description: str
    argument_schema: Dict[str, Any] = Field(description="JSON Schema for the arguments object")
    invoke: CapabilityFunction = Field(description="Called with validated arguments and the session id")
    failure_signals: FrozenSet[Sentinel] = Field(default_factory=frozenset)
    default_failure: Sentinel = Sentinel.API_ERROR
    fallback: Optional[str] = Field(None, description="Capability to offer next when this one returns a sentinel")
    timeout: Optional[float] = 30.0

    def spec(self) -> CapabilitySpec:
        return CapabilitySpec(name=self.name, description=self.description, parameters=self.argument_schema)

    def sentinel_for(self, text: str) -> Optional[Sentinel]:
        """Map a returned text to one of the declared failure signals"""
        stripped = (text or "").strip()
        for sentinel in self.failure_signals:
            if stripped.startswith(sentinel.value):
                return sentinel
        return None


class CapabilityRegistry:
    """Registry of capabilities the inference step may request"""

    def __init__(self):
        self.capabilities: Dict[str, CapabilityDescriptor] = {}

    def register(self, descriptor: CapabilityDescriptor):
        """Register a capability; names are unique"""

        if descriptor.name in self.capabilities:
            raise ValueError(f"Capability already registered: {descriptor.name}")
        self.capabilities[descriptor.name] = descriptor

    def get(self, name: str) -> Optional[CapabilityDescriptor]:
        return self.capabilities.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self.capabilities

    def __len__(self) -> int:
        return len(self.capabilities)

    def names(self) -> List[str]:
        return list(self.capabilities.keys())

    def descriptors(self) -> List[CapabilityDescriptor]:
        return list(self.capabilities.values())

    def specs(self, names: Optional[List[str]] = None) -> List[CapabilitySpec]:
        """Specs for all capabilities, or for the given subset in registry order"""

        return [
            descriptor.spec()
            for name, descriptor in self.capabilities.items()
            if names is None or name in names
        ]
