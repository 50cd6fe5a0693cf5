from typing import Any, AsyncIterator, Dict, List, Optional

import structlog
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import (
    AIMessage, AIMessageChunk, BaseMessage, HumanMessage, SystemMessage, ToolMessage
)

from one_agent.domain.inference.base_inference import CapabilitySpec, InferenceChunk, InferenceProvider
from one_agent.domain.models.agent_state import Message, Role
from one_agent.domain.models.capability import CapabilityCall
from one_agent.infrastructure.config.settings import InferenceSettings

logger = structlog.get_logger(__name__)


def to_langchain_message(message: Message) -> BaseMessage:
    """Convert a domain message to its langchain counterpart"""

    if message.role == Role.SYSTEM:
        return SystemMessage(content=message.content)
    if message.role == Role.USER:
        return HumanMessage(content=message.content)
    if message.role == Role.TOOL:
        return ToolMessage(content=message.content, tool_call_id=message.capability_call_id or "")
    return AIMessage(
        content=message.content,
        tool_calls=[
            {"name": call.name, "args": call.arguments, "id": call.id}
            for call in message.capability_calls
        ]
    )


def to_tool_definition(spec: CapabilitySpec) -> Dict[str, Any]:
    """OpenAI-style function tool definition"""
    return {
        "type": "function",
        "function": {
            "name": spec.name,
            "description": spec.description,
            "parameters": spec.parameters or {"type": "object", "properties": {}},
        },
    }


def _content_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(
            part.get("text", "") if isinstance(part, dict) else str(part)
            for part in content
        )
    return str(content or "")


def _calls_from(message: Optional[AIMessage]) -> List[CapabilityCall]:
    if message is None:
        return []
    calls = []
    for tool_call in message.tool_calls or []:
        kwargs = {"name": tool_call["name"], "arguments": tool_call.get("args") or {}}
        if tool_call.get("id"):
            kwargs["id"] = tool_call["id"]
        calls.append(CapabilityCall(**kwargs))
    return calls


class ChatModelInference(InferenceProvider):
    """Inference backed by any langchain chat model"""

    def __init__(self, chat_model: BaseChatModel):
        self.chat_model = chat_model

    async def stream(
        self,
        messages: List[Message],
        capabilities: Optional[List[CapabilitySpec]] = None
    ) -> AsyncIterator[InferenceChunk]:
        model = self.chat_model
        if capabilities:
            model = model.bind_tools([to_tool_definition(spec) for spec in capabilities])

        aggregate: Optional[AIMessageChunk] = None
        async for chunk in model.astream([to_langchain_message(m) for m in messages]):
            aggregate = chunk if aggregate is None else aggregate + chunk
            text = _content_text(chunk.content)
            if text:
                yield InferenceChunk(content=text)

        calls = _calls_from(aggregate)
        if calls:
            logger.debug("Model requested capabilities", capabilities=[c.name for c in calls])
            yield InferenceChunk(capability_calls=calls)

    async def complete(self, messages: List[Message]) -> str:
        response = await self.chat_model.ainvoke([to_langchain_message(m) for m in messages])
        return _content_text(response.content)


def build_chat_model(settings: InferenceSettings) -> BaseChatModel:
    """Default chat model: a local Ollama server"""
    from langchain_ollama import ChatOllama

    return ChatOllama(
        model=settings.model,
        base_url=settings.base_url,
        temperature=settings.temperature,
        top_p=settings.top_p,
        top_k=settings.top_k,
        repeat_penalty=settings.repeat_penalty,
        num_predict=settings.num_predict,
    )
