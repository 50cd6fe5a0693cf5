from typing import List, Optional
import asyncio

import structlog

from one_agent.domain.inference.base_inference import InferenceProvider
from one_agent.domain.models.agent_state import Message, Role, Session
from one_agent.infrastructure.observability.logging import agent_logger

logger = structlog.get_logger(__name__)

SUMMARIZE_INSTRUCTION = (
    "Briefly summarize the key points of the following conversation. "
    "Keep names, facts and open questions; omit greetings.\n\n{history}"
)


def render_history(messages: List[Message]) -> str:
    lines = []
    for message in messages:
        if message.role == Role.TOOL:
            lines.append(f"tool result: {message.content}")
        elif message.content:
            lines.append(f"{message.role.value}: {message.content}")
    return "\n".join(lines)


class ContextWindowManager:
    """Keeps the message list handed to inference bounded.

    ``window_size`` messages of history go into each inference call. Once a
    session holds more than ``max_messages``, everything but the last
    ``retained_tail`` is summarized into Session.summary and dropped, so a
    session never holds more than ``window_size`` messages between turns.
    """

    def __init__(
        self,
        window_size: int = 10,
        max_messages: int = 10,
        retained_tail: int = 5,
        summary_timeout: Optional[float] = 30.0
    ):
        if retained_tail > max_messages:
            raise ValueError("retained_tail must not exceed max_messages")
        if max_messages > window_size:
            raise ValueError("max_messages must not exceed window_size")
        self.window_size = window_size
        self.max_messages = max_messages
        self.retained_tail = retained_tail
        self.summary_timeout = summary_timeout

    def window(self, session: Session) -> List[Message]:
        """Most recent messages to include in the inference input"""
        if self.window_size <= 0:
            return []
        return list(session.messages[-self.window_size:])

    def build_input(self, system_prompt: str, session: Session, user_message: Message) -> List[Message]:
        return [Message.system(system_prompt), *self.window(session), user_message]

    def needs_summary(self, session: Session) -> bool:
        return len(session.messages) > self.max_messages

    async def compact(self, session: Session, inference: InferenceProvider) -> bool:
        """Summarize and truncate when over the threshold.

        Returns True if the session was truncated. A failed summarization
        leaves the session untouched.
        """

        if not self.needs_summary(session):
            return False

        to_summarize = session.messages[:-self.retained_tail] if self.retained_tail else list(session.messages)
        history_text = render_history(to_summarize)

        request = [Message.user(SUMMARIZE_INSTRUCTION.format(history=history_text))]

        try:
            if self.summary_timeout:
                summary = await asyncio.wait_for(inference.complete(request), self.summary_timeout)
            else:
                summary = await inference.complete(request)
        except asyncio.TimeoutError:
            logger.warning(
                "Summarization timed out, keeping full window",
                session_id=session.id,
                timeout=self.summary_timeout
            )
            return False
        except Exception as e:
            logger.warning("Summarization failed, keeping full window", session_id=session.id, error=str(e))
            return False

        if not summary or not summary.strip():
            logger.warning("Summarization returned nothing, keeping full window", session_id=session.id)
            return False

        session.merge_summary(summary)
        dropped = session.truncate_to_tail(self.retained_tail)

        agent_logger.log_context_update(
            session_id=session.id,
            context_type="summary",
            action="compacted",
            details={"dropped": len(dropped), "retained": len(session.messages)}
        )
        return True
