from abc import ABC, abstractmethod
from typing import Dict, List
import asyncio
from collections import defaultdict

from one_agent.domain.models.agent_state import Message


class TranscriptStore(ABC):
    """Durable raw chat transcript, one ordered log per session"""

    @abstractmethod
    async def get_messages(self, session_id: str) -> List[Message]:
        """Return the full ordered transcript"""
        pass

    @abstractmethod
    async def add_user_message(self, session_id: str, content: str) -> None:
        pass

    @abstractmethod
    async def add_assistant_message(self, session_id: str, content: str) -> None:
        pass


class InMemoryTranscriptStore(TranscriptStore):
    """Process-local transcript store"""

    def __init__(self):
        self.conversations: Dict[str, List[Message]] = defaultdict(list)
        self._lock = asyncio.Lock()

    async def get_messages(self, session_id: str) -> List[Message]:
        async with self._lock:
            return list(self.conversations.get(session_id, []))

    async def add_user_message(self, session_id: str, content: str) -> None:
        async with self._lock:
            self.conversations[session_id].append(Message.user(content))

    async def add_assistant_message(self, session_id: str, content: str) -> None:
        async with self._lock:
            self.conversations[session_id].append(Message.assistant(content))
