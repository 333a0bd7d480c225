"""Manages the set of open conversations."""

import itertools
import logging
from typing import Dict, Iterator, List, Optional

from .chat import Chat
from .orchestrator import CompletionOrchestrator

logger = logging.getLogger(__name__)

# request identities are never reused within a process, even after a chat
# is removed
_chat_ids: Iterator[int] = itertools.count(1)


def next_chat_id() -> int:
    return next(_chat_ids)


class Sessions:
    """Holds every chat, the selected one, and polls them all."""

    def __init__(self, orchestrator: CompletionOrchestrator):
        self.orchestrator = orchestrator
        self.chats: List[Chat] = []
        self.selected_chat = 0
        self.add_chat()

    def add_chat(self) -> Chat:
        chat = Chat(next_chat_id(), self.orchestrator)
        self.chats.append(chat)
        self.selected_chat = len(self.chats) - 1
        logger.debug("created chat %s", chat.id)
        return chat

    def remove_chat(self, idx: int) -> None:
        chat = self.chats.pop(idx)
        chat.stop()
        logger.debug("removed chat %s", chat.id)
        if not self.chats:
            self.add_chat()
        elif self.selected_chat >= len(self.chats):
            self.selected_chat = len(self.chats) - 1

    def select(self, idx: int) -> Chat:
        if not 0 <= idx < len(self.chats):
            raise IndexError(f"no chat at position {idx}")
        self.selected_chat = idx
        return self.chats[idx]

    @property
    def selected(self) -> Chat:
        return self.chats[self.selected_chat]

    def get(self, chat_id: int) -> Optional[Chat]:
        return next((c for c in self.chats if c.id == chat_id), None)

    def index_of(self, chat_id: int) -> Optional[int]:
        for i, chat in enumerate(self.chats):
            if chat.id == chat_id:
                return i
        return None

    def poll_all(self) -> Dict[int, bool]:
        """Poll every chat with a running task; maps chat id to still-running."""
        return {chat.id: chat.poll() for chat in self.chats if chat.is_generating}
