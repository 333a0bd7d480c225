"""
Defines the core Pydantic data models for the application.

Messages are the editable, UI-facing history. Turns and Sessions are the
submission-time artifacts produced from them by compaction, and the completion
outcomes are what a background request reports back to the foreground.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from .errors import MessageFrozenError

# --- Constants ---
USER_ROLE = "user"
ASSISTANT_ROLE = "assistant"
Role = Literal["user", "assistant"]


# --- Parts ---
class TextPart(BaseModel):
    """A piece of text; ``thought`` marks reasoning rather than answer text."""

    kind: Literal["text"] = "text"
    text: str
    thought: bool = False


class BinaryPart(BaseModel):
    """Inline bytes with their MIME type (attachments, generated media)."""

    kind: Literal["binary"] = "binary"
    mime_type: str
    data: bytes


Part = Annotated[Union[TextPart, BinaryPart], Field(discriminator="kind")]


# --- Messages ---
class Message(BaseModel):
    """Represents a single message within a conversation."""

    role: Role = Field(frozen=True)
    content: str = ""
    files: List[Path] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    model: str = ""
    is_generating: bool = Field(default=False, exclude=True)
    is_error: bool = False
    is_thought: bool = False
    is_prepending: bool = False

    @classmethod
    def user(
        cls, content: str, files: Optional[List[Path]] = None, model: str = ""
    ) -> "Message":
        return cls(role=USER_ROLE, content=content, files=list(files or []), model=model)

    @classmethod
    def assistant(cls, content: str = "", model: str = "") -> "Message":
        """A reply placeholder, generating until a terminal outcome arrives."""
        return cls(role=ASSISTANT_ROLE, content=content, model=model, is_generating=True)

    @property
    def is_user(self) -> bool:
        return self.role == USER_ROLE

    def append(self, text: str) -> None:
        if not self.is_generating:
            raise MessageFrozenError("cannot append to a message that is not generating")
        self.content += text


# --- Submission payload ---
class Turn(BaseModel):
    """One author's contiguous block of content within a session."""

    author: Role
    parts: List[Part] = Field(default_factory=list)


class Session(BaseModel):
    """The alternating-turn payload sent to the completion backend."""

    turns: List[Turn] = Field(default_factory=list)
    system_instruction: Optional[str] = None

    def ask(self, parts: List[Part]) -> None:
        self._push(USER_ROLE, parts)

    def reply(self, parts: List[Part]) -> None:
        self._push(ASSISTANT_ROLE, parts)

    def _push(self, author: Role, parts: List[Part]) -> None:
        if not parts:
            return
        # adjacent turns never share an author
        if self.turns and self.turns[-1].author == author:
            self.turns[-1].parts.extend(parts)
        else:
            self.turns.append(Turn(author=author, parts=list(parts)))


# --- Completion outcomes ---
class CompletionProgress(BaseModel):
    index: int
    part: Part


class CompletionSuccess(BaseModel):
    index: int
    text: str = ""


class CompletionError(BaseModel):
    index: int
    message: str
