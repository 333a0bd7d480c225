"""
Conversation state.

A ``Chat`` owns one conversation's message list and composer, dispatches
completions through the orchestrator and applies the events the background
task reports. Every method here runs on the foreground; the background task
only ever sees a copy of the messages.
"""

import logging
import threading
from typing import List, Optional

from .channel import Failed, Outcome, Panicked, ProgressChannel
from .errors import ChatweaveError, TaskPanicked, normalize_error_message
from .models import BinaryPart, CompletionProgress, Message, TextPart
from .orchestrator import CompletionHandle, CompletionOrchestrator

logger = logging.getLogger(__name__)

MAX_SUMMARY_LENGTH = 24


def make_summary(prompt: str) -> str:
    """Short chat title: first line of the prompt, capitalized and truncated."""
    first_line = prompt.split("\n", 1)[0]
    summary = first_line[:MAX_SUMMARY_LENGTH]
    if len(first_line) > MAX_SUMMARY_LENGTH:
        summary += "…"
    return summary[:1].upper() + summary[1:]


class Chat:
    """A single conversation and its in-flight completion, if any."""

    def __init__(self, id: int, orchestrator: CompletionOrchestrator, model: str = ""):
        self.orchestrator = orchestrator
        self.model = model or orchestrator.llm.model
        self.channel = ProgressChannel(id)
        self.stop_event = threading.Event()
        self.handle: Optional[CompletionHandle] = None

        self.messages: List[Message] = []
        self.summary = ""
        self.chatbox = ""
        self.files = []
        self.prepend_buffer = ""
        # prepended draft the reply continues from, and the copy of it held
        # back while the model is still thinking
        self._draft = ""
        self._seed = ""
        # panics are surfaced as a blocking dialog on top of the inline error
        self.alerts: List[str] = []

    @property
    def id(self) -> int:
        return self.channel.id

    @property
    def is_generating(self) -> bool:
        return self.channel.is_active

    # --- sending ---

    def send_message(self) -> None:
        """Submit the composer contents as a new user message."""
        if not self.chatbox and not self.files:
            return

        self.messages = [m for m in self.messages if not m.is_error]

        prompt = self.chatbox.rstrip()
        self.messages.append(Message.user(prompt, files=self.files, model=self.model))
        if not self.summary:
            self.summary = make_summary(prompt)

        self.chatbox = ""
        self.files = []

        self.messages.append(Message.assistant(model=self.model))
        self._spawn_completion(len(self.messages) - 1)

    def _spawn_completion(self, index: int) -> None:
        self._draft = self.messages[index].content
        self._seed = ""
        self.handle = self.orchestrator.start(
            self.messages, index, self.channel, self.stop_event, model=self.model
        )

    def stop(self) -> None:
        """Request cancellation of the running completion."""
        if self.is_generating:
            self.stop_event.set()

    # --- editing ---

    def retry(self, idx: int) -> None:
        """Drop the error at ``idx`` and its exchange, then resend the prompt.

        The exchange runs from the nearest user message before ``idx``, so a
        thought block streamed ahead of the error goes with it.
        """
        if not (0 <= idx < len(self.messages)) or not self.messages[idx].is_error:
            raise ValueError(f"message {idx} is not a retryable error")

        prompt_idx = next(
            (i for i in range(idx - 1, -1, -1) if self.messages[i].is_user), None
        )
        if prompt_idx is None:
            raise ValueError(f"message {idx} has no prompt to retry")

        prompt = self.messages[prompt_idx]
        self.chatbox = prompt.content
        self.files = list(prompt.files)
        del self.messages[prompt_idx : idx + 1]
        self.send_message()

    def start_prepend(self, idx: int) -> None:
        """Open the prepend buffer on the assistant message at ``idx``."""
        message = self.messages[idx]
        if message.is_user:
            raise ValueError("only assistant messages can be regenerated")
        self.cancel_prepend()
        message.is_prepending = True

    def cancel_prepend(self) -> None:
        for message in self.messages:
            message.is_prepending = False
        self.prepend_buffer = ""

    def regenerate(self, idx: int) -> None:
        """Replace the reply at ``idx`` with the prepend buffer and continue it.

        Messages after ``idx`` answered the old reply and are discarded, as is
        a thought block that belonged to it.
        """
        if self.messages[idx].is_user:
            raise ValueError("only assistant messages can be regenerated")

        del self.messages[idx + 1 :]
        if idx > 0 and self.messages[idx - 1].is_thought:
            del self.messages[idx - 1]
            idx -= 1

        message = self.messages[idx]
        message.content = self.prepend_buffer
        message.model = self.model
        message.is_thought = False
        message.is_error = False
        message.is_generating = True
        self.cancel_prepend()
        self._spawn_completion(idx)

    def edit(self, idx: int) -> None:
        """Replace the content at ``idx`` with the prepend buffer, no dispatch."""
        if not self.prepend_buffer:
            raise ValueError("nothing to edit, the prepend buffer is empty")
        self.messages[idx].content = self.prepend_buffer
        self.cancel_prepend()

    def delete_message(self, idx: int) -> None:
        if self.is_generating:
            raise ChatweaveError("cannot delete messages while a reply is being generated")
        del self.messages[idx]

    # --- polling ---

    def poll(self) -> bool:
        """Apply pending completion events. Returns whether a task is running."""
        if not self.channel.is_active:
            return False
        self.channel.extract(self._apply_progress).finalize(self._apply_outcome)
        return self.channel.is_active

    def _apply_progress(self, event: CompletionProgress) -> None:
        current = self.messages[-1]
        part = event.part

        if isinstance(part, TextPart) and part.thought:
            if not current.is_thought:
                if current.content and current.content != self._draft:
                    # answer text already on screen stays put, thoughts go below
                    current.is_generating = False
                    current = Message.assistant(model=current.model)
                    self.messages.append(current)
                else:
                    # the first thought chunk repurposes the reply placeholder
                    self._seed, current.content = current.content, ""
                self._draft = ""
                current.is_thought = True
            current.append(part.text)
            return

        if isinstance(part, TextPart):
            text = part.text
        elif isinstance(part, BinaryPart):
            logger.warning(
                "chat %s: %d bytes of %s in the reply are not displayed",
                self.id,
                len(part.data),
                part.mime_type,
            )
            text = f"\n\n*[{part.mime_type} content not displayed]*\n\n"
        else:
            raise TypeError(f"unhandled response part: {part!r}")

        if current.is_thought:
            # thoughts are over: keep the block, the answer gets its own message
            current.is_generating = False
            self.messages.append(Message.assistant(self._seed + text, model=current.model))
            self._seed = ""
        else:
            current.append(text)

    def _apply_outcome(self, outcome: Outcome) -> None:
        error_text = None
        idx = len(self.messages) - 1

        if isinstance(outcome, Failed):
            idx = outcome.error.index
            error_text = normalize_error_message(outcome.error.message)
        elif isinstance(outcome, Panicked):
            error_text = str(TaskPanicked(f"Background task panicked: {outcome.exception}"))
            self.alerts.append(error_text)

        if error_text is not None and self.messages:
            if not (0 <= idx < len(self.messages)) or self.messages[idx].is_thought:
                idx = len(self.messages) - 1
            message = self.messages[idx]
            logger.error("chat %s: completion failed: %s", self.id, error_text)
            message.content = error_text
            message.is_error = True
            message.is_thought = False
            message.is_generating = False

        if self._seed and error_text is None:
            self.messages.append(
                Message(role="assistant", content=self._seed, model=self.model)
            )
        self._seed = ""

        if self.messages:
            self.messages[-1].is_generating = False

    # --- queries ---

    def last_message_contents(self) -> Optional[str]:
        for message in reversed(self.messages):
            if not message.content:
                continue
            if message.is_user:
                return f"You: {message.content}"
            return message.content
        return None
