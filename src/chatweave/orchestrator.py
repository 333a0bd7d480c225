"""
Completion orchestration.

Dispatches one background task per request: the task compacts the transcript
snapshot, calls the backend (streaming or blocking), forwards every part of
the reply as a progress event and finishes with exactly one terminal outcome.
Cancellation is cooperative through a per-conversation ``threading.Event``.
"""

import enum
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Callable, List, Optional, Sequence

from .channel import ProgressChannel
from .compaction import compact_transcript, fold_thoughts
from .config import Settings
from .errors import MissingCredential, TransportError
from .files import convert_file_to_part
from .llm import LLM
from .models import (
    CompletionError,
    CompletionProgress,
    CompletionSuccess,
    Message,
    Part,
    TextPart,
)

logger = logging.getLogger(__name__)

MISSING_API_KEY_MESSAGE = "API key not set."

CompletionChannel = ProgressChannel[CompletionProgress, CompletionSuccess, CompletionError]


class TaskState(str, enum.Enum):
    IDLE = "idle"
    DISPATCHING = "dispatching"
    STREAMING = "streaming"
    BLOCKING = "blocking"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"
    PANICKED = "panicked"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATES


_TERMINAL_STATES = {
    TaskState.COMPLETED,
    TaskState.CANCELLED,
    TaskState.FAILED,
    TaskState.PANICKED,
}


class CompletionHandle:
    """Cancellable handle to one dispatched completion task."""

    def __init__(self, index: int, stop_event: threading.Event, model: str = ""):
        self.index = index
        self.model = model
        self.state = TaskState.IDLE
        self._stop_event = stop_event
        self._thread: Optional[threading.Thread] = None

    def cancel(self) -> None:
        """Ask the task to stop at its next cancellation point."""
        self._stop_event.set()

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the task thread; returns True once the task has ended."""
        if self._thread is not None:
            self._thread.join(timeout)
            return not self._thread.is_alive()
        return self.state.is_terminal


class CompletionOrchestrator:
    """Runs completion requests against ``llm`` in the background."""

    def __init__(
        self,
        llm: LLM,
        settings: Settings,
        convert: Callable[..., Part] = convert_file_to_part,
    ):
        self.llm = llm
        self.settings = settings
        self.convert = convert

    def start(
        self,
        messages: Sequence[Message],
        target_index: int,
        channel: CompletionChannel,
        stop_event: threading.Event,
        use_streaming: Optional[bool] = None,
        model: Optional[str] = None,
    ) -> CompletionHandle:
        """Dispatch a completion for the slot at ``target_index``.

        ``model`` names the backend model for this request, defaulting to the
        backend's own.

        ``messages`` is copied, the live list is never touched by the task.
        The channel is activated here, so a poll right after ``start`` already
        sees the request as running.
        """
        if use_streaming is None:
            use_streaming = self.settings.use_streaming

        if self.settings.include_thoughts_in_history:
            snapshot = fold_thoughts(messages)
        else:
            snapshot = [message.model_copy() for message in messages]

        # a stop request left over from an earlier task must not cancel this one
        stop_event.clear()
        handle = CompletionHandle(target_index, stop_event, model=model or self.llm.model)
        channel.activate()

        try:
            self._check_credentials()
        except MissingCredential as e:
            logger.warning("not dispatching request: %s", e)
            handle.state = TaskState.FAILED
            channel.error(CompletionError(index=target_index, message=str(e)))
            return handle

        handle.state = TaskState.DISPATCHING
        handle._thread = channel.spawn(
            self._run, snapshot, handle, channel, stop_event, use_streaming
        )
        return handle

    def _check_credentials(self) -> None:
        if not self.settings.api_key:
            raise MissingCredential(MISSING_API_KEY_MESSAGE)

    def _run(
        self,
        messages: List[Message],
        handle: CompletionHandle,
        channel: CompletionChannel,
        stop_event: threading.Event,
        use_streaming: bool,
    ) -> None:
        index = handle.index
        logger.info(
            "requesting completion from %s... (history length: %d)",
            handle.model,
            len(messages),
        )
        try:
            session = compact_transcript(
                messages,
                index,
                convert=self.convert,
                system_instruction=self.settings.system_instruction,
            )
            if use_streaming:
                handle.state = TaskState.STREAMING
                self._stream(session, handle, channel, stop_event)
            else:
                handle.state = TaskState.BLOCKING
                self._block(session, handle, channel, stop_event)
        except TransportError as e:
            logger.error("failed to request completion: %s", e)
            handle.state = TaskState.FAILED
            channel.error(CompletionError(index=index, message=str(e)))
        except Exception:
            handle.state = TaskState.PANICKED
            raise

    def _stream(self, session, handle, channel, stop_event) -> None:
        index = handle.index
        response_text = ""
        stream = self.llm.submit_streaming(session, model=handle.model)
        logger.info("reading response...")
        for chunk in stream:
            if stop_event.is_set():
                logger.info("stopping generation")
                close = getattr(stream, "close", None)
                if close is not None:
                    close()
                stop_event.clear()
                handle.state = TaskState.CANCELLED
                channel.success(CompletionSuccess(index=index))
                return
            for part in chunk:
                channel.send(CompletionProgress(index=index, part=part))
                if isinstance(part, TextPart) and not part.thought:
                    response_text += part.text

        logger.info("completion request complete, response length: %d", len(response_text))
        handle.state = TaskState.COMPLETED
        # content was already delivered as progress
        channel.success(CompletionSuccess(index=index))

    def _block(self, session, handle, channel, stop_event) -> None:
        index = handle.index
        logger.info("sending non-streaming request...")
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="chatweave-call")
        future = executor.submit(self.llm.submit, session, handle.model)
        try:
            while True:
                if stop_event.is_set():
                    logger.info("non-streaming generation cancelled by user.")
                    stop_event.clear()
                    handle.state = TaskState.CANCELLED
                    channel.success(CompletionSuccess(index=index))
                    return
                done, _ = wait([future], timeout=self.settings.cancel_poll_interval)
                if done:
                    break
        finally:
            # a cancelled call keeps running until the backend answers; its
            # result is discarded
            executor.shutdown(wait=False)

        parts = future.result()
        response_text = ""
        for part in parts:
            channel.send(CompletionProgress(index=index, part=part))
            if isinstance(part, TextPart) and not part.thought:
                response_text += part.text
        logger.info(
            "non-streaming completion request complete, response length: %d",
            len(response_text),
        )
        handle.state = TaskState.COMPLETED
        channel.success(CompletionSuccess(index=index, text=response_text))
