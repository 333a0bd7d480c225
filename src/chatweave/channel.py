"""
Progress channel between a background task and a polling foreground.

A background thread reports incremental progress and exactly one terminal
outcome; the foreground drains them without ever blocking, once per UI tick::

    channel = ProgressChannel(1)
    channel.activate()
    channel.spawn(work, channel)
    ...
    if channel.is_active:
        channel.extract(on_progress).finalize(on_result)
"""

import logging
import queue
import threading
from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, TypeVar, Union

from .errors import ChannelStateError

logger = logging.getLogger(__name__)

P = TypeVar("P")
S = TypeVar("S")
E = TypeVar("E")


@dataclass(frozen=True)
class Succeeded(Generic[S]):
    value: S


@dataclass(frozen=True)
class Failed(Generic[E]):
    """The task reported a domain error."""

    error: E


@dataclass(frozen=True)
class Panicked:
    """The task terminated abnormally."""

    exception: BaseException


Outcome = Union[Succeeded, Failed, Panicked]

_PROGRESS = "progress"
_TERMINAL = "terminal"


class ProgressChannel(Generic[P, S, E]):
    """Single-producer, single-consumer progress/success/error channel.

    Progress events are delivered in send order and the terminal outcome is
    observed strictly after every progress event of the same task, since
    both travel through one FIFO queue.
    """

    def __init__(self, id: int):
        self._id = id
        self._queue: "queue.SimpleQueue[tuple[str, Any]]" = queue.SimpleQueue()
        self._lock = threading.Lock()
        self._active = False
        self._closed = True
        self._result: Optional[Outcome] = None

    @property
    def id(self) -> int:
        return self._id

    @property
    def is_active(self) -> bool:
        """True from ``activate`` until the terminal outcome is finalized."""
        return self._active

    def activate(self) -> None:
        with self._lock:
            if self._active:
                raise ChannelStateError(f"channel {self._id} is already active")
            self._active = True
            self._closed = False
            self._result = None

    def send(self, progress: P) -> None:
        self._put(_PROGRESS, progress)

    def success(self, value: S) -> None:
        self._terminate(Succeeded(value))

    def error(self, value: E) -> None:
        self._terminate(Failed(value))

    def panic(self, exception: BaseException) -> None:
        self._terminate(Panicked(exception))

    def spawn(self, target: Callable[..., Any], *args: Any) -> threading.Thread:
        """Run ``target(*args)`` on a daemon thread.

        An exception escaping ``target`` becomes a ``Panicked`` outcome, unless
        the task already produced its terminal outcome.
        """

        def run() -> None:
            try:
                target(*args)
            except Exception as e:
                logger.exception("background task on channel %s panicked", self._id)
                with self._lock:
                    closed = self._closed
                if not closed:
                    self.panic(e)

        thread = threading.Thread(
            target=run, name=f"chatweave-task-{self._id}", daemon=True
        )
        thread.start()
        return thread

    def extract(self, handler: Callable[[P], Any]) -> "ProgressChannel[P, S, E]":
        """Drain pending progress events in order, calling ``handler`` on each."""
        while self._result is None:
            try:
                kind, payload = self._queue.get_nowait()
            except queue.Empty:
                break
            if kind == _PROGRESS:
                handler(payload)
            else:
                self._result = payload
        return self

    def finalize(self, handler: Callable[[Outcome], Any]) -> None:
        """Call ``handler`` once the terminal outcome has been observed."""
        if self._result is None:
            return
        result, self._result = self._result, None
        with self._lock:
            self._active = False
        handler(result)

    def _terminate(self, outcome: Outcome) -> None:
        with self._lock:
            if self._closed:
                raise ChannelStateError(
                    f"channel {self._id} has no running task to report for"
                )
            self._closed = True
            self._queue.put((_TERMINAL, outcome))

    def _put(self, kind: str, payload: Any) -> None:
        with self._lock:
            if self._closed:
                raise ChannelStateError(
                    f"channel {self._id} has no running task to report for"
                )
            self._queue.put((kind, payload))
