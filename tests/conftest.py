"""
Core pytest configuration and fixtures for Chatweave testing.

Provides sample histories, settings, a scripted fake backend and helpers to
drive a chat's background completion to its end deterministically.
"""

import tempfile
import threading
from pathlib import Path
from typing import Callable, Iterator, List, Optional

import pytest
from chatweave.config import Settings
from chatweave.llm import LLM
from chatweave.models import Message, Part, Session, TextPart
from chatweave.orchestrator import CompletionOrchestrator

# ===== FAKE BACKEND =====


class ScriptedLLM(LLM):
    """Backend double replaying prepared chunks and recording every session.

    ``on_chunk(i)`` runs right before chunk ``i`` is handed out, which lets a
    test act "between" chunks. An exception in ``chunks`` is raised when its
    turn comes. ``gate`` holds a blocking ``submit`` until set.
    """

    model = "scripted-v1"

    def __init__(
        self,
        chunks: Optional[List[List[Part]]] = None,
        response: Optional[List[Part]] = None,
        error: Optional[Exception] = None,
        on_chunk: Optional[Callable[[int], None]] = None,
        gate: Optional[threading.Event] = None,
    ):
        self.chunks = chunks or []
        self.response = response or []
        self.error = error
        self.on_chunk = on_chunk
        self.gate = gate
        self.sessions: List[Session] = []
        self.models: List[Optional[str]] = []

    def submit(self, session: Session, model: Optional[str] = None) -> List[Part]:
        self.sessions.append(session)
        self.models.append(model)
        if self.gate is not None:
            self.gate.wait(5)
        if self.error is not None:
            raise self.error
        return list(self.response)

    def submit_streaming(
        self, session: Session, model: Optional[str] = None
    ) -> Iterator[List[Part]]:
        self.sessions.append(session)
        self.models.append(model)
        if self.error is not None:
            raise self.error
        for i, chunk in enumerate(self.chunks):
            if self.on_chunk is not None:
                self.on_chunk(i)
            if isinstance(chunk, Exception):
                raise chunk
            yield chunk


def thought(text: str) -> List[Part]:
    return [TextPart(text=text, thought=True)]


def answer(text: str) -> List[Part]:
    return [TextPart(text=text)]


def drain(chat, timeout: float = 5.0) -> None:
    """Wait for the chat's background task, then apply everything it reported."""
    if chat.handle is not None:
        assert chat.handle.join(timeout), "completion task did not finish"
    chat.poll()


# ===== TEST DATA FIXTURES =====


@pytest.fixture
def sample_messages() -> List[Message]:
    """A finished two-exchange history."""
    return [
        Message.user("Hello, how are you?"),
        Message(role="assistant", content="I'm doing well! How can I help?"),
        Message.user("Can you explain quantum computing?"),
        Message(role="assistant", content="Quantum computing uses qubits..."),
    ]


@pytest.fixture
def settings() -> Settings:
    return Settings(
        GEMINI_API_KEY="test-key",
        GEMINI_MODEL="gemini-test",
        CHATWEAVE_CANCEL_POLL_INTERVAL=0.01,
    )


@pytest.fixture
def no_key_settings() -> Settings:
    return Settings(GEMINI_API_KEY="", CHATWEAVE_CANCEL_POLL_INTERVAL=0.01)


@pytest.fixture
def make_orchestrator(settings):
    """Factory building an orchestrator around a given backend."""

    def _make(llm: LLM, **overrides) -> CompletionOrchestrator:
        config = settings.model_copy(update=overrides) if overrides else settings
        return CompletionOrchestrator(llm, config, convert=lambda path: TextPart(text=f"<{path}>"))

    return _make


# ===== DIRECTORY FIXTURES =====


@pytest.fixture
def temp_dir():
    """Temporary directory for file-based tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


# ===== CONFIGURATION =====


def pytest_configure(config):
    """Pytest configuration."""
    config.addinivalue_line("markers", "integration: marks tests as integration tests")
    config.addinivalue_line("markers", "slow: marks tests as slow-running")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on location."""
    for item in items:
        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
