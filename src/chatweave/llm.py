"""Completion backends."""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Iterator, List, Optional

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from .errors import TransportError
from .models import ASSISTANT_ROLE, BinaryPart, Part, Session, TextPart

logger = logging.getLogger(__name__)


class LLM(ABC):
    """Abstract Base Class for the completion backend."""

    model: str = ""

    @abstractmethod
    def submit(self, session: Session, model: Optional[str] = None) -> List[Part]:
        """Performs a single blocking completion request.

        Parameters
        ----------
        session : Session
            Alternating-turn conversation to complete.
        model : str, optional
            Model to ask, defaults to ``self.model``.

        Returns
        -------
        List[Part]
            The parts of the reply, in order.

        Raises
        ------
        TransportError
            If the backend call fails.
        """
        pass

    @abstractmethod
    def submit_streaming(
        self, session: Session, model: Optional[str] = None
    ) -> Iterator[List[Part]]:
        """Performs a streaming completion request.

        Yields the parts of each response chunk as they arrive. A chunk may
        carry no parts at all.

        Raises
        ------
        TransportError
            If the backend call fails, either when the request is made or
            while the stream is being read.
        """
        pass


class Gemini(LLM):
    def __init__(
        self,
        api_key: str = "",
        default_model: str = "gemini-2.5-flash",
        include_thoughts: bool = True,
    ):
        self.api_key = api_key
        self.model = default_model
        self.include_thoughts = include_thoughts
        self._client: Optional[genai.Client] = None

    @property
    def client(self) -> genai.Client:
        # created on first use so an app without a key never builds a client
        if self._client is None:
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    def submit(self, session: Session, model: Optional[str] = None) -> List[Part]:
        try:
            response = self.client.models.generate_content(
                model=model or self.model,
                contents=self.build_contents(session),
                config=self.build_config(session),
            )
        except (genai_errors.APIError, httpx.HTTPError) as e:
            raise TransportError(str(e)) from e
        return self.extract_parts(response)

    def submit_streaming(
        self, session: Session, model: Optional[str] = None
    ) -> Iterator[List[Part]]:
        try:
            stream = self.client.models.generate_content_stream(
                model=model or self.model,
                contents=self.build_contents(session),
                config=self.build_config(session),
            )
            for chunk in stream:
                yield self.extract_parts(chunk)
        except (genai_errors.APIError, httpx.HTTPError) as e:
            raise TransportError(str(e)) from e

    def build_config(self, session: Session) -> types.GenerateContentConfig:
        return types.GenerateContentConfig(
            system_instruction=session.system_instruction,
            thinking_config=types.ThinkingConfig(include_thoughts=self.include_thoughts),
        )

    def build_contents(self, session: Session) -> List[types.Content]:
        contents = []
        for turn in session.turns:
            role = "model" if turn.author == ASSISTANT_ROLE else "user"
            parts = []
            for part in turn.parts:
                if isinstance(part, TextPart):
                    parts.append(types.Part.from_text(text=part.text))
                else:
                    parts.append(
                        types.Part.from_bytes(data=part.data, mime_type=part.mime_type)
                    )
            contents.append(types.Content(role=role, parts=parts))
        return contents

    def extract_parts(self, response: Any) -> List[Part]:
        """Converts a native response (or stream chunk) into our parts."""
        candidates = getattr(response, "candidates", None) or []
        if not candidates or candidates[0].content is None:
            return []

        parts: List[Part] = []
        for native in candidates[0].content.parts or []:
            if native.text is not None:
                parts.append(TextPart(text=native.text, thought=bool(native.thought)))
            elif native.inline_data is not None:
                parts.append(
                    BinaryPart(
                        mime_type=native.inline_data.mime_type or "application/octet-stream",
                        data=native.inline_data.data or b"",
                    )
                )
            else:
                logger.debug("ignoring unsupported response part: %r", native)
        return parts


class Echo(LLM):
    """Offline backend that thinks briefly, then echoes the last user text."""

    def __init__(self, default_model: str = "echo-v1", delay: float = 0.0):
        self.model = default_model
        self.delay = delay

    def submit(self, session: Session, model: Optional[str] = None) -> List[Part]:
        parts: List[Part] = []
        for chunk in self.submit_streaming(session, model):
            parts.extend(chunk)
        return parts

    def submit_streaming(
        self, session: Session, model: Optional[str] = None
    ) -> Iterator[List[Part]]:
        prompt = self._last_user_text(session) or "No message provided"
        yield [TextPart(text="The user wants their words back.", thought=True)]
        for word in f"**Echo LLM**\n\n{prompt}".split(" "):
            if self.delay:
                time.sleep(self.delay)
            yield [TextPart(text=word + " ")]

    @staticmethod
    def _last_user_text(session: Session) -> str:
        for turn in reversed(session.turns):
            if turn.author == ASSISTANT_ROLE:
                continue
            texts = [p.text for p in turn.parts if isinstance(p, TextPart)]
            return "\n".join(texts)
        return ""
