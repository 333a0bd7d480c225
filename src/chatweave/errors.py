"""Exception taxonomy and backend error normalization."""

import json

_WRAPPER_PREFIX = 'StatusNotOk("'
_WRAPPER_SUFFIX = '")'


class ChatweaveError(Exception):
    """Base class for all chatweave errors."""


class MissingCredential(ChatweaveError):
    """No API key is configured; no request was dispatched."""


class TransportError(ChatweaveError):
    """The backend call failed (network or protocol)."""


class TaskPanicked(ChatweaveError):
    """A background task terminated abnormally."""


class AttachmentConversionFailed(ChatweaveError):
    """A file attachment could not be turned into a request part."""


class ChannelStateError(ChatweaveError):
    """A progress channel was used outside its lifecycle."""


class MessageFrozenError(ChatweaveError):
    """Content was appended to a message that is no longer generating."""


def normalize_error_message(raw: str) -> str:
    """Turn a raw backend error into user-presentable text.

    The backend may wrap an escaped JSON payload in ``StatusNotOk("...")``.
    The wrapper is stripped, ``\\n`` and ``\\"`` are unescaped, and the result
    is pretty-printed when it parses as JSON, otherwise the cleaned string is
    returned as is.
    """
    cleaned = raw
    if cleaned.startswith(_WRAPPER_PREFIX):
        cleaned = cleaned[len(_WRAPPER_PREFIX) :]
    if cleaned.endswith(_WRAPPER_SUFFIX):
        cleaned = cleaned[: -len(_WRAPPER_SUFFIX)]
    cleaned = cleaned.replace("\\n", "\n").replace('\\"', '"')

    try:
        value = json.loads(cleaned)
    except ValueError:
        return cleaned
    return json.dumps(value, indent=2)
