"""
Transcript compaction.

Turns the flat, UI-editable message list into an alternating-turn ``Session``
that the completion backend accepts.
"""

import logging
from typing import Callable, List, Optional, Sequence

from .errors import AttachmentConversionFailed
from .files import convert_file_to_part
from .models import Message, Part, Session, TextPart

logger = logging.getLogger(__name__)

REFLECTIONS_PREFIX = "MY INNER REFLECTIONS: "
REFLECTIONS_SUFFIX = "\n--- end of inner reflections ---\n"


def fold_thoughts(messages: Sequence[Message]) -> List[Message]:
    """Return a copy of ``messages`` with thoughts turned into plain context."""
    folded = []
    for message in messages:
        if message.is_thought:
            message = message.model_copy(
                update={
                    "is_thought": False,
                    "content": REFLECTIONS_PREFIX + message.content + REFLECTIONS_SUFFIX,
                }
            )
        else:
            message = message.model_copy()
        folded.append(message)
    return folded


def compact_transcript(
    messages: Sequence[Message],
    target_index: int,
    convert: Callable[..., Part] = convert_file_to_part,
    system_instruction: Optional[str] = None,
) -> Session:
    """Group ``messages`` into author turns ready for submission.

    Parameters
    ----------
    messages : Sequence[Message]
        Snapshot of the conversation history.
    target_index : int
        Slot the reply will be written to. When that message is still
        generating, it and everything after it are left out of the context,
        and any text it carries is sent as the start of the assistant reply
        for the model to continue.
    convert : callable, optional
        File-to-part converter. Failures are logged and the attachment is
        dropped from the session.
    system_instruction : str, optional
        Passed through to the session.

    Returns
    -------
    Session
    """
    session = Session(system_instruction=system_instruction)

    target = messages[target_index] if 0 <= target_index < len(messages) else None
    regenerating = target is not None and target.is_generating
    to_process = messages[:target_index] if regenerating else messages

    parts_buffer: List[Part] = []
    current_is_user: Optional[bool] = None

    for message in to_process:
        if message.is_thought or (not message.content and not message.files):
            continue

        if current_is_user is not None and current_is_user != message.is_user:
            _flush(session, current_is_user, parts_buffer)
            parts_buffer = []

        current_is_user = message.is_user

        for path in message.files:
            try:
                part = convert(path)
            except AttachmentConversionFailed as e:
                logger.error("Failed to convert file %s: %s", path, e)
                continue
            parts_buffer.append(TextPart(text=f"File with name: {path.name}"))
            parts_buffer.append(part)

        if message.content:
            parts_buffer.append(TextPart(text=message.content))

    if current_is_user is not None:
        _flush(session, current_is_user, parts_buffer)

    # the draft the model should continue from; merged into a trailing
    # assistant turn instead of opening a second one
    if regenerating and target.content:
        session.reply([TextPart(text=target.content)])

    return session


def _flush(session: Session, is_user: bool, parts: List[Part]) -> None:
    if is_user:
        session.ask(parts)
    else:
        session.reply(parts)
