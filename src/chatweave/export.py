"""Exporting and re-importing conversation history."""

import enum
import json
import logging
from pathlib import Path
from typing import List, Sequence

import yaml
from pydantic import TypeAdapter

from .models import Message

logger = logging.getLogger(__name__)

_messages_adapter = TypeAdapter(List[Message])


class ExportFormat(str, enum.Enum):
    PLAINTEXT = "plaintext"
    JSON = "json"
    YAML = "yaml"

    @property
    def extensions(self) -> List[str]:
        return {
            ExportFormat.PLAINTEXT: ["txt"],
            ExportFormat.JSON: ["json"],
            ExportFormat.YAML: ["yaml", "yml"],
        }[self]

    @property
    def mime_type(self) -> str:
        return {
            ExportFormat.PLAINTEXT: "text/plain",
            ExportFormat.JSON: "application/json",
            ExportFormat.YAML: "application/yaml",
        }[self]


def export_messages(messages: Sequence[Message], fmt: ExportFormat) -> str:
    fmt = ExportFormat(fmt)
    if fmt is ExportFormat.PLAINTEXT:
        return "".join(
            f"{m.timestamp.isoformat()} - {m.role.capitalize()} ({m.model}): {m.content}\n"
            for m in messages
        )

    data = _messages_adapter.dump_python(list(messages), mode="json")
    if fmt is ExportFormat.JSON:
        return json.dumps(data, indent=2, ensure_ascii=False)
    return yaml.safe_dump(data, sort_keys=False, allow_unicode=True)


def import_messages(text: str, fmt: ExportFormat) -> List[Message]:
    """Parse messages exported as JSON or YAML.

    Plaintext exports are lossy and cannot be imported.
    """
    fmt = ExportFormat(fmt)
    if fmt is ExportFormat.JSON:
        data = json.loads(text)
    elif fmt is ExportFormat.YAML:
        data = yaml.safe_load(text)
    else:
        raise ValueError("plaintext exports cannot be imported")
    return _messages_adapter.validate_python(data or [])


def write_export(messages: Sequence[Message], fmt: ExportFormat, path) -> Path:
    path = Path(path)
    logger.info(
        "exporting %d messages to %s (format: %s)...", len(messages), path, fmt
    )
    path.write_text(export_messages(messages, fmt), encoding="utf-8")
    logger.info("export complete")
    return path
