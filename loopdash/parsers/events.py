"""Parse raw log lines into start/completion events.

Each line is parsed on its own. The ``status`` field is the tag that selects
the event type; objects with an unknown or missing tag, or that fail model
validation, are kept as unrecognized records rather than guessed at.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Annotated, Any, Iterable, Optional, Union

from pydantic import Field, TypeAdapter, ValidationError

from loopdash.models import CompletionEvent, LogEvent, StartEvent

logger = logging.getLogger("loopdash.parsers.events")

_EVENT_ADAPTER: TypeAdapter[LogEvent] = TypeAdapter(
    Annotated[Union[StartEvent, CompletionEvent], Field(discriminator="status")]
)


@dataclass(frozen=True)
class ParsedLine:
    raw: str
    is_json: bool
    identity: Optional[str] = None
    event: Optional[LogEvent] = None

    @property
    def is_malformed(self) -> bool:
        """True when the line cannot take part in session grouping."""
        return self.event is None


def _str_field(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if isinstance(value, str) and value:
        return value
    return ""


def effective_identity(data: dict[str, Any]) -> Optional[str]:
    """``loop_id`` if present, else ``session_id``; None when neither is usable."""
    return _str_field(data, "loop_id") or _str_field(data, "session_id") or None


def parse_event_line(line: str) -> ParsedLine:
    try:
        data = json.loads(line)
    except ValueError:
        logger.debug("Malformed log line: %.50s", line)
        return ParsedLine(raw=line, is_json=False)

    if not isinstance(data, dict):
        return ParsedLine(raw=line, is_json=True)

    identity = effective_identity(data)
    try:
        event = _EVENT_ADAPTER.validate_python(data)
    except ValidationError as exc:
        logger.debug(
            "Unrecognized log record (identity=%s): %s",
            identity,
            exc.errors(include_url=False)[0].get("msg", "invalid"),
        )
        return ParsedLine(raw=line, is_json=True, identity=identity)

    if identity is None:
        return ParsedLine(raw=line, is_json=True)
    return ParsedLine(raw=line, is_json=True, identity=identity, event=event)


def parse_event_lines(lines: Iterable[str]) -> list[ParsedLine]:
    return [parse_event_line(line) for line in lines]


def parse_events(lines: Iterable[str]) -> list[LogEvent]:
    """Only the well-formed events, in log order."""
    return [parsed.event for parsed in parse_event_lines(lines) if parsed.event is not None]
