"""Rebuild loop sessions from the event log.

Events are grouped by effective identity (``loop_id``, falling back to
``session_id`` for legacy rows) into start/completion pairs. Unresolved
groups are classified with the liveness oracle, display fields are derived,
and the result is ordered for presentation. Nothing here is cached: every
call reflects the log and the marker files as they are right now.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from loopdash.date_utils import elapsed_seconds, iso_to_epoch, utc_now
from loopdash.models import (
    CompletionEvent,
    LogEvent,
    LoopSession,
    SessionsResponse,
    StartEvent,
)
from loopdash.parsers.events import parse_events
from loopdash.services.liveness import LivenessOracle

logger = logging.getLogger("loopdash.reconciler")

ORPHANED_PROJECT_NAME = "(orphaned entry)"

# Only the first non-quote, non-space token is captured, even inside quotes.
_COMPLETION_PROMISE_PATTERN = re.compile(r"--completion-promise=[\"']?([^\"'\s]+)[\"']?")
_WHITESPACE_RUN = re.compile(r"\s+")


@dataclass
class _Group:
    start: Optional[StartEvent] = None
    completion: Optional[CompletionEvent] = None


def extract_completion_promise(task: Optional[str]) -> tuple[str, Optional[str]]:
    """Split ``--completion-promise=VALUE`` out of a task description.

    Returns ``(display_task, promise)``; ``promise`` is None when the flag is
    absent and the task is then returned stripped but otherwise untouched.
    """
    text = task or ""
    match = _COMPLETION_PROMISE_PATTERN.search(text)
    if not match:
        return text.strip(), None
    cleaned = text[: match.start()] + " " + text[match.end():]
    return _WHITESPACE_RUN.sub(" ", cleaned).strip(), match.group(1)


def group_events(events: Iterable[LogEvent]) -> dict[str, _Group]:
    """Group events by identity, in order of first appearance."""
    groups: dict[str, _Group] = {}
    for event in events:
        identity = event.identity
        group = groups.setdefault(identity, _Group())
        if isinstance(event, StartEvent):
            if group.start is not None:
                logger.warning("Duplicate start record for loop %s; using the latest", identity)
            group.start = event
        else:
            if group.completion is not None:
                logger.warning("Duplicate completion record for loop %s; using the latest", identity)
            group.completion = event
    return groups


def _orphaned_completion(identity: str, completion: CompletionEvent) -> LoopSession:
    return LoopSession(
        loop_id=identity,
        session_id=completion.session_id,
        status="orphaned",
        outcome=completion.outcome,
        project="",
        project_name=ORPHANED_PROJECT_NAME,
        state_file_path=None,
        task=f"Orphaned: {completion.outcome}",
        started_at=completion.ended_at,
        ended_at=completion.ended_at or None,
        duration_seconds=completion.duration_seconds,
        iterations=completion.iterations,
        max_iterations=0,
        completion_promise=None,
        error_reason=completion.error_reason,
    )


def _session_from_group(
    identity: str,
    group: _Group,
    liveness: LivenessOracle,
    now: datetime,
) -> Optional[LoopSession]:
    start, completion = group.start, group.completion
    if start is None:
        if completion is None:
            return None
        return _orphaned_completion(identity, completion)

    task, extracted_promise = extract_completion_promise(start.task)
    promise = start.completion_promise if start.completion_promise is not None else extracted_promise

    fields = dict(
        loop_id=identity,
        session_id=start.session_id,
        project=start.project,
        project_name=start.project_name,
        state_file_path=start.state_file_path,
        task=task,
        started_at=start.started_at,
        max_iterations=start.max_iterations,
        completion_promise=promise,
    )

    if completion is not None:
        return LoopSession(
            **fields,
            status=completion.outcome,
            outcome=completion.outcome,
            ended_at=completion.ended_at or None,
            duration_seconds=completion.duration_seconds,
            iterations=completion.iterations,
            error_reason=completion.error_reason,
        )

    marker = start.state_file_path
    if marker and not liveness.is_alive(marker):
        return LoopSession(**fields, status="orphaned", duration_seconds=0)

    return LoopSession(
        **fields,
        status="active",
        duration_seconds=elapsed_seconds(start.started_at, now),
        iterations=liveness.current_iteration(marker) if marker else None,
    )


def _sort_key(session: LoopSession) -> tuple[int, float]:
    if session.is_active:
        return (0, 0.0)
    return (1, -iso_to_epoch(session.started_at))


def merge_sessions(
    events: Iterable[LogEvent],
    liveness: Optional[LivenessOracle] = None,
    now: Optional[datetime] = None,
) -> list[LoopSession]:
    """Reconcile events into sessions: active first, then newest start first."""
    liveness = liveness or LivenessOracle()
    now = now or utc_now()
    sessions: list[LoopSession] = []
    for identity, group in group_events(events).items():
        session = _session_from_group(identity, group, liveness, now)
        if session is not None:
            sessions.append(session)
    # list.sort is stable, so actives keep their log order.
    sessions.sort(key=_sort_key)
    return sessions


class SessionService:
    """Read-side queries over an event log store."""

    def __init__(self, store, liveness: Optional[LivenessOracle] = None):
        self.store = store
        self.liveness = liveness or LivenessOracle()

    def list_sessions(self, now: Optional[datetime] = None) -> list[LoopSession]:
        events = parse_events(self.store.read_lines())
        return merge_sessions(events, self.liveness, now)

    def get_session(self, loop_id: str) -> Optional[LoopSession]:
        return next((s for s in self.list_sessions() if s.loop_id == loop_id), None)

    def summary(self) -> SessionsResponse:
        sessions = self.list_sessions()
        return SessionsResponse(
            sessions=sessions,
            total=len(sessions),
            active_count=sum(1 for s in sessions if s.is_active),
        )
