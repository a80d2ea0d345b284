"""Delete finished sessions from the event log on request.

Unlike rotation, these rewrites are targeted by identity: every line whose
effective identity matches is dropped, every other line (including lines that
do not parse) is written back verbatim with an atomic replace.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from loopdash.config import Settings, get_settings
from loopdash.db.factory import get_event_log
from loopdash.models import LoopSession
from loopdash.observability import record_history_deletion
from loopdash.parsers.events import ParsedLine, parse_event_lines
from loopdash.services.liveness import LivenessOracle, PathContainmentError
from loopdash.services.loop_manager import resolve_marker_path
from loopdash.services.reconciler import merge_sessions
from loopdash.services.transcripts import delete_transcripts

logger = logging.getLogger("loopdash.history")


class ActiveSessionError(ValueError):
    """Raised when a deletion targets a loop that is still running."""


class SessionHistory:
    def __init__(self, store, settings: Settings, liveness: Optional[LivenessOracle] = None):
        self.store = store
        self.settings = settings
        self.liveness = liveness or LivenessOracle()

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "SessionHistory":
        settings = settings or get_settings()
        return cls(get_event_log(settings), settings)

    def _snapshot(self) -> tuple[list[ParsedLine], list[LoopSession]]:
        parsed = parse_event_lines(self.store.read_lines())
        events = [p.event for p in parsed if p.event is not None]
        return parsed, merge_sessions(events, self.liveness)

    def _rewrite_without(self, parsed: list[ParsedLine], identities: set[str]) -> int:
        kept = [p.raw for p in parsed if p.identity is None or p.identity not in identities]
        removed = len(parsed) - len(kept)
        if removed:
            self.store.atomic_replace(kept)
        return removed

    def delete_session(self, loop_id: str) -> bool:
        """Remove every record of one finished loop. False if nothing matched."""
        if not self.store.exists():
            return False
        parsed, sessions = self._snapshot()
        session = next((s for s in sessions if s.loop_id == loop_id), None)
        if session is not None and session.is_active:
            raise ActiveSessionError(f"Cannot delete active loop {loop_id}. Cancel it first.")

        removed = self._rewrite_without(parsed, {loop_id})
        if not removed:
            return False
        logger.info("Deleted loop %s from history (%d entries)", loop_id, removed)
        record_history_deletion(1)
        delete_transcripts(self.settings.transcripts_dir, [loop_id])
        return True

    def delete_all_archived(self) -> int:
        """Remove every non-active session (orphans included). Returns the count."""
        if not self.store.exists():
            return 0
        parsed, sessions = self._snapshot()
        archived = [s for s in sessions if not s.is_active]
        if not archived:
            return 0

        self._rewrite_without(parsed, {s.loop_id for s in archived})
        logger.info("Deleted %d archived session(s) from history", len(archived))
        record_history_deletion(len(archived))

        in_use = {s.state_file_path for s in sessions if s.is_active and s.state_file_path}
        for session in archived:
            if session.state_file_path and session.state_file_path not in in_use:
                self._remove_marker(session)
        delete_transcripts(self.settings.transcripts_dir, [s.loop_id for s in archived])
        return len(archived)

    def _remove_marker(self, session: LoopSession) -> None:
        try:
            marker: Path = resolve_marker_path(session, self.settings)
        except PathContainmentError as exc:
            logger.warning("Not removing marker for loop %s: %s", session.loop_id, exc)
            return
        try:
            marker.unlink()
        except FileNotFoundError:
            return
        except OSError as exc:
            logger.warning("Could not remove marker %s: %s", marker, exc)
