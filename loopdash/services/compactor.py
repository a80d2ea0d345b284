"""Bounded, crash-safe rotation of the session event log.

Once the log holds more lines than the configured ceiling, the oldest fully
resolved loops (exactly one start plus one completion line) are removed.

SAFETY GUARANTEES:
1. A byte-identical backup is written before anything else happens.
2. Only complete loops are purged; active, orphaned and anomalous groups stay.
3. One rotation never removes more than half of the existing lines.
4. The filtered line count must match the computed removal exactly.
5. The rewritten log is never empty, and every JSON line stays JSON.
6. Any failed check or unexpected error restores the backup.
7. The new content is committed with temp file + atomic rename.
8. Lines that cannot be parsed are always carried over verbatim.
"""
from __future__ import annotations

import json
import logging
from collections import Counter
from pathlib import Path
from typing import Callable, Iterable, Optional

from loopdash.config import Settings, get_settings
from loopdash.date_utils import iso_to_epoch
from loopdash.db.event_log import split_log_lines
from loopdash.db.factory import get_event_log
from loopdash.models import RotationResult
from loopdash.observability import record_rotation, start_span
from loopdash.parsers.events import ParsedLine, parse_event_lines
from loopdash.services.reconciler import group_events
from loopdash.services.transcripts import CleanupReport, delete_transcripts

logger = logging.getLogger("loopdash.compactor")

DEFAULT_MAX_ENTRIES = 100
LINES_PER_COMPLETE_LOOP = 2


def _parses_as_json(line: str) -> bool:
    try:
        json.loads(line)
    except ValueError:
        return False
    return True


class LogCompactor:
    """Rotates one event log store. Callers must not run two at once."""

    def __init__(
        self,
        store,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        transcripts_dir: Optional[Path] = None,
        cleanup: Callable[[Path, Iterable[str]], CleanupReport] = delete_transcripts,
    ):
        self.store = store
        self.max_entries = max(0, int(max_entries))
        self.transcripts_dir = transcripts_dir
        self._cleanup = cleanup
        self.last_cleanup: Optional[CleanupReport] = None

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "LogCompactor":
        settings = settings or get_settings()
        return cls(
            get_event_log(settings),
            max_entries=settings.max_entries,
            transcripts_dir=settings.transcripts_dir,
        )

    def rotate(self) -> RotationResult:
        with start_span("loopdash.rotate", {"loopdash.max_entries": self.max_entries}):
            result = self._rotate()
        record_rotation(result)
        if not result.success:
            logger.error("Rotation failed: %s", result.error)
        elif result.sessionsPurged:
            logger.info(
                "Rotated: %d -> %d entries (%d sessions purged)",
                result.entriesBefore,
                result.entriesAfter,
                result.sessionsPurged,
            )
        return result

    # ── Steps ───────────────────────────────────────────────────────

    def _rotate(self) -> RotationResult:
        self.last_cleanup = None
        if not self.store.exists():
            return RotationResult(success=True)

        content = self.store.read_text()
        lines = split_log_lines(content)
        count = len(lines)
        if count <= self.max_entries:
            return RotationResult(success=True, entriesBefore=count, entriesAfter=count)

        try:
            self.store.create_backup(content)
        except OSError as exc:
            logger.error("Could not write rotation backup: %s", exc)
            try:
                self.store.discard_backup()
            except OSError:
                pass
            return self._failed(count, "Failed to create backup")

        try:
            parsed = parse_event_lines(lines)
            purge_ids, purge_count = self._select_purge(parsed, count)
            if not purge_ids:
                self.store.discard_backup()
                return RotationResult(success=True, entriesBefore=count, entriesAfter=count)

            filtered = self._filter_lines(parsed, purge_ids)

            expected = count - purge_count
            if len(filtered) != expected:
                return self._abort(count, f"Count mismatch: expected {expected}, got {len(filtered)}")
            if not filtered:
                return self._abort(count, "Rotation would delete all entries")
            json_expected = sum(1 for p in parsed if p.is_json) - purge_count
            if sum(1 for line in filtered if _parses_as_json(line)) != json_expected:
                return self._abort(count, "Invalid JSON in filtered output")

            self.store.atomic_replace(filtered)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unexpected error during rotation")
            return self._abort(count, str(exc) or exc.__class__.__name__)

        # Post-commit; failures here never undo the rewrite.
        try:
            self.store.discard_backup()
        except OSError as exc:
            logger.warning("Rotation committed but the backup could not be removed: %s", exc)
        if self.transcripts_dir is not None:
            try:
                self.last_cleanup = self._cleanup(self.transcripts_dir, purge_ids)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Transcript cleanup failed: %s", exc)
                self.last_cleanup = CleanupReport(errors=[str(exc)])

        return RotationResult(
            success=True,
            entriesBefore=count,
            entriesAfter=len(filtered),
            sessionsPurged=len(purge_ids),
        )

    def _select_purge(self, parsed: list[ParsedLine], count: int) -> tuple[list[str], int]:
        """Pick whole complete loops, oldest first, within the removal budget."""
        groups = group_events(p.event for p in parsed if p.event is not None)
        complete = [
            (identity, group.start.started_at)
            for identity, group in groups.items()
            if group.start is not None and group.completion is not None
        ]
        if not complete:
            logger.info("No complete sessions to purge (%d entries)", count)
            return [], 0

        max_remove = count // 2
        to_remove = min(count - self.max_entries, max_remove)
        if to_remove <= 0:
            return [], 0

        line_counts = Counter(p.identity for p in parsed if p.identity)
        complete.sort(key=lambda item: (iso_to_epoch(item[1]), item[1]))

        purge_ids: list[str] = []
        purge_count = 0
        for identity, _started_at in complete:
            group_lines = line_counts[identity]
            if group_lines != LINES_PER_COMPLETE_LOOP:
                logger.warning(
                    "Skipping loop %s during rotation: %d entries share its identity",
                    identity,
                    group_lines,
                )
                continue
            if purge_count + group_lines > max_remove:
                break
            purge_ids.append(identity)
            purge_count += group_lines
            if purge_count >= to_remove:
                break
        return purge_ids, purge_count

    def _filter_lines(self, parsed: list[ParsedLine], purge_ids: Iterable[str]) -> list[str]:
        purge = set(purge_ids)
        return [p.raw for p in parsed if p.identity is None or p.identity not in purge]

    # ── Failure handling ────────────────────────────────────────────

    @staticmethod
    def _failed(count: int, error: str) -> RotationResult:
        return RotationResult(
            success=False,
            entriesBefore=count,
            entriesAfter=count,
            sessionsPurged=0,
            error=error,
        )

    def _abort(self, count: int, error: str) -> RotationResult:
        """Restore the pre-rotation log; keep the backup if that fails."""
        try:
            self.store.restore_backup()
            self.store.discard_backup()
        except Exception as exc:  # noqa: BLE001
            backup = getattr(self.store, "backup_path", "the rotation backup")
            logger.critical("Restore after failed rotation did not complete: %s", exc)
            return self._failed(
                count,
                f"{error}; restore failed ({exc}), backup left at {backup} for manual recovery",
            )
        return self._failed(count, error)


def rotate_session_log(settings: Optional[Settings] = None) -> RotationResult:
    return LogCompactor.from_settings(settings).rotate()
