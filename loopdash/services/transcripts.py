"""Best-effort removal of per-loop transcript artifacts."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

logger = logging.getLogger("loopdash.transcripts")

LOOP_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")
TRANSCRIPT_SUFFIXES = (
    "_iterations.jsonl",
    "_full.txt",
    "_full.jsonl",
    "_checklist.json",
)


@dataclass
class CleanupReport:
    deleted: list[Path] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def is_valid_loop_id(loop_id: object) -> bool:
    return isinstance(loop_id, str) and bool(LOOP_ID_PATTERN.match(loop_id))


def transcript_paths(transcripts_dir: Path, loop_id: str) -> list[Path]:
    return [Path(transcripts_dir) / f"{loop_id}{suffix}" for suffix in TRANSCRIPT_SUFFIXES]


def delete_transcripts(transcripts_dir: Path, loop_ids: Iterable[str]) -> CleanupReport:
    """Remove transcript files for ``loop_ids``.

    Identifiers that do not match ``LOOP_ID_PATTERN`` are skipped before any
    path is built. Failures are collected in the report, never raised.
    """
    report = CleanupReport()
    for loop_id in loop_ids:
        if not is_valid_loop_id(loop_id):
            report.skipped.append(str(loop_id))
            continue
        for path in transcript_paths(transcripts_dir, loop_id):
            try:
                path.unlink()
            except FileNotFoundError:
                continue
            except OSError as exc:
                report.errors.append(f"{path}: {exc}")
                continue
            report.deleted.append(path)

    if report.errors:
        logger.warning("Transcript cleanup left %d file(s) behind: %s", len(report.errors), report.errors)
    elif report.deleted:
        logger.info("Removed %d transcript file(s)", len(report.deleted))
    return report
