"""Append-only JSONL event log.

The store only knows about line framing: it appends one record per line,
returns the non-blank lines verbatim, and replaces the whole file atomically
(temp file + rename) when a caller rewrites it. Interpreting the records is
left to ``loopdash.parsers.events``.

Files are read and written with ``surrogateescape`` so that any bytes that
are not valid UTF-8 survive a rewrite unchanged.
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Iterable, Optional

logger = logging.getLogger("loopdash.event_log")

_ENCODING = "utf-8"
_ERRORS = "surrogateescape"


def split_log_lines(content: str) -> list[str]:
    """Split raw log content into its non-blank lines (newline stripped)."""
    return [line for line in content.split("\n") if line.strip()]


class JsonlEventLog:
    """File-backed event log shared with external appenders."""

    def __init__(self, path: Path, backup_path: Optional[Path] = None):
        self.path = Path(path)
        self.backup_path = (
            Path(backup_path)
            if backup_path is not None
            else self.path.with_name(self.path.name + ".rotation-backup")
        )

    def exists(self) -> bool:
        return self.path.is_file()

    # ── Reads ───────────────────────────────────────────────────────

    def read_text(self) -> str:
        """Return the full file content, or "" when the log does not exist."""
        try:
            with self.path.open("r", encoding=_ENCODING, errors=_ERRORS, newline="") as fh:
                return fh.read()
        except FileNotFoundError:
            return ""

    def read_lines(self) -> list[str]:
        return split_log_lines(self.read_text())

    # ── Writes ──────────────────────────────────────────────────────

    def append(self, record: dict[str, Any]) -> None:
        """Append one record as a single newline-terminated JSON line."""
        line = json.dumps(record, ensure_ascii=False, separators=(",", ":"))
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding=_ENCODING, errors=_ERRORS, newline="") as fh:
            fh.write(line + "\n")

    def atomic_replace(self, lines: Iterable[str]) -> None:
        """Replace the log with ``lines`` via a fresh temp file and ``os.replace``.

        Readers observe either the old or the new content. On failure the temp
        file is removed and the original log is left as it was.
        """
        body = "\n".join(lines)
        if body:
            body += "\n"
        self._write_atomically(body)

    def _write_atomically(self, body: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=self.path.name + ".tmp.", dir=str(self.path.parent))
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "w", encoding=_ENCODING, errors=_ERRORS, newline="") as fh:
                fh.write(body)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_path, self.path)
        except BaseException:
            try:
                tmp_path.unlink()
            except FileNotFoundError:
                pass
            raise

    # ── Backups ─────────────────────────────────────────────────────

    def create_backup(self, content: str) -> None:
        """Write ``content`` (the snapshot the caller read) as the backup copy."""
        with self.backup_path.open("w", encoding=_ENCODING, errors=_ERRORS, newline="") as fh:
            fh.write(content)
            fh.flush()
            os.fsync(fh.fileno())

    def backup_exists(self) -> bool:
        return self.backup_path.is_file()

    def restore_backup(self) -> bool:
        """Put the backed-up content back in place of the log, atomically.

        The rewrite is skipped when the log still begins with the backed-up
        content, i.e. nothing but external appends reached it; those appends
        are kept. Returns True when the log was rewritten.
        """
        with self.backup_path.open("r", encoding=_ENCODING, errors=_ERRORS, newline="") as fh:
            backup = fh.read()
        current = self.read_text()
        if current.startswith(backup) and self.exists():
            return False
        self._write_atomically(backup)
        logger.warning("Restored %s from backup %s", self.path, self.backup_path)
        return True

    def discard_backup(self) -> None:
        try:
            self.backup_path.unlink()
        except FileNotFoundError:
            pass
