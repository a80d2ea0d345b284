"""Cancel running loops by removing their marker file.

Cancelling does not write to the event log. The task runner's session-end
hook notices the missing marker and records the ``cancelled`` completion.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from loopdash.config import Settings, get_settings
from loopdash.models import CancelResult, LoopSession
from loopdash.observability import record_cancellation
from loopdash.services.liveness import PathContainmentError, resolve_contained_path

logger = logging.getLogger("loopdash.loop_manager")


def allowed_marker_roots(session: LoopSession, settings: Settings) -> list[Path]:
    """Directories a marker for ``session`` may live in."""
    roots = [Path(settings.loops_dir)]
    project = (session.project or "").strip()
    if project and Path(project).is_absolute():
        roots.append(Path(project) / ".claude")
    return roots


def resolve_marker_path(session: LoopSession, settings: Settings) -> Path:
    if not session.state_file_path:
        raise PathContainmentError(f"No state file path found for loop {session.loop_id}")
    return resolve_contained_path(session.state_file_path, allowed_marker_roots(session, settings))


def cancel_loop(session: LoopSession, settings: Optional[Settings] = None) -> CancelResult:
    result = _cancel(session, settings or get_settings())
    record_cancellation(result.success)
    if result.success:
        logger.info(result.message)
    else:
        logger.warning("Cancel refused for loop %s: %s", session.loop_id, result.message)
    return result


def _cancel(session: LoopSession, settings: Settings) -> CancelResult:
    if session.status != "active":
        return CancelResult(
            success=False,
            message=f"Loop {session.loop_id} is not active (status: {session.status})",
        )

    try:
        marker = resolve_marker_path(session, settings)
    except PathContainmentError as exc:
        return CancelResult(success=False, message=str(exc))

    if not marker.exists():
        return CancelResult(
            success=True,
            message=f"Loop {session.loop_id} has no state file left; nothing to delete",
        )

    try:
        marker.unlink()
    except FileNotFoundError:
        return CancelResult(
            success=True,
            message=f"Loop {session.loop_id} has no state file left; nothing to delete",
        )
    except OSError as exc:
        return CancelResult(success=False, message=f"Failed to delete state file: {exc}")

    return CancelResult(success=True, message=f"Successfully cancelled loop {session.loop_id}")
