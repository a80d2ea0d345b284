"""API routers for loop sessions and log maintenance."""
from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException

from loopdash.config import get_settings
from loopdash.db.factory import get_event_log
from loopdash.models import (
    ArchivedDeleteResponse,
    CancelResponse,
    DeleteResponse,
    LoopSession,
    RotationResult,
    SessionsResponse,
)
from loopdash.services.compactor import LogCompactor
from loopdash.services.history import ActiveSessionError, SessionHistory
from loopdash.services.loop_manager import cancel_loop
from loopdash.services.reconciler import SessionService

logger = logging.getLogger("loopdash.api")

sessions_router = APIRouter(prefix="/api/sessions", tags=["sessions"])
maintenance_router = APIRouter(prefix="/api/maintenance", tags=["maintenance"])


def get_session_service() -> SessionService:
    return SessionService(get_event_log(get_settings()))


def get_session_history() -> SessionHistory:
    return SessionHistory.from_settings(get_settings())


def get_compactor() -> LogCompactor:
    return LogCompactor.from_settings(get_settings())


def _require_session(service: SessionService, loop_id: str) -> LoopSession:
    session = service.get_session(loop_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Session not found: {loop_id}")
    return session


@sessions_router.get("", response_model=SessionsResponse)
def list_sessions():
    """All sessions, active first, then most recently started."""
    try:
        return get_session_service().summary()
    except OSError as e:
        raise HTTPException(status_code=500, detail=f"Failed to fetch sessions: {e}")


@sessions_router.delete("", response_model=ArchivedDeleteResponse)
def delete_archived_sessions():
    """Delete every finished or orphaned session from history."""
    try:
        deleted = get_session_history().delete_all_archived()
    except OSError as e:
        raise HTTPException(status_code=500, detail=f"Failed to delete archived sessions: {e}")
    return ArchivedDeleteResponse(success=True, deleted_count=deleted)


@sessions_router.get("/{loop_id}", response_model=LoopSession)
def get_session(loop_id: str):
    try:
        return _require_session(get_session_service(), loop_id)
    except OSError as e:
        raise HTTPException(status_code=500, detail=f"Failed to fetch session: {e}")


@sessions_router.post("/{loop_id}/cancel", response_model=CancelResponse)
def cancel_session(loop_id: str):
    """Cancel a running loop. The session is re-read so stale views are rejected."""
    session = _require_session(get_session_service(), loop_id)
    if not session.is_active:
        raise HTTPException(
            status_code=400,
            detail=f"Cannot cancel session: status is '{session.status}', expected 'active'",
        )

    result = cancel_loop(session, get_settings())
    if not result.success:
        raise HTTPException(status_code=500, detail=result.message)
    return CancelResponse(success=True, message=result.message, loop_id=loop_id)


@sessions_router.delete("/{loop_id}", response_model=DeleteResponse)
def delete_session(loop_id: str):
    session = _require_session(get_session_service(), loop_id)
    if session.is_active:
        raise HTTPException(status_code=400, detail="Cannot delete active session. Cancel it first.")

    try:
        deleted = get_session_history().delete_session(loop_id)
    except ActiveSessionError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except OSError as e:
        raise HTTPException(status_code=500, detail=f"Failed to delete session: {e}")
    if not deleted:
        raise HTTPException(status_code=500, detail="Failed to delete session from log file")
    return DeleteResponse(success=True, message="Session permanently deleted from history", loop_id=loop_id)


@maintenance_router.post("/rotate", response_model=RotationResult)
def rotate_log():
    """Run one bounded rotation of the session log."""
    result = get_compactor().rotate()
    if not result.success:
        raise HTTPException(status_code=500, detail=f"Rotation failed: {result.error}")
    return result
