"""Pydantic models for log events and the API payloads built from them."""
from __future__ import annotations

from typing import Literal, Optional, Union

from pydantic import BaseModel, Field

# ── Log events (one JSON object per line) ───────────────────────────


class _LogEvent(BaseModel):
    loop_id: Optional[str] = None
    session_id: str

    @property
    def identity(self) -> str:
        """Grouping key: ``loop_id`` when present, else ``session_id``."""
        return self.loop_id or self.session_id


class StartEvent(_LogEvent):
    status: Literal["active"] = "active"
    project: str = ""
    project_name: str = ""
    state_file_path: Optional[str] = None
    task: Optional[str] = None
    started_at: str = ""
    max_iterations: int = 0
    completion_promise: Optional[str] = None


class CompletionEvent(_LogEvent):
    status: Literal["completed"] = "completed"
    outcome: str  # "success" | "max_iterations" | "cancelled" | "error"
    ended_at: str = ""
    duration_seconds: int = 0
    iterations: int = 0
    error_reason: Optional[str] = None


LogEvent = Union[StartEvent, CompletionEvent]


# ── Reconciled sessions ─────────────────────────────────────────────


class LoopSession(BaseModel):
    loop_id: str
    session_id: str
    status: str  # "active" | "orphaned" | "success" | "cancelled" | "error" | "max_iterations"
    outcome: Optional[str] = None
    project: str = ""
    project_name: str = ""
    state_file_path: Optional[str] = None
    task: str = ""
    started_at: str = ""
    ended_at: Optional[str] = None
    duration_seconds: int = 0
    iterations: Optional[int] = None
    max_iterations: int = 0
    completion_promise: Optional[str] = None
    error_reason: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status == "active"


class SessionsResponse(BaseModel):
    sessions: list[LoopSession] = Field(default_factory=list)
    total: int = 0
    active_count: int = 0


# ── Operation outcomes ──────────────────────────────────────────────


class RotationResult(BaseModel):
    success: bool
    entriesBefore: int = 0
    entriesAfter: int = 0
    sessionsPurged: int = 0
    error: Optional[str] = None


class CancelResult(BaseModel):
    success: bool
    message: str


class CancelResponse(CancelResult):
    loop_id: str


class DeleteResponse(BaseModel):
    success: bool
    message: str
    loop_id: str


class ArchivedDeleteResponse(BaseModel):
    success: bool = True
    deleted_count: int = 0
