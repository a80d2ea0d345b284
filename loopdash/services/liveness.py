"""Liveness checks for running loops and path-boundary validation.

A loop is considered alive while its marker (state) file exists. The task
runner creates the marker on start and removes it when the loop ends.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable, Optional

from loopdash.parsers.state_file import read_iteration_from_state_file


class PathContainmentError(ValueError):
    """Raised when a caller-supplied path resolves outside its allowed roots."""


def is_under(path: Path, root: Path) -> bool:
    try:
        path.resolve(strict=False).relative_to(root.resolve(strict=False))
        return True
    except ValueError:
        return False


def normalize_path(raw_path: str) -> Path:
    """Expand ``~`` and trim whitespace the same way for every marker lookup."""
    return Path(os.path.expanduser(str(raw_path).strip()))


def resolve_contained_path(raw_path: str, allowed_roots: Iterable[Path]) -> Path:
    """Normalize ``raw_path`` and require it to sit inside one of ``allowed_roots``.

    Symlinks and ``..`` segments are resolved before the check, so a path that
    merely starts with an allowed prefix is not enough.
    """
    if not raw_path or not str(raw_path).strip():
        raise PathContainmentError("Empty path")
    candidate = normalize_path(raw_path)
    if not candidate.is_absolute():
        raise PathContainmentError(f"Path must be absolute: {raw_path}")
    resolved = candidate.resolve(strict=False)
    roots = [Path(root) for root in allowed_roots]
    if not any(is_under(resolved, root) for root in roots):
        raise PathContainmentError(f"Path outside allowed directories: {raw_path}")
    # The marker itself must never be one of the roots.
    if any(resolved == root.resolve(strict=False) for root in roots):
        raise PathContainmentError(f"Path is a directory root, not a marker: {raw_path}")
    return resolved


class LivenessOracle:
    """Filesystem-backed liveness predicate."""

    def is_alive(self, marker_path: str) -> bool:
        return normalize_path(marker_path).exists()

    def current_iteration(self, marker_path: str) -> Optional[int]:
        return read_iteration_from_state_file(normalize_path(marker_path))
