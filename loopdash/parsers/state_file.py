"""Read the YAML frontmatter of a loop's marker (state) file."""
from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Optional

import yaml

logger = logging.getLogger("loopdash.parsers.state_file")

_FRONTMATTER_RE = re.compile(r"^---[ \t]*\r?\n(.*?)\r?\n---[ \t]*(?:\r?\n|$)", re.DOTALL)


class FrontmatterParseError(ValueError):
    """Raised when marker frontmatter exists but is not a valid YAML mapping."""


def split_frontmatter(text: str) -> tuple[str | None, str]:
    """Split a marker file into (frontmatter_text, body).

    Returns (None, full_text) if no closed frontmatter block is found.
    """
    match = _FRONTMATTER_RE.match(text)
    if not match:
        return None, text
    return match.group(1), text[match.end():]


def load_frontmatter(fm_text: str, file_path: Path) -> dict[str, Any]:
    try:
        parsed = yaml.safe_load(fm_text) or {}
    except yaml.YAMLError as exc:
        raise FrontmatterParseError(f"Invalid YAML frontmatter in {file_path}") from exc
    if not isinstance(parsed, dict):
        raise FrontmatterParseError(f"Expected mapping frontmatter in {file_path}")
    return parsed


def read_state_frontmatter(file_path: Path) -> Optional[dict[str, Any]]:
    """Frontmatter mapping of a marker file, or None if absent/unreadable."""
    try:
        text = Path(file_path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return None
    fm_text, _ = split_frontmatter(text)
    if fm_text is None:
        return None
    try:
        return load_frontmatter(fm_text, Path(file_path))
    except FrontmatterParseError as exc:
        logger.debug("%s", exc)
        return None


def read_iteration_from_state_file(file_path: Path | str) -> Optional[int]:
    """Current iteration of a running loop.

    Requires a closed frontmatter block carrying both ``session_id`` and
    ``iteration``; anything else yields None.
    """
    frontmatter = read_state_frontmatter(Path(file_path))
    if not frontmatter or "session_id" not in frontmatter:
        return None
    iteration = frontmatter.get("iteration")
    if isinstance(iteration, bool):
        return None
    if isinstance(iteration, int):
        return iteration
    if isinstance(iteration, str) and iteration.strip().isdigit():
        return int(iteration.strip())
    return None
