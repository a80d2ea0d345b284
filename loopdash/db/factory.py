"""Store factory so services never build file paths themselves."""
from __future__ import annotations

from typing import Optional

from loopdash.config import Settings, get_settings
from loopdash.db.event_log import JsonlEventLog


def get_event_log(settings: Optional[Settings] = None) -> JsonlEventLog:
    settings = settings or get_settings()
    return JsonlEventLog(settings.log_file, settings.backup_file)
