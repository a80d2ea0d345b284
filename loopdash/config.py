"""loopdash configuration."""
import os
from dataclasses import dataclass, replace
from pathlib import Path


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    value = os.getenv(name)
    if not value or not value.strip():
        return default
    return Path(value.strip()).expanduser()


# Loop data root (logs, markers, transcripts live underneath)
DEFAULT_BASE_DIR = Path.home() / ".claude" / "ralph-wiggum-pro"
BASE_DIR = _env_path("LOOPDASH_BASE_DIR", DEFAULT_BASE_DIR)
LOGS_DIR = BASE_DIR / "logs"
LOOPS_DIR = BASE_DIR / "loops"
TRANSCRIPTS_DIR = BASE_DIR / "transcripts"
LOG_FILE = _env_path("LOOPDASH_LOG_FILE", LOGS_DIR / "sessions.jsonl")

# Rotation
MAX_SESSION_ENTRIES = _env_int("LOOPDASH_MAX_SESSION_ENTRIES", 100)

# Observability
OTEL_ENABLED = _env_bool("LOOPDASH_OTEL_ENABLED", False)
OTEL_ENDPOINT = os.getenv("LOOPDASH_OTEL_ENDPOINT", "http://localhost:4318")
OTEL_SERVICE_NAME = os.getenv("LOOPDASH_OTEL_SERVICE_NAME", "loopdash")
PROM_PORT = _env_int("LOOPDASH_PROM_PORT", 0)

# Server settings
HOST = os.getenv("LOOPDASH_HOST", "localhost")
PORT = _env_int("LOOPDASH_PORT", 3847)

# CORS
FRONTEND_ORIGIN = os.getenv("LOOPDASH_FRONTEND_ORIGIN", "http://localhost:5173")


@dataclass(frozen=True)
class Settings:
    """Filesystem roots and limits shared by every loopdash component."""

    base_dir: Path
    log_file: Path
    loops_dir: Path
    transcripts_dir: Path
    max_entries: int = 100
    host: str = "localhost"
    port: int = 3847

    @classmethod
    def for_base_dir(cls, base_dir: Path, **overrides) -> "Settings":
        """Lay out the standard tree under ``base_dir``."""
        base = Path(base_dir)
        settings = cls(
            base_dir=base,
            log_file=base / "logs" / "sessions.jsonl",
            loops_dir=base / "loops",
            transcripts_dir=base / "transcripts",
        )
        return replace(settings, **overrides) if overrides else settings

    @property
    def backup_file(self) -> Path:
        return self.log_file.with_name(self.log_file.name + ".rotation-backup")

    def with_overrides(self, **overrides) -> "Settings":
        return replace(self, **overrides)


def get_settings() -> Settings:
    """Build settings from the module-level environment defaults."""
    return Settings(
        base_dir=BASE_DIR,
        log_file=LOG_FILE,
        loops_dir=LOOPS_DIR,
        transcripts_dir=TRANSCRIPTS_DIR,
        max_entries=MAX_SESSION_ENTRIES,
        host=HOST,
        port=PORT,
    )
