import os
from dataclasses import dataclass
from pathlib import Path

DATA_DIR = Path(os.environ.get("CLIPRECALL_DATA_DIR", Path.home() / ".local" / "share" / "cliprecall"))
DB_PATH = DATA_DIR / "cliprecall.db"
LOG_PATH = DATA_DIR / "cliprecall.log"

POLL_INTERVAL = 0.5  # seconds between clipboard checks
SWEEP_INTERVAL = 60  # seconds between expiry sweeps
SEARCH_DEBOUNCE = 0.12  # seconds a search waits for further keystrokes
SEARCH_LIMIT = 100  # rows returned by a substring search
DEFAULT_LIST_LIMIT = 100
PREVIEW_LENGTH = 80  # characters shown before the ellipsis
MAX_TEXT_SIZE = 1_000_000  # 1MB text limit
MAX_IMAGE_SIZE = 10_000_000  # 10MB image limit

DEFAULT_STORE_SENSITIVE = True
DEFAULT_SENSITIVE_TTL = 60
DEFAULT_MAX_HISTORY = 500
SENSITIVE_TTL_RANGE = (10, 86400)
MAX_HISTORY_RANGE = (100, 10000)


def _parse_int(name: str, default: int, bounds: tuple[int, int]) -> int:
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    low, high = bounds
    return max(low, min(high, value))


def _parse_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    return default


@dataclass
class Settings:
    """User preferences read by the monitor and the store on every use."""

    store_sensitive: bool = DEFAULT_STORE_SENSITIVE
    sensitive_ttl: int = DEFAULT_SENSITIVE_TTL
    max_history: int = DEFAULT_MAX_HISTORY

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            store_sensitive=_parse_bool("CLIPRECALL_STORE_SENSITIVE", DEFAULT_STORE_SENSITIVE),
            sensitive_ttl=_parse_int("CLIPRECALL_SENSITIVE_TTL", DEFAULT_SENSITIVE_TTL, SENSITIVE_TTL_RANGE),
            max_history=_parse_int("CLIPRECALL_MAX_HISTORY", DEFAULT_MAX_HISTORY, MAX_HISTORY_RANGE),
        )
