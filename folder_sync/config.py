"""Options controlling a scan."""

import json
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Optional

from .errors import ConfigError
from .filters import DEFAULT_EXCLUDES, PathFilter, build_path_filter
from .hasher import DEFAULT_CHUNK_SIZE
from .priority import PRIORITY_CHOICES, PRIORITY_NONE, PriorityScorer, make_scorer

DEFAULT_STATE_FILENAME = "folder_sync_state.fss"


def _is_positive_int(value) -> bool:
    # bool is an int subclass but never a valid count
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


@dataclass
class SyncOptions:
    """Scan and hashing options shared by the capture and diff entry points."""
    workers: Optional[int] = None
    queue_size: Optional[int] = None
    chunk_size: int = DEFAULT_CHUNK_SIZE
    exclude: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_EXCLUDES))
    show_progress: bool = False
    hash_cache: Optional[Path] = None
    priority: str = PRIORITY_NONE

    def __post_init__(self) -> None:
        for name in ("workers", "queue_size"):
            value = getattr(self, name)
            if value is not None and not _is_positive_int(value):
                raise ConfigError(f"{name} must be a positive integer, got {value!r}")
        if not _is_positive_int(self.chunk_size):
            raise ConfigError(f"chunk_size must be a positive integer, got {self.chunk_size!r}")
        if not isinstance(self.exclude, dict):
            raise ConfigError("exclude must be a mapping of pattern to action")
        if self.hash_cache is not None:
            self.hash_cache = Path(self.hash_cache)
        if self.priority not in PRIORITY_CHOICES:
            raise ConfigError(
                f"priority must be one of {', '.join(PRIORITY_CHOICES)}, got {self.priority!r}"
            )
        # Fail early on unknown actions
        build_path_filter(self.exclude)

    @property
    def path_filter(self) -> PathFilter:
        return build_path_filter(self.exclude)

    @property
    def scorer(self) -> Optional[PriorityScorer]:
        return make_scorer(self.priority)


def load_options(path: Path) -> SyncOptions:
    """Load SyncOptions from a JSON config file."""
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")

    try:
        with path.open("r", encoding="utf-8") as fh:
            data = json.load(fh)
    except (OSError, ValueError) as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object")

    known = {f.name for f in fields(SyncOptions)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"Unknown config keys in {path}: {', '.join(unknown)}")

    return SyncOptions(**data)
