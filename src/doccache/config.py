"""Application configuration defaults."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path

DEFAULT_USER_AGENT = "DocCache Documentation Fetcher/0.1"
DEFAULT_RANKER_COMMAND = ("claude", "-p")


def _get_default_db_path() -> Path:
    """Default cache database path: a local data/ copy if present, else the user documents folder."""
    user_db = Path.home() / "Documents" / "DocCache" / "doccache.db"

    # prefer a local data/ directory when one exists
    local_db = Path("data/doccache.db")
    if local_db.exists():
        return local_db

    return user_db


@dataclass(slots=True)
class AppConfig:
    db_path: Path | None = None
    max_chunk_size: int = 800
    overlap: int = 100
    heading_window: int = 50
    max_cache_age_hours: float = 24.0
    sweep_interval_hours: float = 6.0
    fetch_timeout: float = 30.0
    retry_count: int = 3
    retry_base_delay: float = 1.0
    min_content_chars: int = 200
    ranking_timeout: float = 30.0
    ranker_command: tuple[str, ...] = field(default=DEFAULT_RANKER_COMMAND)
    user_agent: str = DEFAULT_USER_AGENT

    def __post_init__(self) -> None:
        if self.db_path is None:
            self.db_path = _get_default_db_path()

    @property
    def max_cache_age(self) -> timedelta:
        return timedelta(hours=self.max_cache_age_hours)

    @property
    def sweep_interval(self) -> timedelta:
        return timedelta(hours=self.sweep_interval_hours)

    def resolve_db_path(self, base_dir: Path | None = None) -> Path:
        if self.db_path is None:
            self.db_path = _get_default_db_path()
        if Path(self.db_path).is_absolute() or base_dir is None:
            return Path(self.db_path)
        return base_dir / self.db_path
