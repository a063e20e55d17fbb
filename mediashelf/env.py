from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

BASE_DIR = Path(__file__).resolve().parent.parent
DB_FILENAME = "mediashelf.db"
DEFAULT_PUBLIC_BASE_URL = "http://127.0.0.1:8000/objects"
DEFAULT_USER_AGENT = "Media-Library-Server/1.0"


def read_env(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(name)
    if value not in {None, ""}:
        return value

    file_var = os.getenv(f"{name}_FILE")
    if not file_var:
        return default

    try:
        content = Path(file_var).read_text(encoding="utf-8")
    except OSError:
        return default
    return content.rstrip("\r\n")


def _read_int(name: str, default: int) -> int:
    raw = read_env(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _read_float(name: str, default: float) -> float:
    raw = read_env(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass
class Settings:
    library_dir: Path
    db_path: Path
    public_base_url: str = DEFAULT_PUBLIC_BASE_URL
    fetch_timeout: float = 30.0
    user_agent: str = DEFAULT_USER_AGENT
    archive_cache_size: int = 0
    archive_cache_ttl: float = 300.0
    log_level: str = "INFO"


def load_settings() -> Settings:
    library = read_env("MEDIASHELF_LIBRARY_DIR")
    library_dir = Path(library) if library else BASE_DIR / "library"
    db_env = read_env("MEDIASHELF_DB_PATH")
    db_path = Path(db_env) if db_env else library_dir / DB_FILENAME
    return Settings(
        library_dir=library_dir,
        db_path=db_path,
        public_base_url=(read_env("MEDIASHELF_PUBLIC_BASE_URL") or DEFAULT_PUBLIC_BASE_URL).rstrip("/"),
        fetch_timeout=_read_float("MEDIASHELF_FETCH_TIMEOUT", 30.0),
        user_agent=read_env("MEDIASHELF_USER_AGENT") or DEFAULT_USER_AGENT,
        archive_cache_size=max(0, _read_int("MEDIASHELF_ARCHIVE_CACHE_SIZE", 0)),
        archive_cache_ttl=_read_float("MEDIASHELF_ARCHIVE_CACHE_TTL", 300.0),
        log_level=(read_env("MEDIASHELF_LOG_LEVEL") or "INFO").upper(),
    )
