"""Small filesystem and time helpers."""

import re
from datetime import datetime, timezone
from pathlib import Path


def ensure_dir(path: Path) -> Path:
    """Create the directory if needed and return it."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def safe_filename(name: str) -> str:
    """Replace characters that are unsafe in file names with underscores."""
    name = re.sub(r"\s+", "_", name.strip())
    return re.sub(r'[<>:"/\\|?*]', "_", name)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
