"""On-disk snapshots of the response cache."""

import logging
import os
import pickle
import time
from pathlib import Path
from typing import List, Optional, Tuple

from .models import CacheEntry

logger = logging.getLogger(__name__)

SNAPSHOT_FILENAME = "cache.pkl"
SNAPSHOT_VERSION = 1


def snapshot_path(directory: Path) -> Path:
    """Path of the snapshot file inside a cache directory."""
    return Path(directory) / SNAPSHOT_FILENAME


def save_snapshot(path: Path, entries: List[Tuple[str, CacheEntry]]) -> None:
    """
    Write entries to ``path`` atomically.

    Entries are stored in recency order (least recent first). The data is
    written to a temporary file next to ``path`` and renamed over it, so a
    crash never leaves a truncated snapshot behind.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    data = {
        "version": SNAPSHOT_VERSION,
        "saved_at": time.time(),
        "entries": entries,
    }

    tmp_file = path.with_name(f"{path.name}.tmp")
    with open(tmp_file, "wb") as f:
        pickle.dump(data, f, protocol=pickle.HIGHEST_PROTOCOL)
    os.replace(tmp_file, path)

    logger.debug(f"Cache snapshot saved: {len(entries)} entries -> {path}")


def load_snapshot(
    path: Path, now: Optional[float] = None
) -> List[Tuple[str, CacheEntry]]:
    """
    Read entries back from ``path``.

    Returns entries least recent first, with expired ones dropped. A missing
    file yields an empty list; an unreadable file is logged and also yields
    an empty list.
    """
    path = Path(path)
    if not path.exists():
        return []

    try:
        with open(path, "rb") as f:
            data = pickle.load(f)
    except (OSError, pickle.UnpicklingError, EOFError, AttributeError, ImportError) as e:
        logger.warning(f"Ignoring unreadable cache snapshot {path}: {e}")
        return []

    if not isinstance(data, dict) or data.get("version") != SNAPSHOT_VERSION:
        logger.warning(f"Ignoring cache snapshot {path}: unknown format")
        return []

    if now is None:
        now = time.time()

    entries = [
        (key, entry)
        for key, entry in data.get("entries", [])
        if isinstance(entry, CacheEntry) and not entry.is_expired(now)
    ]
    logger.debug(f"Cache snapshot loaded: {len(entries)} live entries from {path}")
    return entries


def remove_snapshot(path: Path) -> None:
    """Delete the snapshot file if present."""
    try:
        Path(path).unlink()
    except FileNotFoundError:
        pass
