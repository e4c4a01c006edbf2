"""Directory-scan fallback for locating the latest replay buffer file."""

import logging
import time
from pathlib import Path

logger = logging.getLogger(__name__)

VIDEO_EXTENSIONS = frozenset({".mp4", ".mkv", ".flv", ".mov", ".ts"})
DEFAULT_MAX_AGE_MS = 30_000


def find_latest(
    directory: Path | str | None,
    max_age_ms: int = DEFAULT_MAX_AGE_MS,
    now: float | None = None,
) -> Path | None:
    """Return the newest video file in *directory* modified within *max_age_ms*.

    *now* is epoch seconds (defaults to the current time). Returns None when
    the directory is missing, unreadable or holds no recent video file.
    """
    if not directory:
        return None
    directory = Path(directory)
    if not directory.is_dir():
        return None

    now = time.time() if now is None else now
    candidates: list[tuple[float, Path]] = []

    try:
        entries = list(directory.iterdir())
    except OSError as e:
        logger.warning("Failed to scan %s for replay buffer files: %s", directory, e)
        return None

    for entry in entries:
        if entry.suffix.lower() not in VIDEO_EXTENSIONS:
            continue
        try:
            stat = entry.stat()
        except OSError:
            # Deleted or rotated between listing and stat.
            continue
        if not entry.is_file():
            continue
        if (now - stat.st_mtime) * 1000 < max_age_ms:
            candidates.append((stat.st_mtime, entry))

    if not candidates:
        return None

    candidates.sort(key=lambda c: c[0], reverse=True)
    return candidates[0][1]


def select_source(
    primary: Path | str | None,
    directory: Path | str | None,
    max_age_ms: int = DEFAULT_MAX_AGE_MS,
) -> tuple[Path | None, str]:
    """Pick the buffer file to trim and say where it came from.

    The save-event path wins whenever it exists on disk; the directory scan
    is only consulted without it. Returns ``(path, "event" | "discovery")``
    or ``(None, "none")``.
    """
    if primary and Path(primary).is_file():
        return Path(primary), "event"

    latest = find_latest(directory, max_age_ms)
    if latest is not None:
        logger.info("Using latest replay buffer file from directory scan: %s", latest)
        return latest, "discovery"

    return None, "none"
