"""Thumbnail extractor: single midpoint frame or an evenly spaced strip."""

from pathlib import Path

from replayclip import ffutil
from replayclip.config import PipelineConfig
from replayclip.errors import ErrorKind, PipelineError

# Distance kept from both ends so a seek never lands on or past EOF.
_EDGE_MARGIN = 0.1


def thumbnail_output_path(session_dir: Path, artifact_id: str) -> Path:
    return Path(session_dir) / "thumbnails" / f"{artifact_id}.jpg"


def midpoint_timestamp(duration: float) -> float:
    """Half the duration, kept strictly inside (0, duration)."""
    if duration <= 0:
        return 0.0
    margin = min(_EDGE_MARGIN, duration / 4)
    return min(max(duration / 2, margin), duration - margin)


def strip_timestamps(duration: float, count: int) -> list[float]:
    if count <= 0 or duration <= 0:
        return []
    interval = duration / (count + 1)
    return [interval * i for i in range(1, count + 1)]


def extract_frame(
    video_path: Path,
    output_path: Path,
    timestamp: float,
    config: PipelineConfig,
) -> Path:
    """Write the frame at *timestamp* to *output_path* as a JPEG."""
    video_path = Path(video_path)
    if not video_path.exists():
        raise PipelineError(
            ErrorKind.THUMBNAIL_FAILED,
            f"Video file not found: {video_path}",
            path=video_path,
        )
    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise PipelineError(
            ErrorKind.THUMBNAIL_FAILED,
            f"Failed to create output directory {output_path.parent}: {e}",
            path=output_path.parent,
        ) from e

    cmd = ffutil.frame_command(
        config.ffmpeg_path,
        video_path,
        output_path,
        timestamp,
        width=config.thumbnail_width,
        quality=config.thumbnail_quality,
    )
    result = ffutil.run_tool(cmd, config.thumbnail_timeout, ErrorKind.THUMBNAIL_FAILED, video_path)

    if result.returncode != 0 or not output_path.exists():
        raise PipelineError(
            ErrorKind.THUMBNAIL_FAILED,
            f"Thumbnail extraction at {timestamp:.3f}s failed (rc={result.returncode})",
            path=video_path,
            stderr=result.stderr,
            returncode=result.returncode,
        )
    return output_path


def thumbnail_at_midpoint(
    clip_path: Path,
    duration_seconds: float,
    output_path: Path,
    config: PipelineConfig,
) -> Path:
    return extract_frame(clip_path, output_path, midpoint_timestamp(duration_seconds), config)


def thumbnail_strip(
    clip_path: Path,
    duration_seconds: float,
    output_dir: Path,
    count: int,
    config: PipelineConfig,
) -> list[Path]:
    """Extract *count* evenly spaced frames (for hover previews)."""
    paths: list[Path] = []
    for i, ts in enumerate(strip_timestamps(duration_seconds, count), 1):
        paths.append(
            extract_frame(clip_path, Path(output_dir) / f"strip_{i:03d}.jpg", ts, config)
        )
    return paths
