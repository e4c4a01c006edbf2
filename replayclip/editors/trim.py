"""Clip transcoder: cuts the computed span out of the buffer and re-encodes it."""

import logging
import re
from pathlib import Path

from replayclip import ffutil
from replayclip.config import PipelineConfig
from replayclip.errors import ErrorKind, PipelineError
from replayclip.models import BufferOffsets
from replayclip.profiles import OutputProfile

logger = logging.getLogger(__name__)

# Encoder and muxer failures that can still leave ffmpeg with exit code 0.
# Decoder warnings (corrupt packets at the buffer start) are not fatal.
_INCOMPATIBLE = re.compile(
    r"Unknown encoder"
    r"|Encoder not found"
    r"|Could not write header"
    r"|not currently supported in container"
    r"|Could not find tag for codec"
    r"|Error (?:while )?opening (?:output stream|encoder)",
    re.IGNORECASE,
)


def clip_output_path(session_dir: Path, artifact_id: str, output_format: str) -> Path:
    """Deterministic clip location; the same artifact always maps to the same file."""
    return Path(session_dir) / "clips" / f"{artifact_id}.{output_format}"


def trim(
    source_path: Path,
    offsets: BufferOffsets,
    profile: OutputProfile,
    session_dir: Path,
    artifact_id: str,
    config: PipelineConfig,
) -> Path:
    """Re-encode ``[offsets.in_seconds, offsets.out_seconds)`` of *source_path*.

    Overwrites any earlier output for *artifact_id*. Raises PipelineError
    (TRANSCODE_FAILED or BINARY_UNAVAILABLE) with ffmpeg's stderr attached.
    """
    output_path = clip_output_path(session_dir, artifact_id, profile.format)
    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise PipelineError(
            ErrorKind.TRANSCODE_FAILED,
            f"Failed to create output directory {output_path.parent}: {e}",
            path=output_path.parent,
        ) from e

    duration = offsets.out_seconds - offsets.in_seconds
    cmd = ffutil.trim_command(
        config.ffmpeg_path,
        source_path,
        output_path,
        start=offsets.in_seconds,
        duration=duration,
        video_codec=profile.video_codec,
        audio_codec=profile.audio_codec,
        extra_options=list(profile.options),
    )

    logger.info(
        "[artifact=%s] Trimming %s [%.3f, %.3f) -> %s (%s)",
        artifact_id, source_path, offsets.in_seconds, offsets.out_seconds,
        output_path, profile.name,
    )
    result = ffutil.run_tool(
        cmd,
        config.transcode_timeout(duration),
        ErrorKind.TRANSCODE_FAILED,
        source_path,
    )

    stderr = result.stderr or ""
    if result.returncode != 0:
        raise PipelineError(
            ErrorKind.TRANSCODE_FAILED,
            f"ffmpeg trim failed (rc={result.returncode})",
            path=source_path,
            stderr=stderr,
            returncode=result.returncode,
        )

    match = _INCOMPATIBLE.search(stderr)
    if match:
        raise PipelineError(
            ErrorKind.TRANSCODE_FAILED,
            f"ffmpeg reported an incompatibility: {match.group(0)}",
            path=source_path,
            stderr=stderr,
            returncode=result.returncode,
        )

    if not output_path.exists() or output_path.stat().st_size == 0:
        raise PipelineError(
            ErrorKind.TRANSCODE_FAILED,
            f"ffmpeg exited cleanly but produced no output at {output_path}",
            path=source_path,
            stderr=stderr,
            returncode=result.returncode,
        )

    return output_path
