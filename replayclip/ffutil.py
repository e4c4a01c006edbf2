"""FFmpeg/ffprobe subprocess helpers."""

import json
import logging
import subprocess
from pathlib import Path

from replayclip.config import PipelineConfig
from replayclip.errors import ErrorKind, PipelineError
from replayclip.models import VideoMetadata

logger = logging.getLogger(__name__)

DEFAULT_FRAME_RATE = "30/1"
DEFAULT_WIDTH = 1920
DEFAULT_HEIGHT = 1080

# Path used by the availability checks; it must never exist.
_MISSING_INPUT = "/nonexistent/replayclip-availability-check.mp4"
_MISSING_BINARY_SIGNATURES = ("not found", "enoent", "cannot find")


def run_tool(
    cmd: list[str],
    timeout: float,
    kind: ErrorKind,
    path: Path | str | None = None,
) -> subprocess.CompletedProcess:
    """Run an external tool with a hard timeout.

    A missing or non-executable binary raises BINARY_UNAVAILABLE. A timeout
    kills the child and raises *kind* with ``timed_out`` set. The caller
    inspects the return code itself.
    """
    logger.debug("Spawning: %s", " ".join(cmd))
    try:
        return subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
    except (FileNotFoundError, PermissionError) as e:
        raise PipelineError(
            ErrorKind.BINARY_UNAVAILABLE,
            f"{cmd[0]} executable not found ({e})",
            path=path,
        ) from e
    except subprocess.TimeoutExpired as e:
        stderr = e.stderr.decode(errors="replace") if isinstance(e.stderr, bytes) else e.stderr
        raise PipelineError(
            kind,
            f"{cmd[0]} timed out after {timeout:g}s and was killed",
            path=path,
            stderr=stderr,
            timed_out=True,
        ) from e


def _number(value, cast=float):
    """Parse an ffprobe numeric field; None for missing, 'N/A' or garbage."""
    if value is None:
        return None
    try:
        return cast(float(value))
    except (TypeError, ValueError, OverflowError):
        return None


def _frame_rate(value) -> str | None:
    if not value or value in ("0/0", "0/1"):
        return None
    return str(value)


def parse_probe_output(data: dict, input_path: Path) -> VideoMetadata:
    """Normalize ffprobe's JSON document into VideoMetadata.

    Duration and bitrate prefer the container value, then the video stream,
    then 0. A duration of 0 means "unknown" and must not be used for offset
    math.
    """
    streams = data.get("streams") or []
    video_stream = next(
        (s for s in streams if s.get("codec_type") == "video"), None
    )
    if video_stream is None:
        raise PipelineError(
            ErrorKind.NO_VIDEO_STREAM,
            f"No video stream found in {input_path} "
            f"(streams: {[s.get('codec_type') for s in streams]})",
            path=input_path,
        )

    fmt = data.get("format") or {}

    duration = _number(fmt.get("duration"))
    if duration is None:
        duration = _number(video_stream.get("duration"))

    bitrate = _number(fmt.get("bit_rate"), int)
    if bitrate is None:
        bitrate = _number(video_stream.get("bit_rate"), int)

    frame_rate = (
        _frame_rate(video_stream.get("r_frame_rate"))
        or _frame_rate(video_stream.get("avg_frame_rate"))
        or DEFAULT_FRAME_RATE
    )

    return VideoMetadata(
        duration=duration or 0.0,
        width=_number(video_stream.get("width"), int) or DEFAULT_WIDTH,
        height=_number(video_stream.get("height"), int) or DEFAULT_HEIGHT,
        codec_name=video_stream.get("codec_name") or "unknown",
        frame_rate=frame_rate,
        bitrate_bps=bitrate or 0,
        container_format=fmt.get("format_name") or "unknown",
    )


def probe(input_path: Path, config: PipelineConfig) -> VideoMetadata:
    """Extract media metadata via ffprobe."""
    input_path = Path(input_path)
    if not input_path.exists():
        raise PipelineError(
            ErrorKind.INPUT_NOT_FOUND,
            f"Input file not found: {input_path}",
            path=input_path,
        )

    cmd = [
        config.ffprobe_path,
        "-v", "error",
        "-print_format", "json",
        "-show_format",
        "-show_streams",
        str(input_path),
    ]
    result = run_tool(cmd, config.probe_timeout, ErrorKind.PROBE_FAILED, input_path)

    if result.returncode != 0:
        raise PipelineError(
            ErrorKind.PROBE_FAILED,
            f"ffprobe failed (rc={result.returncode}) on {input_path}",
            path=input_path,
            stderr=result.stderr,
            returncode=result.returncode,
        )

    try:
        data = json.loads(result.stdout)
    except json.JSONDecodeError as e:
        raise PipelineError(
            ErrorKind.PROBE_FAILED,
            f"Unparseable ffprobe output for {input_path}: {e}",
            path=input_path,
            stderr=result.stderr,
        ) from e

    return parse_probe_output(data, input_path)


def probe_duration(input_path: Path, config: PipelineConfig) -> float:
    return probe(input_path, config).duration


def _looks_like_missing_binary(binary: str, message: str) -> bool:
    message = message.lower()
    name = Path(binary).name.lower()
    return name in message and any(sig in message for sig in _MISSING_BINARY_SIGNATURES)


def _tool_available(binary: str, cmd: list[str], timeout: float) -> bool:
    """Run *cmd* against a nonexistent input and classify the failure.

    Only a failure that names the binary itself as missing counts as
    unavailable; any other error means the tool ran.
    """
    try:
        result = run_tool(cmd, timeout, ErrorKind.PROBE_FAILED)
    except PipelineError as e:
        if e.kind is ErrorKind.BINARY_UNAVAILABLE:
            return False
        return not _looks_like_missing_binary(binary, e.message)
    # Shells that wrap a missing binary exit 127 with a "not found" message.
    return not _looks_like_missing_binary(binary, result.stderr or "")


def is_probe_available(config: PipelineConfig) -> bool:
    cmd = [config.ffprobe_path, "-v", "error", _MISSING_INPUT]
    return _tool_available(config.ffprobe_path, cmd, config.probe_timeout)


def is_transcode_available(config: PipelineConfig) -> bool:
    cmd = [config.ffmpeg_path, "-hide_banner", "-i", _MISSING_INPUT]
    return _tool_available(config.ffmpeg_path, cmd, config.probe_timeout)


def check_tools(config: PipelineConfig) -> dict[str, bool]:
    """Availability of both tools plus an overall ``ready`` flag."""
    ffmpeg_ok = is_transcode_available(config)
    ffprobe_ok = is_probe_available(config)
    return {"ffmpeg": ffmpeg_ok, "ffprobe": ffprobe_ok, "ready": ffmpeg_ok and ffprobe_ok}


def trim_command(
    ffmpeg_path: str,
    input_path: Path,
    output_path: Path,
    start: float,
    duration: float,
    video_codec: str,
    audio_codec: str,
    extra_options: list[str],
) -> list[str]:
    """Seek-then-duration re-encode of one span of *input_path*."""
    return [
        ffmpeg_path, "-y", "-hide_banner",
        "-ss", f"{start:.3f}",
        "-i", str(input_path),
        "-t", f"{duration:.3f}",
        "-c:v", video_codec,
        "-c:a", audio_codec,
        *extra_options,
        str(output_path),
    ]


def frame_command(
    ffmpeg_path: str,
    input_path: Path,
    output_path: Path,
    timestamp: float,
    width: int,
    quality: int,
) -> list[str]:
    """Grab a single scaled frame at *timestamp*."""
    return [
        ffmpeg_path, "-y", "-hide_banner",
        "-ss", f"{timestamp:.3f}",
        "-i", str(input_path),
        "-frames:v", "1",
        "-vf", f"scale={width}:-1",
        "-q:v", str(quality),
        str(output_path),
    ]
