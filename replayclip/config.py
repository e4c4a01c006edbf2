"""Process-wide pipeline configuration and JSON request loading."""

import json
import os
import re
import uuid
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Mapping

from dotenv import load_dotenv

from replayclip.models import TrimRequest

SUPPORTED_FORMATS = ("mp4", "webm", "mov")

# Artifact and session ids become path components.
_SAFE_ID = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]{0,127}$")


@dataclass(frozen=True)
class PipelineConfig:
    """Tool paths, defaults and timeouts. Built once at startup, read-only after."""

    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"
    default_output_format: str = "mp4"
    default_profile: str | None = None
    buffer_window_seconds: float = 300.0
    replay_output_dir: Path | None = None
    discovery_max_age_ms: int = 30_000
    session_dir: Path = Path("./sessions")

    probe_timeout: float = 5.0
    thumbnail_timeout: float = 5.0
    transcode_timeout_base: float = 30.0
    transcode_timeout_per_second: float = 3.0
    transcode_timeout_ceiling: float = 600.0

    min_clip_seconds: float = 1.0
    thumbnail_width: int = 640
    thumbnail_quality: int = 5
    thumbnail_strip_count: int = 0

    def __post_init__(self) -> None:
        if self.default_output_format not in SUPPORTED_FORMATS:
            raise ValueError(
                f"Unsupported output format {self.default_output_format!r}; "
                f"expected one of {', '.join(SUPPORTED_FORMATS)}"
            )
        if self.buffer_window_seconds <= 0:
            raise ValueError("buffer_window_seconds must be positive")
        if self.min_clip_seconds <= 0:
            raise ValueError("min_clip_seconds must be positive")

    def transcode_timeout(self, clip_seconds: float) -> float:
        """Timeout for one transcode, proportional to the clip length."""
        budget = self.transcode_timeout_base + self.transcode_timeout_per_second * max(clip_seconds, 0.0)
        return min(budget, self.transcode_timeout_ceiling)


# env var -> (field, parser)
_ENV_FIELDS = {
    "FFMPEG_PATH": ("ffmpeg_path", str),
    "FFPROBE_PATH": ("ffprobe_path", str),
    "CLIP_OUTPUT_FORMAT": ("default_output_format", str),
    "CLIP_OUTPUT_PROFILE": ("default_profile", str),
    "REPLAY_BUFFER_SECONDS": ("buffer_window_seconds", float),
    "OBS_REPLAY_OUTPUT_DIR": ("replay_output_dir", Path),
    "REPLAY_DISCOVERY_MAX_AGE_MS": ("discovery_max_age_ms", int),
    "SESSION_DIR": ("session_dir", Path),
}


def load_config(env: Mapping[str, str] | None = None) -> PipelineConfig:
    """Build the configuration from environment variables.

    Environment variables:
        FFMPEG_PATH / FFPROBE_PATH: tool binaries (default: resolved on PATH)
        CLIP_OUTPUT_FORMAT: mp4, webm or mov (default: mp4)
        CLIP_OUTPUT_PROFILE: named output profile (default: derived from format)
        REPLAY_BUFFER_SECONDS: replay buffer length configured in OBS (default: 300)
        OBS_REPLAY_OUTPUT_DIR: directory scanned when no buffer path is known
        REPLAY_DISCOVERY_MAX_AGE_MS: newest-file age limit for discovery (default: 30000)
        SESSION_DIR: root of per-session output directories (default: ./sessions)

    When *env* is omitted a ``.env`` file is loaded first and ``os.environ`` is read.
    """
    if env is None:
        load_dotenv()
        env = os.environ

    values = {}
    for var, (name, parse) in _ENV_FIELDS.items():
        raw = env.get(var, "").strip()
        if not raw:
            continue
        try:
            values[name] = parse(raw)
        except ValueError as e:
            raise ValueError(f"Invalid value for {var}: {raw!r}") from e

    return PipelineConfig(**values)


def load_config_file(path: str | Path, base: PipelineConfig | None = None) -> PipelineConfig:
    """Load configuration overrides from a JSON file on top of *base*."""
    path = Path(path)
    data = json.loads(path.read_text())

    known = {f.name for f in fields(PipelineConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown config keys: {', '.join(unknown)}")

    for key in ("replay_output_dir", "session_dir"):
        if data.get(key) is not None:
            data[key] = Path(data[key])

    return replace(base or PipelineConfig(), **data)


def load_request(path: str | Path, config: PipelineConfig) -> TrimRequest:
    """Load and validate a trim request from a JSON file."""
    path = Path(path)
    data = json.loads(path.read_text())

    required = ("source_path", "requested_start", "requested_end",
                "session_started_at_ms", "buffer_saved_at_ms")
    missing = [k for k in required if k not in data]
    if missing:
        raise ValueError(f"Request must contain {', '.join(missing)}")

    return build_request(data, config)


def build_request(
    data: Mapping, config: PipelineConfig, source_path: Path | None = None
) -> TrimRequest:
    """Build a TrimRequest from a decoded JSON mapping, filling config defaults.

    *source_path* overrides ``data["source_path"]`` (used when the buffer
    file was located by directory discovery).
    """
    source = source_path or data.get("source_path")
    if not source:
        raise ValueError("source_path is required")

    artifact_id = data.get("artifact_id") or uuid.uuid4().hex
    if not _SAFE_ID.match(artifact_id) or ".." in artifact_id:
        raise ValueError(f"Invalid artifact_id: {artifact_id!r}")

    session_id = data.get("session_id")
    if session_id is not None and (not _SAFE_ID.match(session_id) or ".." in session_id):
        raise ValueError(f"Invalid session_id: {session_id!r}")
    if data.get("session_dir"):
        session_dir = Path(data["session_dir"])
    else:
        session_dir = config.session_dir / (session_id or "default")

    return TrimRequest(
        source_path=Path(source),
        session_dir=session_dir,
        artifact_id=artifact_id,
        requested_start=float(data["requested_start"]),
        requested_end=float(data["requested_end"]),
        session_started_at_ms=int(data["session_started_at_ms"]),
        buffer_saved_at_ms=int(data["buffer_saved_at_ms"]),
        buffer_window_seconds=float(data.get("buffer_window_seconds", config.buffer_window_seconds)),
        output_format=data.get("output_format") or config.default_output_format,
        session_id=session_id,
        profile=data.get("profile") or config.default_profile,
    )
