"""Shared data types used across the extraction pipeline."""

from dataclasses import dataclass, field
from pathlib import Path


@dataclass(frozen=True)
class VideoMetadata:
    """Metadata extracted from a media file via ffprobe."""

    duration: float
    width: int
    height: int
    codec_name: str
    frame_rate: str
    bitrate_bps: int
    container_format: str

    @property
    def fps(self) -> float:
        num, _, den = self.frame_rate.partition("/")
        try:
            return float(num) / float(den or 1)
        except (ValueError, ZeroDivisionError):
            return 0.0


@dataclass
class TrimRequest:
    """One clip to cut out of a saved replay buffer.

    ``requested_start``/``requested_end`` are seconds since the session began;
    the two ``*_ms`` fields are epoch milliseconds.
    """

    source_path: Path
    session_dir: Path
    artifact_id: str
    requested_start: float
    requested_end: float
    session_started_at_ms: int
    buffer_saved_at_ms: int
    buffer_window_seconds: float = 300.0
    output_format: str = "mp4"
    session_id: str | None = None
    profile: str | None = None


@dataclass(frozen=True)
class BufferOffsets:
    """In/out points inside the physical buffer file, in seconds."""

    in_seconds: float
    out_seconds: float
    duration_seconds: float
    reconciled: bool = True


@dataclass
class TrimResult:
    clip_path: Path
    thumbnail_path: Path | None
    duration_seconds: float
    output_format: str
    video_codec: str
    audio_codec: str
    metadata: VideoMetadata
    trimmed_start_time: float = 0.0
    strip_paths: list[Path] = field(default_factory=list)


@dataclass
class ExtractionNotice:
    """What a result consumer receives once an extraction settles."""

    artifact_id: str
    session_id: str | None
    requested_start: float
    requested_end: float
    session_started_at_ms: int
    buffer_saved_at_ms: int
    result: TrimResult | None = None
