"""Shared test fixtures."""

import json
from pathlib import Path

import pytest

from replayclip.config import PipelineConfig
from replayclip.models import TrimRequest, VideoMetadata

FIXTURES_DIR = Path(__file__).parent / "fixtures"

PROBE_JSON = {
    "format": {
        "duration": "300.000000",
        "bit_rate": "6000000",
        "format_name": "mov,mp4,m4a,3gp,3g2,mj2",
    },
    "streams": [
        {
            "codec_type": "video",
            "codec_name": "h264",
            "width": 1280,
            "height": 720,
            "r_frame_rate": "60/1",
            "avg_frame_rate": "60/1",
        },
        {
            "codec_type": "audio",
            "codec_name": "aac",
            "sample_rate": "48000",
        },
    ],
}


@pytest.fixture
def sample_request_path() -> Path:
    return FIXTURES_DIR / "sample_request.json"


@pytest.fixture
def sample_config_path() -> Path:
    return FIXTURES_DIR / "sample_config.json"


@pytest.fixture
def config(tmp_path: Path) -> PipelineConfig:
    return PipelineConfig(session_dir=tmp_path / "sessions")


@pytest.fixture
def buffer_file(tmp_path: Path) -> Path:
    path = tmp_path / "Replay 2025-01-01 12-00-00.mp4"
    path.write_bytes(b"not really a video")
    return path


@pytest.fixture
def trim_request(tmp_path: Path, buffer_file: Path) -> TrimRequest:
    return TrimRequest(
        source_path=buffer_file,
        session_dir=tmp_path / "sessions" / "abc123",
        artifact_id="clip-1",
        requested_start=100.0,
        requested_end=130.0,
        session_started_at_ms=0,
        buffer_saved_at_ms=300_000,
        buffer_window_seconds=300,
        session_id="abc123",
    )


def make_metadata(duration: float = 300.0) -> VideoMetadata:
    return VideoMetadata(
        duration=duration,
        width=1280,
        height=720,
        codec_name="h264",
        frame_rate="60/1",
        bitrate_bps=6_000_000,
        container_format="mov,mp4,m4a,3gp,3g2,mj2",
    )


def probe_stdout(data: dict | None = None) -> str:
    return json.dumps(PROBE_JSON if data is None else data)
