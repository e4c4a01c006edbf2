"""Tests for the extraction orchestrator."""

from dataclasses import replace
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from conftest import make_metadata
from replayclip.engine import Stage, extract_and_deliver, extract_clip, run_pipeline
from replayclip.errors import ErrorKind, PipelineError


@pytest.fixture
def clip_path(trim_request) -> Path:
    return trim_request.session_dir / "clips" / "clip-1.mp4"


@pytest.fixture
def mocked_tools(trim_request, clip_path):
    """Patch every external step with a successful stand-in."""
    thumb = trim_request.session_dir / "thumbnails" / "clip-1.jpg"
    with patch("replayclip.engine.ffutil.probe") as probe, \
            patch("replayclip.engine.trim") as trim, \
            patch("replayclip.engine.thumbnail_at_midpoint") as thumbnail, \
            patch("replayclip.engine.thumbnail_strip") as strip:
        probe.side_effect = [make_metadata(300.0), make_metadata(30.0)]
        trim.return_value = clip_path
        thumbnail.return_value = thumb
        strip.return_value = []
        yield MagicMock(probe=probe, trim=trim, thumbnail=thumbnail, strip=strip, thumb=thumb)


class TestRunPipeline:
    def test_success(self, trim_request, config, mocked_tools, clip_path):
        outcome = run_pipeline(trim_request, config)

        assert outcome.ok
        assert outcome.stage is Stage.DONE
        result = outcome.result
        assert result.clip_path == clip_path
        assert result.thumbnail_path == mocked_tools.thumb
        assert result.duration_seconds == pytest.approx(30.0)
        assert result.trimmed_start_time == pytest.approx(100.0)
        assert result.output_format == "mp4"
        assert result.video_codec == "libx264"
        assert result.audio_codec == "aac"
        assert result.metadata.duration == 30.0

        offsets = mocked_tools.trim.call_args[0][1]
        assert offsets.in_seconds == pytest.approx(100.0)
        assert offsets.out_seconds == pytest.approx(130.0)
        mocked_tools.strip.assert_not_called()

    def test_progress_stages(self, trim_request, config, mocked_tools):
        seen = []
        run_pipeline(trim_request, config, on_progress=lambda stage, frac: seen.append(stage))
        assert seen == [
            "probing", "offset_computed", "transcoding", "thumbnail_extracting", "done",
        ]

    def test_thumbnail_failure_keeps_clip(self, trim_request, config, mocked_tools, clip_path):
        mocked_tools.thumbnail.side_effect = PipelineError(
            ErrorKind.THUMBNAIL_FAILED, "frame grab failed", stderr="EOF"
        )
        outcome = run_pipeline(trim_request, config)
        assert outcome.ok
        assert outcome.result.clip_path == clip_path
        assert outcome.result.thumbnail_path is None

    def test_thumbnail_uses_encoded_clip_length(self, trim_request, config, mocked_tools):
        # Unknown source duration: the raw 30s window is requested, but only 12s came out.
        mocked_tools.probe.side_effect = [make_metadata(0.0), make_metadata(12.0)]
        outcome = run_pipeline(trim_request, config)
        assert outcome.result.duration_seconds == pytest.approx(12.0)
        assert mocked_tools.thumbnail.call_args[0][1] == pytest.approx(12.0)

    def test_clip_length_falls_back_to_window(self, trim_request, config, mocked_tools):
        mocked_tools.probe.side_effect = [make_metadata(300.0), make_metadata(0.0)]
        outcome = run_pipeline(trim_request, config)
        assert outcome.result.duration_seconds == pytest.approx(30.0)
        assert mocked_tools.thumbnail.call_args[0][1] == pytest.approx(30.0)

    def test_strip_when_configured(self, trim_request, config, mocked_tools):
        strip = [Path("strip_001.jpg"), Path("strip_002.jpg")]
        mocked_tools.strip.return_value = strip
        outcome = run_pipeline(trim_request, replace(config, thumbnail_strip_count=2))
        assert outcome.result.strip_paths == strip
        assert mocked_tools.strip.call_args[0][3] == 2

    def test_no_video_stream_stops_before_trim(self, trim_request, config, mocked_tools):
        mocked_tools.probe.side_effect = PipelineError(
            ErrorKind.NO_VIDEO_STREAM, "No video stream found", path=trim_request.source_path
        )
        outcome = run_pipeline(trim_request, config)
        assert not outcome.ok
        assert outcome.stage is Stage.PROBING
        assert outcome.error.kind is ErrorKind.NO_VIDEO_STREAM
        assert outcome.error.artifact_id == "clip-1"
        mocked_tools.trim.assert_not_called()

    def test_transcode_failure(self, trim_request, config, mocked_tools):
        mocked_tools.trim.side_effect = PipelineError(
            ErrorKind.TRANSCODE_FAILED, "ffmpeg trim failed (rc=1)", stderr="boom", returncode=1
        )
        outcome = run_pipeline(trim_request, config)
        assert outcome.stage is Stage.TRANSCODING
        assert outcome.error.stderr == "boom"
        mocked_tools.thumbnail.assert_not_called()

    def test_unexpected_exception_is_classified(self, trim_request, config, mocked_tools):
        mocked_tools.trim.side_effect = OSError("disk full")
        outcome = run_pipeline(trim_request, config)
        assert outcome.error.kind is ErrorKind.TRANSCODE_FAILED
        assert "disk full" in str(outcome.error)
        assert isinstance(outcome.error.__cause__, OSError)

    def test_unknown_profile_fails_before_transcode(self, trim_request, config, mocked_tools):
        outcome = run_pipeline(replace(trim_request, profile="nope"), config)
        assert outcome.error.kind is ErrorKind.TRANSCODE_FAILED
        mocked_tools.trim.assert_not_called()


class TestExtractClip:
    def test_returns_result(self, trim_request, config, mocked_tools, clip_path):
        assert extract_clip(trim_request, config).clip_path == clip_path

    def test_returns_none_and_logs(self, trim_request, config, mocked_tools, caplog):
        mocked_tools.probe.side_effect = PipelineError(
            ErrorKind.PROBE_FAILED, "ffprobe failed (rc=1)", stderr="moov atom not found", returncode=1
        )
        with caplog.at_level("ERROR", logger="replayclip.engine"):
            assert extract_clip(trim_request, config) is None
        message = caplog.records[-1].getMessage()
        assert "clip-1" in message
        assert "moov atom not found" in message
        assert "buffer_saved_at_ms=300000" in message


class TestExtractAndDeliver:
    def test_delivers_notice(self, trim_request, config, mocked_tools):
        consumer = MagicMock()
        notice = extract_and_deliver(trim_request, consumer, config)
        consumer.assert_called_once_with(notice)
        assert notice.artifact_id == "clip-1"
        assert notice.session_id == "abc123"
        assert notice.result is not None

    def test_delivers_empty_notice_on_failure(self, trim_request, config, mocked_tools):
        mocked_tools.probe.side_effect = PipelineError(ErrorKind.PROBE_FAILED, "bad")
        consumer = MagicMock()
        notice = extract_and_deliver(trim_request, consumer, config)
        consumer.assert_called_once()
        assert notice.result is None
        assert notice.requested_start == 100.0

    def test_discards_stale_result(self, trim_request, config, mocked_tools):
        consumer = MagicMock()
        assert extract_and_deliver(trim_request, consumer, config, is_current=lambda: False) is None
        consumer.assert_not_called()

    def test_consumer_error_does_not_propagate(self, trim_request, config, mocked_tools):
        consumer = MagicMock(side_effect=RuntimeError("ui closed"))
        notice = extract_and_deliver(trim_request, consumer, config)
        assert notice is not None
