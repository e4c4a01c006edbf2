"""Tests for the command-line entry point."""

import os
import time
from unittest.mock import patch

import pytest

from conftest import make_metadata
from replayclip.cli import main
from replayclip.engine import ExtractionOutcome, Stage
from replayclip.errors import ErrorKind, PipelineError
from replayclip.models import TrimResult


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for var in ("FFMPEG_PATH", "FFPROBE_PATH", "CLIP_OUTPUT_FORMAT", "CLIP_OUTPUT_PROFILE",
                "REPLAY_BUFFER_SECONDS", "OBS_REPLAY_OUTPUT_DIR",
                "REPLAY_DISCOVERY_MAX_AGE_MS", "SESSION_DIR"):
        monkeypatch.delenv(var, raising=False)
    # keep load_dotenv away from any developer .env
    monkeypatch.chdir(tmp_path)


class TestCheck:
    @patch("replayclip.cli.ffutil.check_tools")
    def test_ready(self, mock_check, capsys):
        mock_check.return_value = {"ffmpeg": True, "ffprobe": True, "ready": True}
        with pytest.raises(SystemExit) as exc:
            main(["check"])
        assert exc.value.code == 0
        assert "ffprobe: ok" in capsys.readouterr().out

    @patch("replayclip.cli.ffutil.check_tools")
    def test_missing(self, mock_check, capsys):
        mock_check.return_value = {"ffmpeg": True, "ffprobe": False, "ready": False}
        with pytest.raises(SystemExit) as exc:
            main(["check"])
        assert exc.value.code == 1
        assert "ffprobe: MISSING" in capsys.readouterr().out


class TestDiscover:
    def test_prints_latest(self, tmp_path, capsys):
        clip = tmp_path / "Replay.mkv"
        clip.write_bytes(b"x")
        main(["discover", str(tmp_path)])
        assert capsys.readouterr().out.strip() == str(clip)

    def test_nothing_found(self, tmp_path):
        old = tmp_path / "Replay.mkv"
        old.write_bytes(b"x")
        stale = time.time() - 3600
        os.utime(old, (stale, stale))
        with pytest.raises(SystemExit) as exc:
            main(["discover", str(tmp_path)])
        assert exc.value.code == 1


class TestExtract:
    def test_requires_window(self, buffer_file):
        with pytest.raises(SystemExit) as exc:
            main(["extract", str(buffer_file), "--start", "1"])
        assert exc.value.code == 1

    @patch("replayclip.cli.run_pipeline")
    def test_builds_request(self, mock_run, buffer_file, tmp_path, capsys):
        clip = tmp_path / "clips" / "c.mp4"
        mock_run.return_value = ExtractionOutcome(
            stage=Stage.DONE,
            result=TrimResult(
                clip_path=clip,
                thumbnail_path=None,
                duration_seconds=30.0,
                output_format="webm",
                video_codec="libvpx-vp9",
                audio_codec="libopus",
                metadata=make_metadata(30.0),
                trimmed_start_time=100.0,
            ),
        )
        main([
            "extract", str(buffer_file),
            "--start", "100", "--end", "130",
            "--session-started-at", "0", "--saved-at", "300000",
            "--artifact-id", "c", "--format", "webm",
        ])

        req = mock_run.call_args[0][0]
        assert req.source_path == buffer_file
        assert req.artifact_id == "c"
        assert req.output_format == "webm"
        assert req.buffer_saved_at_ms == 300_000
        assert f"Clip: {clip}" in capsys.readouterr().out

    @patch("replayclip.cli.run_pipeline")
    def test_failure_exits_non_zero(self, mock_run, sample_request_path, capsys):
        mock_run.return_value = ExtractionOutcome(
            stage=Stage.PROBING,
            error=PipelineError(ErrorKind.INPUT_NOT_FOUND, "Input file not found"),
        )
        with pytest.raises(SystemExit) as exc:
            main(["extract", "--request", str(sample_request_path)])
        assert exc.value.code == 1
        assert "failed at probing" in capsys.readouterr().err
