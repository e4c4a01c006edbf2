"""Error taxonomy for the clip extraction pipeline."""

from enum import Enum
from pathlib import Path


class ErrorKind(str, Enum):
    INPUT_NOT_FOUND = "input_not_found"
    PROBE_FAILED = "probe_failed"
    NO_VIDEO_STREAM = "no_video_stream"
    TRANSCODE_FAILED = "transcode_failed"
    THUMBNAIL_FAILED = "thumbnail_failed"
    BINARY_UNAVAILABLE = "binary_unavailable"


class PipelineError(Exception):
    """A classified failure from one pipeline step.

    Carries the file the step was working on and whatever the external tool
    reported (stderr, exit code) so a failure can be diagnosed from the log
    alone.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        path: Path | str | None = None,
        stderr: str | None = None,
        returncode: int | None = None,
        timed_out: bool = False,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.path = Path(path) if path is not None else None
        self.stderr = stderr
        self.returncode = returncode
        self.timed_out = timed_out
        self.artifact_id: str | None = None

    def details(self) -> dict:
        """Structured context for log records and JSON responses."""
        return {
            "kind": self.kind.value,
            "message": self.message,
            "path": str(self.path) if self.path else None,
            "returncode": self.returncode,
            "timed_out": self.timed_out,
            "artifact_id": self.artifact_id,
            "stderr": self.stderr[-2000:] if self.stderr else None,
        }

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"
