"""Orchestrator: runs one best-effort clip extraction per request."""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Protocol

from replayclip import ffutil
from replayclip.analyzers.offsets import compute_offsets, session_time_of
from replayclip.config import PipelineConfig
from replayclip.editors.thumbnail import (
    thumbnail_at_midpoint,
    thumbnail_output_path,
    thumbnail_strip,
)
from replayclip.editors.trim import trim
from replayclip.errors import ErrorKind, PipelineError
from replayclip.models import ExtractionNotice, TrimRequest, TrimResult
from replayclip.profiles import resolve_profile

logger = logging.getLogger(__name__)


class Stage(str, Enum):
    PROBING = "probing"
    OFFSET_COMPUTED = "offset_computed"
    TRANSCODING = "transcoding"
    THUMBNAIL_EXTRACTING = "thumbnail_extracting"
    DONE = "done"
    FAILED = "failed"


# Kind assigned to unexpected exceptions, by the stage they escaped from.
_STAGE_FAILURE_KIND = {
    Stage.PROBING: ErrorKind.PROBE_FAILED,
    Stage.OFFSET_COMPUTED: ErrorKind.TRANSCODE_FAILED,
    Stage.TRANSCODING: ErrorKind.TRANSCODE_FAILED,
    Stage.THUMBNAIL_EXTRACTING: ErrorKind.THUMBNAIL_FAILED,
}


@dataclass
class ExtractionOutcome:
    """Either a result or the error that stopped the pipeline, plus the last stage reached."""

    stage: Stage
    result: TrimResult | None = None
    error: PipelineError | None = None

    @property
    def ok(self) -> bool:
        return self.result is not None


class ResultConsumer(Protocol):
    def __call__(self, notice: ExtractionNotice) -> None: ...


def _classify(exc: Exception, stage: Stage, request: TrimRequest) -> PipelineError:
    if isinstance(exc, PipelineError):
        error = exc
    else:
        error = PipelineError(
            _STAGE_FAILURE_KIND.get(stage, ErrorKind.TRANSCODE_FAILED),
            f"Unexpected {type(exc).__name__} while {stage.value}: {exc}",
            path=request.source_path,
        )
        error.__cause__ = exc
    error.artifact_id = request.artifact_id
    return error


def run_pipeline(
    request: TrimRequest,
    config: PipelineConfig,
    on_progress: Callable[[str, float], None] | None = None,
) -> ExtractionOutcome:
    """Probe, reconcile offsets, transcode and thumbnail one clip.

    Never raises: every failure comes back as ``outcome.error`` with the stage
    it happened in. A thumbnail failure does not fail the outcome; the clip is
    returned with ``thumbnail_path=None``.

    Args:
        request: The clip to extract.
        config: Process-wide tool configuration.
        on_progress: Optional callback(stage_name, fraction_complete).
    """

    def _progress(stage: Stage, frac: float) -> None:
        if on_progress:
            on_progress(stage.value, frac)

    stage = Stage.PROBING
    try:
        _progress(stage, 0.0)
        source_meta = ffutil.probe(request.source_path, config)
        logger.info(
            "[artifact=%s] Buffer %s: %.3fs %sx%s %s",
            request.artifact_id, request.source_path, source_meta.duration,
            source_meta.width, source_meta.height, source_meta.codec_name,
        )

        offsets = compute_offsets(request, source_meta.duration, config.min_clip_seconds)
        stage = Stage.OFFSET_COMPUTED
        _progress(stage, 0.15)
        logger.info(
            "[artifact=%s] Offsets in=%.3f out=%.3f (%.3fs, reconciled=%s)",
            request.artifact_id, offsets.in_seconds, offsets.out_seconds,
            offsets.duration_seconds, offsets.reconciled,
        )

        profile = resolve_profile(request.output_format, request.profile)
        stage = Stage.TRANSCODING
        _progress(stage, 0.2)
        clip_path = trim(
            request.source_path, offsets, profile,
            request.session_dir, request.artifact_id, config,
        )
        clip_meta = ffutil.probe(clip_path, config)
        # The encoded clip can be shorter than the window when the source length was unknown.
        clip_seconds = clip_meta.duration
        if not (clip_seconds > 0 and math.isfinite(clip_seconds)):
            clip_seconds = offsets.duration_seconds

        stage = Stage.THUMBNAIL_EXTRACTING
        _progress(stage, 0.85)
        thumbnail_path = None
        strip_paths = []
        try:
            thumbnail_path = thumbnail_at_midpoint(
                clip_path,
                clip_seconds,
                thumbnail_output_path(request.session_dir, request.artifact_id),
                config,
            )
            if config.thumbnail_strip_count > 0:
                strip_paths = thumbnail_strip(
                    clip_path,
                    clip_seconds,
                    Path(request.session_dir) / "thumbnails" / request.artifact_id,
                    config.thumbnail_strip_count,
                    config,
                )
        except Exception as e:
            error = _classify(e, stage, request)
            logger.warning(
                "[artifact=%s] Thumbnail extraction failed; keeping clip %s without it: %s",
                request.artifact_id, clip_path, error,
                extra={"pipeline_error": error.details()},
            )

        result = TrimResult(
            clip_path=clip_path,
            thumbnail_path=thumbnail_path,
            duration_seconds=clip_seconds,
            output_format=profile.format,
            video_codec=profile.video_codec,
            audio_codec=profile.audio_codec,
            metadata=clip_meta,
            trimmed_start_time=session_time_of(request, offsets, source_meta.duration),
            strip_paths=strip_paths,
        )
    except Exception as e:
        _progress(Stage.FAILED, 1.0)
        return ExtractionOutcome(stage=stage, error=_classify(e, stage, request))

    _progress(Stage.DONE, 1.0)
    return ExtractionOutcome(stage=Stage.DONE, result=result)


def extract_clip(request: TrimRequest, config: PipelineConfig) -> TrimResult | None:
    """Best-effort extraction: the result, or None after logging why not.

    On None the caller should carry on with the untrimmed buffer path.
    """
    logger.info(
        "[artifact=%s] Starting clip trim: source=%s window=%.3f-%.3f session_dir=%s",
        request.artifact_id, request.source_path,
        request.requested_start, request.requested_end, request.session_dir,
    )
    outcome = run_pipeline(request, config)
    if outcome.ok:
        logger.info(
            "[artifact=%s] Clip trimmed: %s (%.3fs) thumbnail=%s",
            request.artifact_id, outcome.result.clip_path,
            outcome.result.duration_seconds, outcome.result.thumbnail_path,
        )
        return outcome.result

    error = outcome.error
    logger.error(
        "[artifact=%s] Clip trimming failed at %s: %s | source=%s session_dir=%s "
        "session_started_at_ms=%s buffer_saved_at_ms=%s window=%.3f-%.3f rc=%s stderr=%s",
        request.artifact_id, outcome.stage.value, error,
        request.source_path, request.session_dir,
        request.session_started_at_ms, request.buffer_saved_at_ms,
        request.requested_start, request.requested_end,
        error.returncode, (error.stderr or "").strip()[-500:],
        extra={"pipeline_error": error.details()},
    )
    return None


def extract_and_deliver(
    request: TrimRequest,
    consumer: ResultConsumer,
    config: PipelineConfig,
    is_current: Callable[[], bool] | None = None,
) -> ExtractionNotice | None:
    """Extract, then hand the (possibly empty) result to *consumer*.

    *is_current* is checked after extraction; when it returns False the
    session has ended or been reset and the result is dropped. Returns the
    notice that was delivered, or None if it was discarded.
    """
    result = extract_clip(request, config)

    if is_current is not None and not is_current():
        logger.info(
            "[artifact=%s] Session %s no longer active; discarding extraction result",
            request.artifact_id, request.session_id,
        )
        return None

    notice = ExtractionNotice(
        artifact_id=request.artifact_id,
        session_id=request.session_id,
        requested_start=request.requested_start,
        requested_end=request.requested_end,
        session_started_at_ms=request.session_started_at_ms,
        buffer_saved_at_ms=request.buffer_saved_at_ms,
        result=result,
    )
    try:
        consumer(notice)
    except Exception:
        logger.exception("[artifact=%s] Result consumer raised", request.artifact_id)
    return notice
