"""Replay buffer offset reconciliation.

The buffer file holds the last N seconds before OBS flushed it, so its end
lines up with the buffer-saved timestamp. A session-relative time ``t`` is
mapped onto the file like this::

    Session start                                         buffer saved
    |----------------------[ t0 ======= t1 ]-------------------|
                     |<------------ probed duration D -------->|
                     0        in        out                    D

    offset_from_end(t) = (saved_at_ms - (session_started_at_ms + t * 1000)) / 1000
    in  = D - offset_from_end(t0)
    out = D - offset_from_end(t1)

The probed duration is trusted over the configured buffer length because OBS
may have been recording for less than the full window.
"""

import logging
import math

from replayclip.models import BufferOffsets, TrimRequest

logger = logging.getLogger(__name__)

MIN_CLIP_SECONDS = 1.0


def _offset_from_end(request: TrimRequest, session_time: float) -> float:
    absolute_ms = request.session_started_at_ms + session_time * 1000
    return (request.buffer_saved_at_ms - absolute_ms) / 1000


def _raw_window(request: TrimRequest, min_clip_seconds: float) -> BufferOffsets:
    """Use the session-relative window as-is when no duration is known."""
    start = max(request.requested_start, 0.0)
    end = request.requested_end
    if end - start < min_clip_seconds:
        end = start + min_clip_seconds
    return BufferOffsets(
        in_seconds=start,
        out_seconds=end,
        duration_seconds=end - start,
        reconciled=False,
    )


def compute_offsets(
    request: TrimRequest,
    probed_duration: float,
    min_clip_seconds: float = MIN_CLIP_SECONDS,
) -> BufferOffsets:
    """Map the requested session window onto in/out points in the buffer file.

    Always returns ``0 <= in < out <= probed_duration`` for a known duration.
    Windows that fall outside the buffer or are shorter than
    *min_clip_seconds* are widened instead of rejected. An unknown duration
    (0, negative or non-finite) degrades to the raw session window.
    """
    if not probed_duration or probed_duration <= 0 or not math.isfinite(probed_duration):
        logger.warning(
            "[artifact=%s] Buffer duration unknown; using raw session window %.3f-%.3f",
            request.artifact_id, request.requested_start, request.requested_end,
        )
        return _raw_window(request, min_clip_seconds)

    duration = probed_duration
    in_s = duration - _offset_from_end(request, request.requested_start)
    out_s = duration - _offset_from_end(request, request.requested_end)

    if request.requested_end - request.requested_start >= request.buffer_window_seconds:
        in_s = 0.0

    in_s = min(max(in_s, 0.0), duration)
    out_s = min(max(out_s, 0.0), duration)

    if out_s <= in_s:
        # Nothing of the window survived clamping; keep the tail of the buffer.
        logger.warning(
            "[artifact=%s] Requested window %.3f-%.3f lies outside the buffer; "
            "using the last %.1fs",
            request.artifact_id, request.requested_start, request.requested_end,
            min_clip_seconds,
        )
        out_s = duration
        in_s = max(duration - min_clip_seconds, 0.0)
    elif out_s - in_s < min_clip_seconds:
        out_s = min(in_s + min_clip_seconds, duration)
        in_s = max(out_s - min_clip_seconds, 0.0)

    return BufferOffsets(
        in_seconds=in_s,
        out_seconds=out_s,
        duration_seconds=out_s - in_s,
    )


def session_time_of(request: TrimRequest, offsets: BufferOffsets, probed_duration: float) -> float:
    """Session-relative second at which the trimmed clip starts."""
    if not offsets.reconciled:
        return offsets.in_seconds
    buffer_start_ms = request.buffer_saved_at_ms - probed_duration * 1000
    return (buffer_start_ms + offsets.in_seconds * 1000 - request.session_started_at_ms) / 1000
