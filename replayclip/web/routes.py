"""HTTP routes: submit extractions, poll them, fetch the outputs."""

import logging
import threading
from pathlib import Path

from flask import Blueprint, current_app, jsonify, request, send_file

from replayclip import ffutil
from replayclip.analyzers.discovery import select_source
from replayclip.config import build_request
from replayclip.engine import extract_and_deliver
from replayclip.models import ExtractionNotice

logger = logging.getLogger(__name__)

bp = Blueprint("extractions", __name__)

# In-memory job store: artifact_id -> job dict
_jobs: dict[str, dict] = {}
_jobs_lock = threading.Lock()

_REQUIRED = ("requested_start", "requested_end", "session_started_at_ms", "buffer_saved_at_ms")


def _serialize(notice: ExtractionNotice) -> dict | None:
    result = notice.result
    if result is None:
        return None
    return {
        "clip_path": str(result.clip_path),
        "thumbnail_path": str(result.thumbnail_path) if result.thumbnail_path else None,
        "duration_seconds": result.duration_seconds,
        "trimmed_start_time": result.trimmed_start_time,
        "output_format": result.output_format,
        "video_codec": result.video_codec,
        "audio_codec": result.audio_codec,
        "width": result.metadata.width,
        "height": result.metadata.height,
    }


@bp.route("/api/health")
def health():
    return jsonify(ffutil.check_tools(current_app.config["PIPELINE"]))


@bp.route("/api/extractions", methods=["POST"])
def start_extraction():
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        return jsonify({"error": "Expected a JSON object"}), 400

    missing = [k for k in _REQUIRED if k not in body]
    if missing:
        return jsonify({"error": f"Missing fields: {', '.join(missing)}"}), 400

    config = current_app.config["PIPELINE"]
    source, origin = select_source(
        body.get("source_path"), config.replay_output_dir, config.discovery_max_age_ms
    )
    if source is None:
        return jsonify({"error": "No replay buffer file available"}), 422

    try:
        trim_request = build_request(body, config, source_path=source)
    except (TypeError, ValueError) as e:
        return jsonify({"error": str(e)}), 400

    # Outputs from HTTP clients stay under the configured session root.
    session_root = Path(config.session_dir).resolve()
    if not Path(trim_request.session_dir).resolve().is_relative_to(session_root):
        return jsonify({"error": "session_dir must be inside the session root"}), 400

    artifact_id = trim_request.artifact_id
    with _jobs_lock:
        existing = _jobs.get(artifact_id)
        if existing and existing["status"] == "processing":
            return jsonify({"error": "Extraction already in progress"}), 409
        job = {
            "session_id": trim_request.session_id,
            "source_path": str(source),
            "source": origin,
            "status": "processing",
            "result": None,
        }
        _jobs[artifact_id] = job

    def is_current() -> bool:
        with _jobs_lock:
            return _jobs.get(artifact_id) is job

    def deliver(notice: ExtractionNotice) -> None:
        with _jobs_lock:
            job["result"] = _serialize(notice)
            # Extraction failure leaves the raw buffer as the clip.
            job["status"] = "done" if notice.result else "unenriched"

    threading.Thread(
        target=extract_and_deliver,
        args=(trim_request, deliver, config, is_current),
        daemon=True,
    ).start()

    return jsonify({"artifact_id": artifact_id, "status": "started", "source": origin})


def _get_job(artifact_id: str) -> dict | None:
    with _jobs_lock:
        return _jobs.get(artifact_id)


@bp.route("/api/extractions/<artifact_id>/status")
def extraction_status(artifact_id: str):
    job = _get_job(artifact_id)
    if job is None:
        return jsonify({"error": "Extraction not found"}), 404

    resp = {
        "artifact_id": artifact_id,
        "status": job["status"],
        "source": job["source"],
        "source_path": job["source_path"],
    }
    if job["status"] == "done":
        resp["result"] = job["result"]
    return jsonify(resp)


def _send_output(artifact_id: str, key: str):
    job = _get_job(artifact_id)
    if job is None:
        return jsonify({"error": "Extraction not found"}), 404
    if job["status"] != "done":
        return jsonify({"error": "Extraction not complete"}), 409

    path = job["result"].get(key)
    if not path or not Path(path).exists():
        return jsonify({"error": f"No {key.replace('_path', '')} available"}), 404
    return send_file(Path(path).resolve(), as_attachment=False)


@bp.route("/api/extractions/<artifact_id>/clip")
def download_clip(artifact_id: str):
    return _send_output(artifact_id, "clip_path")


@bp.route("/api/extractions/<artifact_id>/thumbnail")
def download_thumbnail(artifact_id: str):
    return _send_output(artifact_id, "thumbnail_path")


@bp.route("/api/sessions/<session_id>/extractions", methods=["DELETE"])
def discard_session(session_id: str):
    """Forget a session's extractions; in-flight results are dropped on arrival."""
    with _jobs_lock:
        ids = [aid for aid, job in _jobs.items() if job["session_id"] == session_id]
        for aid in ids:
            del _jobs[aid]
    logger.info("Discarded %d extraction(s) for session %s", len(ids), session_id)
    return jsonify({"discarded": len(ids)})
