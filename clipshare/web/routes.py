"""Web UI routes for ClipShare.

Each browser tab opens a session that owns one UploadPipeline. The page
plays the preview itself and reports playback ticks and pointer gestures
back here, so the range and loop rules live in one place.
"""

import json
import logging
import queue
import time
import uuid

from flask import (
    Blueprint,
    Response,
    abort,
    current_app,
    jsonify,
    render_template,
    request,
    send_file,
)

from clipshare.intake import IntakeError, UnsupportedMediaTypeError
from clipshare.pipeline import InvalidTransitionError, Stage, UploadPipeline
from clipshare.transcode import EngineLoadError

logger = logging.getLogger(__name__)

bp = Blueprint("web", __name__, template_folder="templates")

# In-memory session store: session_id -> session dict
_sessions: dict[str, dict] = {}


def _get_session(session_id: str) -> dict:
    session = _sessions.get(session_id)
    if session is None:
        abort(404)
    session["touched"] = time.monotonic()
    return session


def _close_session(session: dict) -> None:
    session["pipeline"].close()
    session["events"].put(None)  # sentinel


def _expire_idle_sessions(ttl: float) -> None:
    # Tabs that vanished without their pagehide DELETE.
    cutoff = time.monotonic() - ttl
    for session_id, session in list(_sessions.items()):
        if session["touched"] < cutoff and _sessions.pop(session_id, None) is not None:
            logger.info("Expiring idle session %s", session_id)
            _close_session(session)


@bp.errorhandler(InvalidTransitionError)
def invalid_transition(error):
    return jsonify({"error": str(error)}), 409


@bp.errorhandler(EngineLoadError)
def engine_unavailable(error):
    return jsonify({"error": str(error)}), 503


@bp.route("/")
def index():
    return render_template("index.html")


@bp.route("/api/sessions", methods=["POST"])
def create_session():
    config = current_app.config["CLIPSHARE"]
    _expire_idle_sessions(config.session_ttl)
    events: queue.Queue = queue.Queue()

    pipeline = UploadPipeline(
        engine=current_app.config["ENGINE_FACTORY"](config),
        client=current_app.config["CLIENT_FACTORY"](config),
        config=config,
        media_factory=current_app.config["MEDIA_FACTORY"],
        on_change=events.put,
    )
    pipeline.mount()

    session_id = uuid.uuid4().hex[:12]
    _sessions[session_id] = {"pipeline": pipeline, "events": events, "touched": time.monotonic()}
    return jsonify({"session_id": session_id, **pipeline.snapshot()})


@bp.route("/api/sessions/<session_id>")
def session_status(session_id: str):
    return jsonify(_get_session(session_id)["pipeline"].snapshot())


@bp.route("/api/sessions/<session_id>", methods=["DELETE"])
def close_session(session_id: str):
    session = _sessions.pop(session_id, None)
    if session is None:
        abort(404)
    _close_session(session)
    return jsonify({"status": "closed"})


@bp.route("/api/sessions/<session_id>/source", methods=["POST"])
def select_source(session_id: str):
    pipeline: UploadPipeline = _get_session(session_id)["pipeline"]

    if "file" not in request.files:
        return jsonify({"error": "No file provided"}), 400
    f = request.files["file"]
    if not f.filename:
        return jsonify({"error": "Empty filename"}), 400

    media_type = f.mimetype
    if media_type in ("", "application/octet-stream"):
        media_type = None

    try:
        pipeline.select(f.filename, f.read(), media_type=media_type)
    except UnsupportedMediaTypeError as e:
        return jsonify({"error": str(e)}), 415
    except IntakeError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify(pipeline.snapshot())


@bp.route("/api/sessions/<session_id>/source")
def preview_source(session_id: str):
    pipeline: UploadPipeline = _get_session(session_id)["pipeline"]
    source = pipeline.source
    if source is None or source.released:
        return jsonify({"error": "No source selected"}), 404
    return send_file(source.path, mimetype=source.media_type, conditional=True)


@bp.route("/api/sessions/<session_id>/timeline", methods=["POST"])
def timeline_event(session_id: str):
    pipeline: UploadPipeline = _get_session(session_id)["pipeline"]
    body = request.get_json() or {}
    event = body.get("event")

    with pipeline.lock:
        if event == "resize" or event == "up":
            controls = pipeline.timeline
            if controls is None:
                return jsonify({"error": "No source selected"}), 409
        else:
            controls = pipeline.trim_controls()

        try:
            if "width" in body:
                controls.resize(float(body["width"]))
            x = float(body.get("x", 0.0))
            if event == "down":
                controls.pointer_down(body.get("target", "body"), x)
            elif event == "move":
                controls.pointer_move(x)
            elif event == "up":
                controls.pointer_up()
            elif event != "resize":
                return jsonify({"error": f"Unknown timeline event: {event!r}"}), 400
        except (TypeError, ValueError) as e:
            return jsonify({"error": str(e)}), 400

        return jsonify(pipeline.snapshot())


@bp.route("/api/sessions/<session_id>/range", methods=["POST"])
def edit_range(session_id: str):
    pipeline: UploadPipeline = _get_session(session_id)["pipeline"]
    body = request.get_json() or {}

    with pipeline.lock:
        controls = pipeline.trim_controls()
        applied = {}
        if "start" in body:
            applied["start"] = controls.set_start_text(str(body["start"]))
        if "end" in body:
            applied["end"] = controls.set_end_text(str(body["end"]))
        return jsonify({"applied": applied, **pipeline.snapshot()})


@bp.route("/api/sessions/<session_id>/playback", methods=["POST"])
def playback_control(session_id: str):
    pipeline: UploadPipeline = _get_session(session_id)["pipeline"]
    body = request.get_json() or {}
    action = body.get("action")

    with pipeline.lock:
        playback = pipeline.playback
        if playback is None:
            return jsonify({"error": "No source selected"}), 409
        try:
            if action == "tick":
                playback.media.current_time = float(body["time"])
                playback.on_time_update()
            elif action == "toggle":
                playback.toggle_play()
            elif action == "seek":
                playback.seek(float(body["time"]))
            elif action == "volume":
                playback.set_volume(float(body["volume"]))
            elif action == "mute":
                playback.set_muted(bool(body.get("muted", True)))
            else:
                return jsonify({"error": f"Unknown playback action: {action!r}"}), 400
        except (KeyError, TypeError, ValueError) as e:
            return jsonify({"error": f"Invalid playback request: {e}"}), 400

        return jsonify(pipeline.snapshot())


@bp.route("/api/sessions/<session_id>/confirm", methods=["POST"])
def confirm_trim(session_id: str):
    pipeline: UploadPipeline = _get_session(session_id)["pipeline"]
    started = pipeline.confirm_trim()
    return jsonify({"started": started, **pipeline.snapshot()})


@bp.route("/api/sessions/<session_id>/metadata", methods=["POST"])
def confirm_metadata(session_id: str):
    pipeline: UploadPipeline = _get_session(session_id)["pipeline"]
    body = request.get_json() or {}

    try:
        pipeline.confirm_metadata(
            title=str(body.get("title", "")),
            is_private=bool(body.get("private", False)),
            category_ids=[str(c) for c in body.get("categories", [])],
        )
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify(pipeline.snapshot())


@bp.route("/api/sessions/<session_id>/retry", methods=["POST"])
def retry(session_id: str):
    pipeline: UploadPipeline = _get_session(session_id)["pipeline"]
    pipeline.retry()
    return jsonify(pipeline.snapshot())


@bp.route("/api/sessions/<session_id>/reset", methods=["POST"])
def reset(session_id: str):
    pipeline: UploadPipeline = _get_session(session_id)["pipeline"]
    pipeline.reset()
    return jsonify(pipeline.snapshot())


@bp.route("/api/sessions/<session_id>/events")
def event_stream(session_id: str):
    session = _get_session(session_id)
    q: queue.Queue = session["events"]

    def generate():
        while True:
            try:
                msg = q.get(timeout=120)
            except queue.Empty:
                yield "data: {\"error\": \"timeout\"}\n\n"
                break
            if msg is None:
                yield f"data: {json.dumps({'stage': 'closed'})}\n\n"
                break
            yield f"data: {json.dumps(msg)}\n\n"
            if msg["stage"] == Stage.SUCCEEDED.value:
                break

    return Response(generate(), mimetype="text/event-stream")
