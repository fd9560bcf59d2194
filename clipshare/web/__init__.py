"""Flask application factory for the ClipShare upload UI."""

import tempfile
from pathlib import Path
from typing import Callable

from flask import Flask, jsonify

from clipshare.client import ClipShareClient
from clipshare.config import ClipShareConfig
from clipshare.playback import MediaElement
from clipshare.transcode import TranscodeEngine


def create_app(
    config: ClipShareConfig | None = None,
    engine_factory: Callable[[ClipShareConfig], TranscodeEngine] | None = None,
    client_factory: Callable[[ClipShareConfig], ClipShareClient] | None = None,
    media_factory: Callable[[Path], MediaElement] | None = None,
) -> Flask:
    config = config or ClipShareConfig()
    if config.work_dir is None:
        config.work_dir = Path(tempfile.mkdtemp(prefix="clipshare_"))

    app = Flask(__name__)
    app.config["CLIPSHARE"] = config
    app.config["WORK_DIR"] = config.work_dir
    app.config["MAX_CONTENT_LENGTH"] = config.max_upload_bytes
    app.config["ENGINE_FACTORY"] = engine_factory or TranscodeEngine.from_config
    app.config["CLIENT_FACTORY"] = client_factory or ClipShareClient
    app.config["MEDIA_FACTORY"] = media_factory

    from clipshare.web.routes import bp
    app.register_blueprint(bp)

    @app.errorhandler(413)
    def request_entity_too_large(error):
        return jsonify({"error": "File too large"}), 413

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({"error": "Not found"}), 404

    return app
