"""
HTTP Surface
============

    GET  /                 plain-text banner
    POST /dub              multipart upload, form field "video"; runs the
                           whole pipeline inside the request
    GET  /download/<file>  finished <job_id>.dub.mp4 outputs only

Each request runs its own pipeline; serve with a threaded server so one
long job does not block others.
"""

import logging
from typing import Optional

from flask import Flask, jsonify, request, send_file
from werkzeug.exceptions import InternalServerError, RequestEntityTooLarge

from quickdub.config import DubConfig
from quickdub.errors import excerpt
from quickdub.orchestrator import PipelineOrchestrator, create_orchestrator


logger = logging.getLogger(__name__)

BANNER = 'QuickDub up. POST /dub with form field "video"'


def create_app(config: DubConfig, orchestrator: Optional[PipelineOrchestrator] = None) -> Flask:
    """Build the Flask app around a (shared) orchestrator"""
    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = config.max_upload_bytes
    app.config["SEND_FILE_MAX_AGE_DEFAULT"] = 0

    orchestrator = orchestrator or create_orchestrator(config)
    app.extensions["quickdub"] = orchestrator
    limit = config.runner.diagnostic_limit

    @app.errorhandler(RequestEntityTooLarge)
    def _handle_request_too_large(_: RequestEntityTooLarge):
        return jsonify({
            "error": "Upload too large",
            "detail": f"Max allowed is {config.server.max_upload_mb} MB.",
        }), 413

    @app.errorhandler(InternalServerError)
    def _handle_server_error(e: InternalServerError):
        original = getattr(e, "original_exception", None) or e
        logger.error("Unhandled error: %s", original, exc_info=original)
        return jsonify({"error": "Server error", "detail": excerpt(str(original), limit)}), 500

    @app.route("/", methods=["GET"])
    def index():
        return BANNER, 200, {"Content-Type": "text/plain; charset=utf-8"}

    @app.route("/dub", methods=["POST"])
    def dub():
        upload = request.files.get("video")
        if upload is None or not upload.filename:
            return jsonify({"error": 'No video file uploaded (field "video")'}), 400

        paths = orchestrator.allocate(upload.filename)
        try:
            upload.save(str(paths.source_video))
        except OSError as e:
            logger.error("[%s] Failed to save upload: %s", paths.job_id, e)
            return jsonify({"error": "Failed to save upload", "detail": excerpt(str(e), limit)}), 500

        logger.info("[%s] Upload received: %s", paths.job_id, paths.source_video.name)
        outcome = orchestrator.run_pipeline(paths.source_video)
        return jsonify(outcome.to_payload()), outcome.http_status

    @app.route("/download/<filename>", methods=["GET"])
    def download(filename: str):
        path = orchestrator.workspace.resolve_download(filename)
        if path is None:
            return "File not found", 404, {"Content-Type": "text/plain; charset=utf-8"}
        return send_file(path, mimetype="video/mp4", as_attachment=True, download_name=path.name)

    return app


def serve(config: DubConfig) -> None:
    """Run the development server, one thread per request"""
    app = create_app(config)
    logger.info("QuickDub listening on %s:%d", config.server.host, config.server.port)
    app.run(host=config.server.host, port=config.server.port, threaded=True)
