"""
Scriptorium HTTP API

Flask application exposing job creation and status, batch actions,
split operations and the retention sweep.

Usage:
    python web/app.py
    python web/app.py --port 1337 --host 127.0.0.1
"""

from pathlib import Path
from typing import Optional

from flask import Flask, current_app, jsonify
from pydantic import ValidationError

from infra.config import get_storage_root
from infra.llm import BatchNotReadyError, ConfigurationError, InferenceError, InferenceGateway
from infra.pipeline.storage import Library, DocumentNotFoundError
from pipeline.jobs import JobService
from pipeline.state_machine import InvalidTransitionError
from web.config import add_server_arguments


def get_service() -> JobService:
    return current_app.extensions["scriptorium"]


def get_library() -> Library:
    return get_service().library


def register_error_handlers(app: Flask):
    @app.errorhandler(DocumentNotFoundError)
    def not_found(e):
        return jsonify({"error": str(e)}), 404

    @app.errorhandler(InvalidTransitionError)
    def invalid_transition(e):
        return jsonify({"error": str(e)}), 409

    @app.errorhandler(BatchNotReadyError)
    def not_ready(e):
        return jsonify({"error": str(e), "external_state": e.external_state}), 409

    @app.errorhandler(ValidationError)
    def invalid_payload(e):
        return jsonify({"error": str(e)}), 400

    @app.errorhandler(ValueError)
    def bad_request(e):
        return jsonify({"error": str(e)}), 400

    @app.errorhandler(ConfigurationError)
    def misconfigured(e):
        return jsonify({"error": str(e)}), 500

    @app.errorhandler(InferenceError)
    def inference_failed(e):
        return jsonify({"error": f"{type(e).__name__}: {e}"}), 500


def create_app(
    storage_root: Optional[Path] = None,
    library: Optional[Library] = None,
    gateway: Optional[InferenceGateway] = None
):
    """Create and configure Flask app."""
    app = Flask(__name__)
    library = library or Library(storage_root or get_storage_root())
    app.extensions["scriptorium"] = JobService(library, gateway)

    from web.routes.job_routes import job_bp
    from web.routes.batch_routes import batch_bp
    from web.routes.split_routes import split_bp
    from web.routes.cleanup_routes import cleanup_bp

    app.register_blueprint(job_bp)
    app.register_blueprint(batch_bp)
    app.register_blueprint(split_bp)
    app.register_blueprint(cleanup_bp)

    register_error_handlers(app)
    return app


def run_server(app: Flask, host: str, port: int, debug: bool = False):
    library = app.extensions["scriptorium"].library
    print(f"\n🚀 Scriptorium API starting on http://{host}:{port}")
    print(f"📁 Library: {library.storage_root}\n")
    app.run(host=host, port=port, debug=debug)


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Scriptorium HTTP API")
    parser.add_argument("--storage-root", default=None)
    add_server_arguments(parser)
    args = parser.parse_args()

    run_server(create_app(storage_root=args.storage_root), args.host, args.port, args.debug)
