from __future__ import annotations

import json
from typing import Optional

from flask import Flask, jsonify
from pydantic import ValidationError
from werkzeug.exceptions import HTTPException

from .config import AppSettings, load_settings
from .errors import RaffleError
from .extensions import EXTENSION_KEY, build_services
from .routes.admin import bp as admin_bp
from .routes.config import bp as config_bp
from .routes.health import bp as health_bp
from .routes.oracle import bp as oracle_bp
from .routes.raffle import bp as raffle_bp
from .services.raffle import Clock, system_clock


def create_app(settings: Optional[AppSettings] = None, clock: Clock = system_clock) -> Flask:
    settings = settings or load_settings()
    app = Flask(__name__)
    app.config["SECRET_KEY"] = settings.flask.secret_key
    app.extensions[EXTENSION_KEY] = build_services(settings, clock=clock)

    app.register_blueprint(health_bp)
    app.register_blueprint(config_bp)
    app.register_blueprint(raffle_bp, url_prefix="/raffle")
    app.register_blueprint(oracle_bp, url_prefix="/oracle")
    app.register_blueprint(admin_bp, url_prefix="/admin/api")

    @app.errorhandler(RaffleError)
    def handle_raffle_error(exc: RaffleError):
        app.logger.info("Rejected: %s", exc)
        body = {"error": exc.code, "message": str(exc)}
        body.update(exc.details())
        return jsonify(body), exc.status_code

    @app.errorhandler(ValidationError)
    def handle_validation_error(exc: ValidationError):
        return jsonify({"error": "validation_error", "details": json.loads(exc.json())}), 422

    @app.errorhandler(Exception)
    def handle_error(exc: Exception):
        if isinstance(exc, HTTPException):
            return exc
        app.logger.exception("Unhandled error: %s", exc)
        return jsonify({"error": str(exc)}), 500

    return app
