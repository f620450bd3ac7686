"""Flask application exposing the menu tree over HTTP."""

import os
import time
from datetime import UTC, datetime
from typing import Any

from flask import Flask, g, request
from loguru import logger

from menutree.config import RESOURCE_SERVICE_URL_ENV, resolve_database_path
from menutree.core.resources.resolver import HttpResourceResolver
from menutree.web.helpers import close_db, register_error_handlers
from menutree.web.routes import admin_bp, public_bp

__all__ = ["create_app"]


def _default_resolver() -> HttpResourceResolver | None:
    if os.environ.get(RESOURCE_SERVICE_URL_ENV):
        return HttpResourceResolver()
    return None


def create_app(config: dict[str, Any] | None = None) -> Flask:
    """Factory for the WSGI application.

    Recognised config keys:
        DATABASE: Path of the SQLite file (default: the data directory).
        CLOCK: Zero-argument callable returning the current aware datetime.
        RESOURCE_RESOLVER: Resolver for resource links, or None to skip
            resource checks.
    """
    app = Flask(__name__)
    app.config.update(
        DATABASE=str(resolve_database_path()),
        CLOCK=lambda: datetime.now(UTC),
        RESOURCE_RESOLVER=None,
    )
    if config is None or "RESOURCE_RESOLVER" not in config:
        app.config["RESOURCE_RESOLVER"] = _default_resolver()
    if config:
        app.config.update(config)

    @app.before_request
    def _start_timer() -> None:
        g.request_started = time.perf_counter()

    @app.after_request
    def _log_request(response):  # type: ignore[no-untyped-def]
        elapsed = (time.perf_counter() - g.get("request_started", time.perf_counter())) * 1000
        logger.info(
            "{} {} -> {} ({:.1f} ms)", request.method, request.path, response.status_code, elapsed
        )
        return response

    app.teardown_appcontext(close_db)
    register_error_handlers(app)
    app.register_blueprint(admin_bp)
    app.register_blueprint(public_bp)

    logger.debug("Created app with database {}", app.config["DATABASE"])
    return app
