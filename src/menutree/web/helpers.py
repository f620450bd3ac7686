"""Request plumbing: per-request connection, JSON envelope, error mapping."""

import sqlite3
from datetime import datetime
from typing import Any

from flask import Flask, Response, current_app, g, jsonify, request
from loguru import logger
from werkzeug.exceptions import HTTPException

from menutree.core.database.schema import connect, migrate_schema
from menutree.errors import (
    DepthExceeded,
    FieldValidation,
    IntegrityError,
    InvalidParent,
    NodeNotFound,
)
from menutree.protocols import ResourceResolverProtocol


def get_db() -> sqlite3.Connection:
    """Connection for the current request, opened on first use."""
    if "db" not in g:
        g.db = connect(current_app.config["DATABASE"])
        migrate_schema(g.db)
    return g.db


def close_db(_exc: BaseException | None = None) -> None:
    conn = g.pop("db", None)
    if conn is not None:
        conn.close()


def now() -> datetime:
    return current_app.config["CLOCK"]()


def resolver() -> ResourceResolverProtocol | None:
    return current_app.config["RESOURCE_RESOLVER"]


def json_body() -> dict[str, Any]:
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise FieldValidation({"body": ["Expected a JSON object."]})
    return body


def ok(data: Any = None, message: str = "OK", status: int = 200) -> tuple[Response, int]:
    payload: dict[str, Any] = {"success": True, "message": message}
    if data is not None:
        payload["data"] = data
    return jsonify(payload), status


def fail(
    message: str, status: int, errors: dict[str, list[str]] | None = None
) -> tuple[Response, int]:
    payload: dict[str, Any] = {"success": False, "message": message}
    if errors is not None:
        payload["errors"] = errors
    return jsonify(payload), status


def register_error_handlers(app: Flask) -> None:
    """Map menu tree errors onto status codes and the JSON envelope."""

    @app.errorhandler(FieldValidation)
    def _validation(e: FieldValidation):  # type: ignore[no-untyped-def]
        return fail("The given data was invalid.", 422, e.errors)

    @app.errorhandler(DepthExceeded)
    @app.errorhandler(InvalidParent)
    def _structural(e: Exception):  # type: ignore[no-untyped-def]
        logger.info("Rejected structural change: {}", e)
        return fail(str(e), 400)

    @app.errorhandler(NodeNotFound)
    def _not_found(e: NodeNotFound):  # type: ignore[no-untyped-def]
        return fail(str(e), 404)

    @app.errorhandler(IntegrityError)
    def _integrity(e: IntegrityError):  # type: ignore[no-untyped-def]
        logger.error("Integrity check failed: {}", e)
        return fail(str(e), 500)

    @app.errorhandler(HTTPException)
    def _http(e: HTTPException):  # type: ignore[no-untyped-def]
        return fail(e.description or e.name, e.code or 500)

    @app.errorhandler(Exception)
    def _unhandled(e: Exception):  # type: ignore[no-untyped-def]
        logger.exception("Unhandled error on {} {}", request.method, request.path)
        return fail("Internal server error", 500)
