"""API error types and the ``{success, data, message, errors}`` response envelope."""

from __future__ import annotations

import logging
from typing import Any, Optional

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from models.table_api import ConstraintViolation, SupabaseConfigurationError

logger = logging.getLogger(__name__)


class ApiError(Exception):
    status_code = 400

    def __init__(self, message: str, errors: Optional[dict[str, str]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.errors = errors


class ValidationError(ApiError):
    status_code = 400


class AuthenticationError(ApiError):
    status_code = 401


class PermissionDeniedError(ApiError):
    status_code = 403


class NotFoundError(ApiError):
    status_code = 404


class ConflictError(ApiError):
    status_code = 409


class UpstreamError(ApiError):
    status_code = 502


class ServiceUnavailableError(ApiError):
    status_code = 503


def api_response(
    data: Any = None,
    *,
    message: Optional[str] = None,
    status: int = 200,
    **extra: Any,
):
    payload: dict[str, Any] = {"success": 200 <= status < 400}
    if data is not None:
        payload["data"] = data
    if message:
        payload["message"] = message
    payload.update(extra)
    return jsonify(payload), status


def error_response(message: str, status: int, errors: Optional[dict[str, str]] = None):
    payload: dict[str, Any] = {"success": False, "message": message}
    if errors:
        payload["errors"] = errors
    return jsonify(payload), status


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(ApiError)
    def handle_api_error(exc: ApiError):
        return error_response(exc.message, exc.status_code, exc.errors)

    @app.errorhandler(ConstraintViolation)
    def handle_constraint_violation(exc: ConstraintViolation):
        logger.info("Constraint violation: %s", exc)
        return error_response("Resource already exists or references missing data.", 409)

    @app.errorhandler(SupabaseConfigurationError)
    def handle_supabase_configuration(exc: SupabaseConfigurationError):
        logger.error("Data backend misconfigured: %s", exc)
        return error_response("Data service is not configured.", 503)

    @app.errorhandler(HTTPException)
    def handle_http_exception(exc: HTTPException):
        return error_response(exc.description or exc.name, exc.code or 500)

    @app.errorhandler(Exception)
    def handle_unexpected(exc: Exception):
        logger.exception("Unhandled error: %s", exc)
        return error_response("Internal server error", 500)
