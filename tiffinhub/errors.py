from __future__ import annotations

import logging
from typing import Iterable, Optional

from flask import Flask, g, jsonify, request
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from .extensions import db

logger = logging.getLogger(__name__)


class ApiError(Exception):
    status_code = 500
    message = "Internal server error"

    def __init__(self, message: Optional[str] = None, **extra):
        super().__init__(message or self.message)
        self.message = message or self.message
        self.extra = extra

    def to_dict(self) -> dict:
        payload = {"error": self.message}
        payload.update(self.extra)
        return payload


class BadRequest(ApiError):
    status_code = 400
    message = "Bad request"


class Unauthorized(ApiError):
    status_code = 401
    message = "Authentication required"


class AccessDenied(ApiError):
    status_code = 403
    message = "Access denied"


class NotFound(ApiError):
    status_code = 404
    message = "Not found"


class EntityNotFound(NotFound):
    def __init__(self, entity: str):
        super().__init__(f"Unknown entity: {entity}")
        self.entity = entity


class Conflict(ApiError):
    status_code = 409
    message = "Conflict"


class UnknownFieldsError(ApiError):
    """Raised when a payload names attributes the backing table does not have."""

    status_code = 500

    def __init__(self, fields: Iterable[str]):
        self.fields = sorted(set(fields))
        super().__init__("Unknown fields: " + ", ".join(self.fields))


class MessagingError(ApiError):
    status_code = 502
    message = "Messaging provider error"


def record_system_error(exc: BaseException, status: int) -> None:
    # Imported lazily: models import extensions, which this module also uses.
    from .models import SystemLog

    user = getattr(g, "api_user", None)
    try:
        db.session.rollback()
        db.session.add(
            SystemLog(
                log_type="error",
                severity="high" if status >= 500 else "low",
                source=f"{request.method} {request.path}",
                message=str(exc) or exc.__class__.__name__,
                error_details=repr(exc),
                affected_user=getattr(user, "email", None),
            )
        )
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to write system log for %s %s", request.method, request.path)


def register_errors(app: Flask):
    @app.errorhandler(ApiError)
    def api_error(e: ApiError):
        if e.status_code >= 500:
            app.logger.error("%s %s failed: %s", request.method, request.path, e.message)
            record_system_error(e, e.status_code)
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(HTTPException)
    def http_error(e: HTTPException):
        return jsonify({"error": e.description or e.name}), e.code

    @app.errorhandler(Exception)
    def server_error(e: Exception):
        app.logger.exception("Unhandled error on %s %s", request.method, request.path)
        record_system_error(e, 500)
        return jsonify({"error": str(e) or "Internal server error"}), 500
