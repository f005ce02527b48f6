"""Shared helpers for the research blueprint."""

from __future__ import annotations

import logging
from functools import wraps

from flask import jsonify, request
from flask_login import current_user
from sqlalchemy.exc import SQLAlchemyError

from research_portal.errors import WorkflowError, WorkflowValidationError
from research_portal.extensions import csrf

from . import research_bp

logger = logging.getLogger(__name__)

# JSON API authenticated by session; forms are not involved
csrf.exempt(research_bp)


def ok(data=None, message: str = "", status: int = 200):
    return jsonify({"success": True, "message": message, "data": data}), status


def fail(message: str, status: int = 400, data=None):
    return jsonify({"success": False, "message": message, "data": data}), status


def result_response(result):
    """Serialize a WorkflowResult."""
    return jsonify(result.to_dict()), (200 if result.ok else result.status_code)


def json_body() -> dict:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise WorkflowValidationError("JSON object expected")
    return payload


def expected_version(payload: dict | None = None) -> int | None:
    """Optimistic version from the If-Match header or a `version` field."""
    raw = request.headers.get("If-Match") or (payload or {}).get("version")
    if raw in (None, ""):
        return None
    try:
        return int(str(raw).strip('"'))
    except ValueError as e:
        raise WorkflowValidationError("Invalid version") from e


def admin_required(f):
    """Decorator: only portal administrators."""

    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_user.is_authenticated:
            return fail("Please log in to continue.", 401)
        if not current_user.is_admin:
            return fail("Administrator permission required", 403)
        return f(*args, **kwargs)

    return decorated_function


@research_bp.errorhandler(WorkflowError)
def handle_workflow_error(e: WorkflowError):
    return fail(e.message, e.status_code)


@research_bp.errorhandler(SQLAlchemyError)
def handle_database_error(e: SQLAlchemyError):
    logger.exception("Database error: %s", e)
    return fail("Internal error. Please try again later.", 500)
