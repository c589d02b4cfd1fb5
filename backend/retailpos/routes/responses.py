# Overview: Shared JSON error mapping and request parsing for API routes.

from __future__ import annotations

from datetime import timedelta

from flask import current_app, jsonify, request

from ..time_utils import parse_iso_datetime
from ..validation import (
    ConcurrencyConflict,
    ConsistencyError,
    NotFoundError,
    PreconditionError,
    ValidationError,
)


# Exceptions that routes translate into a JSON error instead of a generic 500
SERVICE_ERRORS = (ValidationError, PreconditionError, NotFoundError, ConsistencyError, ConcurrencyConflict)


def error_response(e: Exception):
    """
    Map a service exception to (json, status).

    Precondition failures carry their details through verbatim so the client
    can show the exact rejection reason.
    """
    if isinstance(e, PreconditionError):
        body = {"error": str(e)}
        if e.details:
            body["details"] = e.details
        return jsonify(body), 400
    if isinstance(e, ValidationError):
        return jsonify({"error": str(e)}), 400
    if isinstance(e, NotFoundError):
        return jsonify({"error": str(e)}), 404
    if isinstance(e, ConcurrencyConflict):
        return jsonify({"error": str(e), "retryable": True}), 409
    if isinstance(e, ConsistencyError):
        current_app.logger.error("Consistency violation on %s %s: %s", request.method, request.path, e)
        return jsonify({"error": "Internal consistency error"}), 500
    raise e


def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def query_datetime(name: str, *, end_of_day: bool = False):
    """
    Parse an ISO date/datetime query parameter.

    A bare date used as an upper bound covers that whole day.
    """
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        value = parse_iso_datetime(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 date or datetime")
    if end_of_day and len(raw.strip()) == 10:
        value = value + timedelta(days=1)
    return value
