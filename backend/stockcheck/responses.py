# Overview: Maps OperationResult values to JSON responses for the route layer.

from __future__ import annotations

from flask import current_app, jsonify, request

from .services.errors import ErrorKind, OperationResult, ValidationError


def json_body() -> dict:
    """Request JSON object; ValidationError when the body is missing or not an object."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def error_response(error):
    if error.kind == ErrorKind.INTERNAL:
        current_app.logger.error("%s %s failed: %s", request.method, request.path, error.message)
    return jsonify(error.to_dict()), error.http_status


def respond(result: OperationResult, serialize=None, status: int = 200):
    """
    Render a service result.

    serialize turns the success value into JSON-ready data; defaults to the
    value's to_dict(), or the value itself.
    """
    if not result.ok:
        return error_response(result.error)
    value = result.value
    if serialize is not None:
        payload = serialize(value)
    elif hasattr(value, "to_dict"):
        payload = value.to_dict()
    else:
        payload = value
    return jsonify(payload), status


def to_list(items) -> list:
    return [item.to_dict() for item in items]
