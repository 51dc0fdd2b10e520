"""Helpers for the request-dict handlers under ``api/``."""

import json
from typing import Any, Optional

from src.utils.errors import CodedError

JSON_HEADERS = {"Content-Type": "application/json"}


def json_response(status_code: int, payload: Any) -> dict:
    return {
        "statusCode": status_code,
        "headers": dict(JSON_HEADERS),
        "body": json.dumps(payload, default=str),
    }


def error_response(status_code: int, message: str, code: Optional[str] = None, **extra: Any) -> dict:
    body: dict[str, Any] = {"error": message}
    if code:
        body["code"] = code
    body.update(extra)
    return json_response(status_code, body)


def coded_error_response(error: CodedError) -> dict:
    return json_response(error.status_code, error.to_dict())


def parse_body(request: dict) -> dict:
    """Request body as a dict; accepts a dict, a JSON string or bytes."""
    body = request.get("body")
    if body is None or body == "" or body == b"":
        return {}
    if isinstance(body, dict):
        return body
    if isinstance(body, (bytes, bytearray)):
        body = body.decode("utf-8")
    parsed = json.loads(body)
    if not isinstance(parsed, dict):
        raise ValueError("Request body must be a JSON object")
    return parsed


def path_param(request: dict, name: str) -> Optional[str]:
    params = request.get("path_params") or request.get("params") or {}
    value = params.get(name)
    return str(value) if value is not None else None


def query_param(request: dict, name: str, default: Optional[str] = None) -> Optional[str]:
    query = request.get("query") or {}
    value = query.get(name, default)
    return str(value) if value is not None else None
