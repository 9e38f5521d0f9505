from __future__ import annotations

import json
from http import HTTPStatus
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, Response

# Headers recomputed by the rebuilt response.
_DROPPED_HEADERS = {"content-length", "content-type"}


def _success_code(status_code: int) -> str:
    mapping = {
        200: "ok",
        201: "created",
        202: "accepted",
    }
    return mapping.get(status_code, "ok")


def _success_message(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Success"


def _build_success_envelope(data: Any, status_code: int) -> dict[str, Any]:
    return {
        "code": _success_code(status_code),
        "message": _success_message(status_code),
        "data": data,
        "details": {},
    }


def _is_enveloped(payload: Any) -> bool:
    if not isinstance(payload, dict):
        return False
    return "code" in payload and "message" in payload and ("data" in payload or "details" in payload)


def _rebuild(original: Response, content: dict[str, Any], status_code: int) -> JSONResponse:
    rebuilt = JSONResponse(status_code=status_code, content=content)
    for key, value in original.headers.items():
        if key.lower() in _DROPPED_HEADERS:
            continue
        rebuilt.headers[key] = value
    return rebuilt


async def _read_body(response: Response) -> bytes:
    body = getattr(response, "body", None)
    if body is not None:
        return body
    chunks = [chunk async for chunk in response.body_iterator]
    return b"".join(chunk if isinstance(chunk, bytes) else chunk.encode("utf-8") for chunk in chunks)


class ResponseEnvelopeMiddleware(BaseHTTPMiddleware):
    """Wrap successful JSON bodies as ``{"code", "message", "data", "details"}``.

    Error bodies are already enveloped by the exception handlers; file and other
    non-JSON responses pass through untouched.
    """

    async def dispatch(self, request, call_next) -> Response:
        response = await call_next(request)

        if response.status_code < 200 or response.status_code >= 300:
            return response

        if response.status_code == 204:
            return _rebuild(response, _build_success_envelope(None, 200), 200)

        content_type = response.headers.get("content-type", "")
        if not content_type.startswith("application/json"):
            return response

        raw_body = await _read_body(response)
        try:
            payload = json.loads(raw_body) if raw_body else None
        except ValueError:
            return Response(
                content=raw_body,
                status_code=response.status_code,
                headers={k: v for k, v in response.headers.items() if k.lower() != "content-length"},
            )

        if _is_enveloped(payload):
            envelope = dict(payload)
            envelope.setdefault("data", None)
            envelope.setdefault("details", {})
        else:
            envelope = _build_success_envelope(payload, response.status_code)
        return _rebuild(response, envelope, response.status_code)


def register_response_envelope(app) -> None:
    app.add_middleware(ResponseEnvelopeMiddleware)
