from __future__ import annotations

from typing import Any

from jose import JWTError, jwt

from app.core.settings import settings


def decode_token(token: str, expected_type: str | None = None) -> dict[str, Any]:
    """Decode an access token issued by the identity service."""
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as exc:
        raise ValueError("Invalid token") from exc
    if expected_type and payload.get("type", expected_type) != expected_type:
        raise ValueError(f"Unexpected token type: {payload.get('type')}")
    return payload
