"""Client-side errors raised for non-2xx responses."""

from __future__ import annotations

from typing import Any

import httpx


class ApiError(Exception):
    """A request the server answered with an error status."""

    def __init__(self, status_code: int, code: str, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message

    def __repr__(self) -> str:
        return f"{type(self).__name__}(status_code={self.status_code}, code={self.code!r}, message={self.message!r})"


class AuthenticationRequired(ApiError):
    """The session is over (no credentials, or the refresh token expired). Log in again."""


def parse_error_message(error: Any) -> str:
    """Pull a human readable message out of an error payload or exception.

    Understands the server's ``{"error": {"message": ...}}`` envelope as well
    as a bare ``message`` or FastAPI ``detail``.
    """
    if isinstance(error, ApiError):
        return error.message
    if isinstance(error, dict):
        envelope = error.get("error")
        if isinstance(envelope, dict) and envelope.get("message"):
            return str(envelope["message"])
        for key in ("message", "detail"):
            value = error.get(key)
            if isinstance(value, list) and value:
                value = value[0].get("msg") if isinstance(value[0], dict) else value[0]
            if value:
                return str(value)
        return "Unknown error"
    return str(error)


def error_from_response(response: httpx.Response) -> ApiError:
    try:
        payload = response.json()
    except ValueError:
        payload = {"message": response.text or response.reason_phrase}

    code = "http_error"
    if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
        code = payload["error"].get("code", code)
    return ApiError(response.status_code, code, parse_error_message(payload))
