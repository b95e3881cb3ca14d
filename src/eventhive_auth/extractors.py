"""Credential extraction from HTTP requests.

- ``extract_token``: parses an ``Authorization`` header value
- ``BearerExtractor``: reads the current Flask request's Authorization header
- ``ApiKeyExtractor``: reads the ``X-API-Key`` header for service callers

Extraction never raises. Absence is reported as ``None`` and the caller
decides whether that is fatal (mandatory auth) or tolerated (optional auth).
"""

from __future__ import annotations

from typing import Final

from flask import request

_BEARER_PREFIX: Final[str] = "Bearer "


def extract_token(header: str | None) -> str | None:
    """Return the token from a ``"Bearer <token>"`` header value.

    Returns:
        The raw token, or None if the header is absent, uses another scheme
        or carries an empty token.
    """
    if not header or not header.startswith(_BEARER_PREFIX):
        return None

    token = header[len(_BEARER_PREFIX) :].strip()
    return token or None


class BearerExtractor:
    """Extracts the JWT from the ``Authorization: Bearer <token>`` header.

    Security Notes:
        - Bearer tokens should only be sent over HTTPS
        - Tokens in headers are not vulnerable to CSRF (unlike cookies)
    """

    def extract(self) -> str | None:
        return extract_token(request.headers.get("Authorization"))


class ApiKeyExtractor:
    """Extracts a shared API key from a request header.

    Attributes:
        _header: Header name to read.
    """

    def __init__(self, header: str = "X-API-Key") -> None:
        if not header or not header.strip():
            raise ValueError("header cannot be empty")
        self._header = header

    def extract(self) -> str | None:
        value = request.headers.get(self._header, "").strip()
        return value or None
