"""Error taxonomy for calls to the remote generation service."""

from __future__ import annotations

from typing import Optional


class ColorbookApiError(Exception):
    """Base class for remote service errors."""

    def __init__(self, message: str, endpoint: str = "", status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.endpoint = endpoint
        self.status_code = status_code


class RemoteOperationError(ColorbookApiError):
    """Non-2xx response, or an explicit ``{"error": ...}`` payload."""


class ResponseParseError(ColorbookApiError):
    """Response body was not JSON (or not the expected shape). Message is the truncated body."""


class GenerationRejectedError(RemoteOperationError):
    """Image generation answered 2xx but did not produce a usable image."""
