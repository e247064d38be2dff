"""Client for the remote coloring book generation service."""

from integrations.colorbook_api.client import ColorbookApiClient
from integrations.colorbook_api.config import ApiSettings
from integrations.colorbook_api.errors import (
    ColorbookApiError,
    GenerationRejectedError,
    RemoteOperationError,
    ResponseParseError,
)

__all__ = [
    "ApiSettings",
    "ColorbookApiClient",
    "ColorbookApiError",
    "GenerationRejectedError",
    "RemoteOperationError",
    "ResponseParseError",
]
