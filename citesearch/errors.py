"""Error taxonomy shared by the search pipeline and the HTTP surface.

Every error carries a short human-readable ``message`` and a ``details``
field with the proximate cause (upstream status/body or exception text).
Errors raised before streaming starts are rendered as ``{error, details}``
JSON with ``status_code``; errors raised while streaming become a single
terminal ``error`` event.
"""
from __future__ import annotations

from typing import Any


class CiteSearchError(Exception):
    status_code: int = 500

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.message}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class InvalidInput(CiteSearchError):
    status_code = 400


class ConfigurationMissing(CiteSearchError):
    status_code = 500


class UpstreamUnavailable(CiteSearchError):
    status_code = 500


class MalformedResponse(CiteSearchError):
    status_code = 500


class NoResults(CiteSearchError):
    status_code = 404


class ReformulationFailed(CiteSearchError):
    """Recovered locally; the original query is used instead."""


class UpstreamGenerationError(CiteSearchError):
    """Generation failed after the event stream was committed."""


class StreamDecodeError(UpstreamGenerationError):
    pass


class StreamProtocolError(CiteSearchError):
    """The event stream broke the ordering contract."""


class SearchRequestError(CiteSearchError):
    """The service rejected a turn before streaming (client side)."""

    def __init__(self, message: str, details: Any = None, status_code: int = 500):
        super().__init__(message, details)
        self.status_code = status_code
