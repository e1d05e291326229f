"""
Error taxonomy for the frame analysis pipeline.

Every failure a vision call can produce maps to one of these. Cancellation is
not an error: it stays a plain asyncio.CancelledError and is never wrapped.
"""

from typing import Optional


class PipelineError(Exception):
    """Base class. `recoverable` errors are cleared by the next good analysis."""

    recoverable = True


class ConfigError(PipelineError):
    """Missing or invalid configuration (e.g. blank API key). Not retried."""

    recoverable = False


class ConnectivityError(PipelineError):
    """Device has no network."""


class TransportError(PipelineError):
    """Network failure or timeout while talking to the vision provider."""


class HttpStatusError(TransportError):
    """Provider answered with a non-2xx status."""

    def __init__(self, provider: str, status_code: int, body: Optional[str] = ""):
        self.provider = provider
        self.status_code = status_code
        self.body = body or ""
        super().__init__(f"{provider} API failed: HTTP {status_code} - {self.body}")


class ResponseShapeError(PipelineError):
    """Provider response was empty or did not match the VisionResult shape."""
