"""
Exception types raised by the transcript client, the model router and the
session layer. The HTTP handlers map them to status codes.
"""

from typing import Optional


class DistillError(Exception):
    """Base class for all expected failures."""


class UpstreamAuthError(DistillError):
    """Session token or stored third-party credential was rejected."""


class MissingCredentialError(DistillError):
    """The caller has no stored API key for the given provider."""

    def __init__(self, provider: str, message: Optional[str] = None):
        self.provider = provider
        super().__init__(message or f"No {provider} API Key found. Please add it in Settings.")


class UpstreamQueryError(DistillError):
    """The transcript service reported a structured error."""


class ProviderCallError(DistillError):
    """An LLM vendor call failed."""

    def __init__(self, provider: str, cause: BaseException):
        self.provider = provider
        self.cause = cause
        super().__init__(f"{provider} request failed: {cause}")


class NetworkError(DistillError):
    """Transport-level failure with no structured response."""
