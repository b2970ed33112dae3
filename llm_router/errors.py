"""
Exception types for LLM Router.

Routing errors are raised to the caller; provider errors are raised by
provider implementations and collected by the failover manager.
"""

from typing import Any, Dict, Optional


class RouterError(Exception):
    """Base exception for LLM Router errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message


class InvalidInput(RouterError, ValueError):
    """Raised when a prompt is empty or whitespace-only."""
    pass


class InvalidPreferences(RouterError, ValueError):
    """Raised when routing weights are negative or sum to zero."""
    pass


class NoEligibleModel(RouterError):
    """Raised when no model survives constraint filtering."""
    pass


class ProviderUnconfigured(RouterError):
    """Raised when a provider type is unknown or has no configuration."""

    def __init__(self, message: str, provider: str = "", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.provider = provider


class ProviderError(RouterError):
    """Raised when a provider call fails.

    Attributes:
        code: Provider-specific error code, e.g. ``"OPENAI_ERROR"``.
        status: HTTP status code, if the failure came from a response.
        retryable: Whether the call may succeed if repeated.
        provider: Provider name.
    """

    def __init__(
        self,
        message: str,
        code: str = "PROVIDER_ERROR",
        status: Optional[int] = None,
        retryable: bool = False,
        provider: str = "",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.code = code
        self.status = status
        self.retryable = retryable
        self.provider = provider


class ProviderTimeout(ProviderError):
    """Raised when a provider call exceeds its timeout."""

    def __init__(self, message: str, timeout: Optional[float] = None, provider: str = ""):
        super().__init__(message, code="TIMEOUT", retryable=True, provider=provider)
        self.timeout = timeout
