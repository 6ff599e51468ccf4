"""
Errors raised while collecting bucket metrics.

All of them are caught by the recorder and turned into log lines.
"""

from typing import Dict, Any


class MetricsError(Exception):
    """Base class; carries the provider/bucket/namespace context."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.context: Dict[str, Any] = {k: v for k, v in context.items() if v is not None}


class ConfigurationMissing(MetricsError):
    """Required provider settings are absent."""


class TransportFailure(MetricsError):
    """The provider's API call failed."""


class SerializationFailure(MetricsError):
    """A summary could not be encoded."""
