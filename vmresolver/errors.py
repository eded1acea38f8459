"""Exception hierarchy for the backend resolver."""

from __future__ import annotations


class ResolverError(Exception):
    """Base error for resolver failures."""


class ConfigError(ResolverError, ValueError):
    """Raised when resolver configuration is missing or malformed."""


class ResolverStateError(ResolverError, RuntimeError):
    """Raised when an operation is requested from a state that forbids it."""


class ProviderError(ResolverError):
    """Raised by an endpoint provider that cannot produce an inventory."""
