"""Endpoint provider factory.

Usage::

    from vmresolver.providers import get_provider
    provider = get_provider("static", path="inventory.json")
"""

from __future__ import annotations

from typing import Any

from .base import EndpointProvider, InventoryFilter, endpoints_from_vms
from .static import StaticInventoryProvider

__all__ = [
    "EndpointProvider",
    "InventoryFilter",
    "StaticInventoryProvider",
    "endpoints_from_vms",
    "get_provider",
]

_PROVIDERS = {
    "static": StaticInventoryProvider,
}


def get_provider(provider_name: str = "static", **kwargs: Any) -> EndpointProvider:
    """Return a configured EndpointProvider by name."""
    provider_name = provider_name.lower().replace("-", "_")
    cls = _PROVIDERS.get(provider_name)
    if cls is None:
        raise ValueError(
            f"Unknown provider '{provider_name}'. "
            f"Choose from: {list(_PROVIDERS)}"
        )
    return cls(**kwargs)
