"""vmresolver: turns a polled VM inventory into a stream of backend add/remove events.

Quickstart::

    from vmresolver import Resolver
    from vmresolver.providers import get_provider

    resolver = Resolver(config, get_provider("static", path="inventory.json"))
    resolver.on_added(lambda key, backend: pool.add(key, backend))
    resolver.on_removed(lambda key: pool.remove(key))
    await resolver.start()
"""

from __future__ import annotations

from vmresolver.config import InventoryTags, ResolverConfig
from vmresolver.diff import Reconciliation, new_key, reconcile
from vmresolver.errors import ConfigError, ProviderError, ResolverError, ResolverStateError
from vmresolver.events import EventSource
from vmresolver.models import Backend, BackendSet, Endpoint
from vmresolver.poller import PollLoop
from vmresolver.resolver import Resolver
from vmresolver.state import Event, InvalidTransition, State, StateMachine

__version__ = "1.0.0"

__all__ = [
    "Backend",
    "BackendSet",
    "ConfigError",
    "Endpoint",
    "Event",
    "EventSource",
    "InvalidTransition",
    "InventoryTags",
    "PollLoop",
    "ProviderError",
    "Reconciliation",
    "Resolver",
    "ResolverConfig",
    "ResolverError",
    "ResolverStateError",
    "State",
    "StateMachine",
    "new_key",
    "reconcile",
]
