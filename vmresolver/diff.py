"""Membership reconciliation: turns two endpoint snapshots into add/remove keys.

The previous :data:`~vmresolver.models.BackendSet` is never mutated; every
call builds a fresh read-only mapping so callers can swap it in atomically.
"""

from __future__ import annotations

import base64
import logging
import secrets
from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, Iterable

from vmresolver.models import Backend, BackendSet, Endpoint

logger = logging.getLogger(__name__)

KEY_BYTES = 9

EMPTY: BackendSet = MappingProxyType({})


def new_key() -> str:
    """Return a fresh random backend key (9 random bytes, base64-encoded)."""
    return base64.b64encode(secrets.token_bytes(KEY_BYTES)).decode("ascii")


@dataclass(frozen=True)
class Reconciliation:
    """Outcome of one :func:`reconcile` call."""

    added: tuple[str, ...]
    removed: tuple[str, ...]
    backends: BackendSet

    @property
    def changed(self) -> bool:
        return bool(self.added or self.removed)


def reconcile(
    previous: BackendSet,
    discovered: Iterable[Endpoint],
    port: int,
    mint: Callable[[], str] = new_key,
) -> Reconciliation:
    """Reconcile *previous* against a freshly *discovered* endpoint list.

    Endpoints are matched to existing backends by value on both ``name`` and
    ``address``; a match keeps its key, anything else gets a key from *mint*
    and is reported as added. Keys of *previous* that are not carried over
    are reported as removed.

    Duplicate ``(name, address)`` pairs within *discovered* collapse into a
    single backend; the first occurrence wins and a warning is logged.

    Returns:
        A :class:`Reconciliation` whose ``added`` keys follow discovery order
        and whose ``removed`` keys follow the iteration order of *previous*.
    """
    known = {backend.pair: key for key, backend in previous.items()}

    backends: dict[str, Backend] = {}
    seen: dict[tuple[str, str], str] = {}
    added: list[str] = []
    duplicates = 0

    for endpoint in discovered:
        pair = endpoint.pair
        if pair in seen:
            duplicates += 1
            continue

        key = known.get(pair)
        if key is None:
            key = mint()
            # Redraw on a clash with any key that is still live.
            while key in previous or key in backends:
                logger.warning("Backend key collision on %s, drawing another", key)
                key = mint()
            added.append(key)

        seen[pair] = key
        backends[key] = Backend(
            key=key,
            name=endpoint.name,
            address=endpoint.address,
            port=port,
        )

    if duplicates:
        logger.warning(
            "Collapsed %d duplicate endpoint(s) in discovery result", duplicates
        )

    removed = tuple(key for key in previous if key not in backends)
    return Reconciliation(
        added=tuple(added),
        removed=removed,
        backends=MappingProxyType(backends),
    )
