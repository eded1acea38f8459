"""In-process inventory provider backed by a list of VM records or a JSON file."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

from vmresolver.errors import ProviderError
from vmresolver.models import Endpoint
from vmresolver.providers.base import EndpointProvider, InventoryFilter, endpoints_from_vms

logger = logging.getLogger(__name__)


class StaticInventoryProvider(EndpointProvider):
    """Serves endpoints from VM records held in memory or read from disk.

    Each record looks like::

        {"uuid": "...", "alias": "db1", "state": "running",
         "tags": {"role": "db"},
         "nics": [{"nic_tag": "manta", "ip": "10.0.0.1"}]}

    When built with :meth:`from_file` the file is re-read on every fetch,
    so edits show up on the next poll.
    """

    def __init__(self, vms: list[dict[str, Any]] | None = None, path: str | Path | None = None) -> None:
        self._vms = list(vms or [])
        self._path = Path(path) if path is not None else None
        self.fetch_count = 0

    @classmethod
    def from_file(cls, path: str | Path) -> StaticInventoryProvider:
        return cls(path=path)

    @property
    def path(self) -> Path | None:
        return self._path

    def set_vms(self, vms: list[dict[str, Any]]) -> None:
        """Replace the in-memory inventory."""
        self._vms = list(vms)

    async def fetch(self, inventory_filter: InventoryFilter) -> list[Endpoint]:
        self.fetch_count += 1
        if self._path is not None:
            vms = await asyncio.to_thread(self._read_file)
        else:
            vms = self._vms
        selected = [vm for vm in vms if inventory_filter.matches_vm(vm)]
        logger.debug(
            "Inventory query %s matched %d of %d VM(s)",
            inventory_filter.query(), len(selected), len(vms),
        )
        return endpoints_from_vms(selected, inventory_filter)

    def _read_file(self) -> list[dict[str, Any]]:
        try:
            with open(self._path) as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            raise ProviderError(f"Could not read inventory {self._path}: {exc}") from exc
        if not isinstance(data, list):
            raise ProviderError(
                f"Inventory {self._path} must hold a JSON list of VM records"
            )
        return data
