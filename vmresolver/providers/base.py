"""Endpoint provider contract.

A provider answers one question: which endpoints currently match a filter.
It owns its own transport and retry policy; the resolver only awaits
:meth:`EndpointProvider.fetch` and treats any exception as a failed poll.
"""

from __future__ import annotations

import abc
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Iterable

from vmresolver.config import InventoryTags
from vmresolver.errors import ProviderError
from vmresolver.models import Endpoint

logger = logging.getLogger(__name__)

RUNNING = "running"


@dataclass(frozen=True)
class InventoryFilter:
    """Selection criteria sent to a provider.

    ``vm_tag_name``/``vm_tag_value`` select instances; ``nic_tag`` is a regular
    expression searched against each NIC's tag to choose which addresses
    are reported.
    """

    vm_tag_name: str
    vm_tag_value: str
    nic_tag: str
    _pattern: re.Pattern = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_pattern", re.compile(self.nic_tag))

    @classmethod
    def from_tags(cls, tags: InventoryTags) -> InventoryFilter:
        return cls(
            vm_tag_name=tags.vm_tag_name,
            vm_tag_value=tags.vm_tag_value,
            nic_tag=tags.nic_tag,
        )

    def query(self) -> dict[str, str]:
        """Provider-side selector, e.g. ``{"state": "running", "tag.role": "db"}``."""
        return {
            "state": RUNNING,
            f"tag.{self.vm_tag_name}": self.vm_tag_value,
        }

    def matches_vm(self, vm: dict[str, Any]) -> bool:
        """Apply :meth:`query` locally to a single VM record."""
        if vm.get("state") != RUNNING:
            return False
        tags = vm.get("tags") or {}
        if self.vm_tag_name not in tags:
            return False
        return _tag_text(tags[self.vm_tag_name]) == self.vm_tag_value

    def matches_nic(self, nic_tag: str | None) -> bool:
        if nic_tag is None:
            return False
        return self._pattern.search(nic_tag) is not None


def _tag_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def endpoints_from_vms(
    vms: Iterable[dict[str, Any]],
    inventory_filter: InventoryFilter,
) -> list[Endpoint]:
    """Build one :class:`Endpoint` per NIC whose tag matches the filter.

    *vms* are assumed to be pre-selected by :meth:`InventoryFilter.query`;
    only the NIC pattern is applied here.

    Raises:
        ProviderError: if a record lacks ``alias`` or a matching NIC lacks ``ip``.
    """
    endpoints: list[Endpoint] = []
    for vm in vms:
        for nic in vm.get("nics") or []:
            if not inventory_filter.matches_nic(nic.get("nic_tag")):
                continue
            try:
                endpoints.append(Endpoint(name=vm["alias"], address=nic["ip"]))
            except KeyError as exc:
                raise ProviderError(
                    f"Malformed inventory record {vm.get('uuid', '?')}: missing {exc}"
                ) from exc
    logger.info("Discovered %d backend(s): %s", len(endpoints), endpoints)
    return endpoints


class EndpointProvider(abc.ABC):
    """Abstract interface for any inventory source."""

    @abc.abstractmethod
    async def fetch(self, inventory_filter: InventoryFilter) -> list[Endpoint]:
        """Return the endpoints currently matching *inventory_filter*.

        Raises whatever the underlying source raises on failure; the
        resolver records the exception and keeps its current backends.
        """
        raise NotImplementedError

    async def aclose(self) -> None:
        """Release any resources held by the provider."""
