"""Endpoint and backend records exchanged between the resolver layers."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Mapping


@dataclass(frozen=True)
class Endpoint:
    """One ``(name, address)`` pair as reported by a provider for a single query."""

    name: str
    address: str

    @property
    def pair(self) -> tuple[str, str]:
        return (self.name, self.address)


@dataclass(frozen=True)
class Backend:
    """A keyed, port-annotated endpoint advertised to subscribers."""

    key: str
    name: str
    address: str
    port: int

    @property
    def pair(self) -> tuple[str, str]:
        return (self.name, self.address)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# Authoritative key -> Backend mapping; replaced wholesale on every reconciliation.
BackendSet = Mapping[str, Backend]
