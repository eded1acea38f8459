"""pytest configuration and shared fakes for vmresolver tests."""

from __future__ import annotations

import asyncio

import pytest

from vmresolver.models import Endpoint
from vmresolver.providers.base import EndpointProvider, InventoryFilter


class FakeProvider(EndpointProvider):
    """Scripted provider.

    Each queued response is either a list of ``(name, address)`` pairs or an
    exception to raise. The last response repeats once the queue runs dry.
    Set ``gate`` to an :class:`asyncio.Event` to hold fetches until it is set.
    """

    def __init__(self, *responses):
        self.responses = list(responses) or [[]]
        self.calls = 0
        self.filters: list[InventoryFilter] = []
        self.gate: asyncio.Event | None = None

    def push(self, response) -> None:
        self.responses.append(response)

    async def fetch(self, inventory_filter):
        self.calls += 1
        self.filters.append(inventory_filter)
        if self.gate is not None:
            await self.gate.wait()
        if len(self.responses) > 1:
            response = self.responses.pop(0)
        else:
            response = self.responses[0]
        if isinstance(response, BaseException):
            raise response
        return [Endpoint(name=name, address=address) for name, address in response]


class Recorder:
    """Collects events emitted by a resolver in delivery order."""

    def __init__(self, resolver):
        self.events: list[tuple] = []
        resolver.on_added(lambda key, backend: self.events.append(("added", key, backend)))
        resolver.on_removed(lambda key: self.events.append(("removed", key)))

    @property
    def added(self) -> list[str]:
        return [e[1] for e in self.events if e[0] == "added"]

    @property
    def removed(self) -> list[str]:
        return [e[1] for e in self.events if e[0] == "removed"]

    def clear(self) -> None:
        self.events.clear()


async def wait_until(predicate, timeout: float = 2.0) -> None:
    """Poll *predicate* on the event loop until it holds or *timeout* passes."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.005)


@pytest.fixture
def config_dict():
    return {
        "url": "http://vmapi.example.com",
        "tags": {
            "vm_tag_name": "manta_role",
            "vm_tag_value": "postgres",
            "nic_tag": "manta.*",
        },
        "backend_port": 5432,
        "poll_interval": 3600,
    }


@pytest.fixture
def fast_config_dict(config_dict):
    return dict(config_dict, poll_interval=0.01)


@pytest.fixture
def make_provider():
    """Factory for :class:`FakeProvider` instances."""
    return FakeProvider


@pytest.fixture
def record():
    """Factory attaching a :class:`Recorder` to a resolver."""
    return Recorder


@pytest.fixture(name="wait_until")
def wait_until_fixture():
    return wait_until
