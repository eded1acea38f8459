"""Backend resolver: polls an inventory and advertises membership changes.

Lifecycle (see :mod:`vmresolver.state`)::

    stopped --start()--> starting --fetch ok--> running --stop()--> stopping --> stopped
                                  \\--fetch failed--> failed --fetch ok--> running
                                                            \\--stop()--> stopping

A poll failure while *running* keeps the advertised backends as they are;
only a failure during *starting* moves to *failed*, which keeps retrying on
the normal poll interval until one fetch succeeds.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping

from vmresolver.config import ResolverConfig
from vmresolver.diff import EMPTY, reconcile
from vmresolver.errors import ConfigError
from vmresolver.events import AddedCallback, EventSource, RemovedCallback
from vmresolver.models import BackendSet, Endpoint
from vmresolver.poller import PollLoop
from vmresolver.providers.base import EndpointProvider, InventoryFilter
from vmresolver.state import TRANSITIONS, Event, State, StateMachine

logger = logging.getLogger(__name__)


class Resolver:
    """Keeps a keyed set of live backends in step with an endpoint provider.

    Args:
        config:   A :class:`ResolverConfig`, or a mapping validated into one.
        provider: Anything with an ``async fetch(filter)`` returning endpoints.

    Raises:
        ConfigError: if *config* does not validate or *provider* cannot fetch.

    All methods must be called from the event loop that runs the resolver.
    """

    def __init__(
        self,
        config: ResolverConfig | Mapping[str, Any],
        provider: EndpointProvider,
    ) -> None:
        if not isinstance(config, ResolverConfig):
            config = ResolverConfig.from_dict(config)
        if not callable(getattr(provider, "fetch", None)):
            raise ConfigError("Resolver needs a provider with a fetch() coroutine")

        self.config = config
        self.provider = provider
        self.filter = InventoryFilter.from_tags(config.tags)
        self.events = EventSource()

        self._backends: BackendSet = EMPTY
        self._discovered: list[Endpoint] = []
        self._pending_error: BaseException | None = None
        self._last_error: BaseException | None = None

        # Kept for debugging: the set before the last modification and the
        # keys that modification touched.
        self._previous_backends: BackendSet = EMPTY
        self._last_added: tuple[str, ...] = ()
        self._last_removed: tuple[str, ...] = ()

        self.poller = PollLoop(
            fetch=self._fetch,
            interval=config.poll_interval,
            on_result=self._on_poll_result,
            on_error=self._on_poll_error,
        )
        self._machine = StateMachine(
            State.STOPPED,
            TRANSITIONS,
            actions={
                "record_error": self._record_error,
                "reconcile": self._reconcile,
                "cancel_polling": self.poller.cancel,
            },
            entries={
                State.RUNNING: self._enter_running,
                State.FAILED: self._enter_failed,
                State.STOPPING: self._enter_stopping,
            },
        )

    def __repr__(self) -> str:
        return (
            f"<Resolver {self.config.url} state={self.state.value} "
            f"backends={self.count()}>"
        )

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    @property
    def state(self) -> State:
        return self._machine.state

    @property
    def machine(self) -> StateMachine:
        return self._machine

    async def start(self) -> State:
        """Run the initial fetch and settle in ``running`` or ``failed``.

        Raises:
            ResolverStateError: unless the resolver is ``stopped``.

        Returns:
            The state reached once the initial fetch has completed.
        """
        self._machine.fire(Event.START)
        self._last_error = None
        logger.info("Resolving backends for %s from %s", self.filter.query(), self.config.url)

        try:
            endpoints = await self._fetch()
        except asyncio.CancelledError:
            self._machine.fire(Event.ABORTED)
            raise
        except Exception as exc:
            self._pending_error = exc
            self._machine.fire(Event.FETCH_FAILED)
            return self.state

        self._discovered = endpoints
        self._machine.fire(Event.FETCH_SUCCEEDED)
        return self.state

    async def stop(self) -> None:
        """Retract every advertised backend and stop polling.

        The drain happens before this coroutine first yields; it then waits
        for the poll timer to unwind. A fetch still in flight is left to
        finish and its outcome is discarded.

        Raises:
            ResolverStateError: unless the resolver is ``running`` or ``failed``.
        """
        self._machine.fire(Event.STOP)
        await self.poller.wait_cancelled()
        logger.info("Resolver stopped")

    def list(self) -> BackendSet:
        """Current key -> Backend mapping.

        The mapping is replaced, not mutated, by each reconciliation; hold on
        to the result only as long as a snapshot is what you want.
        """
        return self._backends

    def count(self) -> int:
        return len(self._backends)

    def last_error(self) -> BaseException | None:
        """Most recent fetch error since the last start(), or None."""
        return self._last_error

    def on_added(self, callback: AddedCallback) -> None:
        self.events.on_added(callback)

    def on_removed(self, callback: RemovedCallback) -> None:
        self.events.on_removed(callback)

    @property
    def last_added(self) -> tuple[str, ...]:
        """Keys added by the most recent reconciliation."""
        return self._last_added

    @property
    def last_removed(self) -> tuple[str, ...]:
        """Keys removed by the most recent reconciliation or stop."""
        return self._last_removed

    @property
    def previous_backends(self) -> BackendSet:
        """The set that was authoritative before the last modification."""
        return self._previous_backends

    # ------------------------------------------------------------------ #
    # Polling callbacks
    # ------------------------------------------------------------------ #

    async def _fetch(self) -> list[Endpoint]:
        return list(await self.provider.fetch(self.filter))

    def _on_poll_result(self, endpoints: list[Endpoint]) -> None:
        if not self._machine.is_in(State.RUNNING, State.FAILED):
            logger.debug("Ignoring poll result in state %s", self.state.value)
            return
        if self._machine.is_in(State.FAILED):
            logger.info('Successfully got backends, transitioning to "running"')
        self._discovered = endpoints
        self._machine.fire(Event.FETCH_SUCCEEDED)

    def _on_poll_error(self, exc: BaseException) -> None:
        if not self._machine.is_in(State.RUNNING, State.FAILED):
            logger.debug("Ignoring poll error in state %s: %s", self.state.value, exc)
            return
        self._pending_error = exc
        self._machine.fire(Event.FETCH_FAILED)

    # ------------------------------------------------------------------ #
    # State machine actions and entry behaviour
    # ------------------------------------------------------------------ #

    def _record_error(self) -> None:
        exc, self._pending_error = self._pending_error, None
        self._last_error = exc
        logger.error("Could not get backends (state=%s): %s", self.state.value, exc)

    def _reconcile(self) -> None:
        result = reconcile(self._backends, self._discovered, self.config.backend_port)
        if result.changed:
            self._previous_backends = self._backends
        self._backends = result.backends
        self._last_added = result.added
        self._last_removed = result.removed

        for key in result.added:
            self.events.emit_added(key, result.backends[key])
        for key in result.removed:
            self.events.emit_removed(key)

        if result.changed:
            logger.info(
                "Backends modified: added=%s removed=%s", list(result.added), list(result.removed)
            )
        else:
            logger.debug("Backends unchanged (%d advertised)", len(result.backends))

    def _enter_running(self) -> None:
        self._reconcile()
        self.poller.start()

    def _enter_failed(self) -> None:
        logger.warning(
            "Initial fetch failed, retrying every %.3fs", self.config.poll_interval
        )
        self.poller.start()

    def _enter_stopping(self) -> None:
        retracted = self._backends
        self._backends = EMPTY
        if retracted:
            self._previous_backends = retracted
        self._last_added = ()
        self._last_removed = tuple(retracted)

        for key in retracted:
            self.events.emit_removed(key)
        logger.info("Retracted %d backend(s)", len(retracted))

        self._machine.fire(Event.DRAINED)
