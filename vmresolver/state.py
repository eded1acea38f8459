"""Resolver lifecycle state machine.

States: STOPPED → STARTING → RUNNING ⇄ (transient poll failures)
                           ↘ FAILED → RUNNING
        RUNNING/FAILED → STOPPING → STOPPED
        STARTING → STOPPED (initial fetch cancelled)

Every legal move lives in :data:`TRANSITIONS`, one row per
``(state, event)``. A row names an optional action to run and the target
state; entering a *different* state runs that state's entry behaviour,
while a self-targeted row only runs its action.
"""

from __future__ import annotations

import enum
import logging
from typing import Callable, Mapping, NamedTuple

from vmresolver.errors import ResolverStateError

logger = logging.getLogger(__name__)


class State(enum.Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    FAILED = "failed"
    STOPPING = "stopping"


class Event(enum.Enum):
    START = "start"
    FETCH_SUCCEEDED = "fetch_succeeded"
    FETCH_FAILED = "fetch_failed"
    STOP = "stop"
    DRAINED = "drained"
    ABORTED = "aborted"


class Transition(NamedTuple):
    action: str | None
    target: State


TRANSITIONS: dict[tuple[State, Event], Transition] = {
    (State.STOPPED, Event.START): Transition(None, State.STARTING),
    (State.STARTING, Event.FETCH_SUCCEEDED): Transition(None, State.RUNNING),
    (State.STARTING, Event.FETCH_FAILED): Transition("record_error", State.FAILED),
    (State.STARTING, Event.ABORTED): Transition(None, State.STOPPED),
    (State.RUNNING, Event.FETCH_SUCCEEDED): Transition("reconcile", State.RUNNING),
    (State.RUNNING, Event.FETCH_FAILED): Transition("record_error", State.RUNNING),
    (State.RUNNING, Event.STOP): Transition("cancel_polling", State.STOPPING),
    (State.FAILED, Event.FETCH_SUCCEEDED): Transition("cancel_polling", State.RUNNING),
    (State.FAILED, Event.FETCH_FAILED): Transition("record_error", State.FAILED),
    (State.FAILED, Event.STOP): Transition("cancel_polling", State.STOPPING),
    (State.STOPPING, Event.DRAINED): Transition(None, State.STOPPED),
}


class InvalidTransition(ResolverStateError):
    """Raised when an event has no row for the current state."""

    def __init__(self, state: State, event: Event) -> None:
        self.state = state
        self.event = event
        super().__init__(
            f"Event '{event.value}' is not valid in state '{state.value}'"
        )


TransitionCallback = Callable[[State, State, Event], None]


class StateMachine:
    """Table-driven dispatcher over :class:`State` / :class:`Event`.

    Args:
        initial:     Starting state.
        transitions: ``(state, event) -> Transition`` table.
        actions:     Action name -> zero-argument callable.
        entries:     State -> zero-argument callable run on entering that state.

    Entry callables may fire further events; the machine has already moved
    to the new state when they run.
    """

    def __init__(
        self,
        initial: State,
        transitions: Mapping[tuple[State, Event], Transition] = TRANSITIONS,
        actions: Mapping[str, Callable[[], None]] | None = None,
        entries: Mapping[State, Callable[[], None]] | None = None,
    ) -> None:
        self._state = initial
        self._transitions = transitions
        self._actions = dict(actions or {})
        self._entries = dict(entries or {})
        self._observers: list[TransitionCallback] = []

        missing = {
            t.action for t in transitions.values() if t.action is not None
        } - set(self._actions)
        if missing:
            raise ValueError(f"No handler for action(s): {sorted(missing)}")

    @property
    def state(self) -> State:
        return self._state

    def is_in(self, *states: State) -> bool:
        return self._state in states

    def can(self, event: Event) -> bool:
        return (self._state, event) in self._transitions

    def on_transition(self, callback: TransitionCallback) -> None:
        """Register *callback(previous, current, event)* for every state change."""
        self._observers.append(callback)

    def fire(self, event: Event) -> State:
        """Dispatch *event* from the current state.

        Raises:
            InvalidTransition: if the table has no row for ``(state, event)``.

        Returns:
            The state the machine settled in once *event* was handled.
        """
        previous = self._state
        transition = self._transitions.get((previous, event))
        if transition is None:
            raise InvalidTransition(previous, event)

        if transition.action is not None:
            self._actions[transition.action]()

        if transition.target is previous:
            return self._state

        self._state = transition.target
        logger.debug("%s --%s--> %s", previous.value, event.value, transition.target.value)
        for callback in self._observers:
            callback(previous, transition.target, event)

        entry = self._entries.get(transition.target)
        if entry is not None:
            entry()
        return self._state
