"""Household presence: is anyone at home at all?"""

import logging

from fritzwatch.events.sink import EventSink

logger = logging.getLogger(__name__)


class HouseholdPresence(EventSink):
    """Wraps a sink and adds an "anyone" aggregate over all identities.

    Presence changes are passed through; whenever the OR over every known
    identity flips, ``on_anyone_changed`` is published as well.
    """

    def __init__(self, sink: EventSink, initial: dict[str, bool] | None = None) -> None:
        self.sink = sink
        self.states: dict[str, bool] = dict(initial or {})
        self.anyone = any(self.states.values())

    def track(self, identity: str, present: bool) -> None:
        """Register an identity's starting state without publishing anything."""
        self.states[identity] = present
        self.anyone = any(self.states.values())

    def on_presence_changed(self, identity: str, present: bool, name: str | None = None) -> None:
        self.states[identity] = present
        self.sink.on_presence_changed(identity, present, name)

        anyone = any(self.states.values())
        if anyone != self.anyone:
            self.anyone = anyone
            logger.debug("Anyone present: %s", anyone)
            self.sink.on_anyone_changed(anyone)
