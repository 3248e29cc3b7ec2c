"""Event sinks receiving presence changes and call lifecycle events.

Every hook is fire-and-forget and defaults to a no-op, so a sink only
overrides what it cares about.
"""

import logging

from fritzwatch.callmonitor.models import CallDirection, CallRecord, Participants

logger = logging.getLogger(__name__)


class EventSink:
    """Receiver for everything the presence and call engines publish."""

    def on_presence_changed(self, identity: str, present: bool, name: str | None = None) -> None:
        """A tracked identity switched between present and absent."""

    def on_anyone_changed(self, present: bool) -> None:
        """The "is anyone home" aggregate changed."""

    def on_call_started(self, record: CallRecord) -> None:
        """An inbound call is ringing or an outbound call is being dialed."""

    def on_call_established(self, call_id: str, participants: Participants) -> None:
        """A known call was picked up."""

    def on_call_finalized(self, record: CallRecord) -> None:
        """A known call was disconnected; ``record`` is complete."""

    def on_contact_state(self, active: bool) -> None:
        """The phone line switched between "in call" and idle."""


class CompositeSink(EventSink):
    """Fans every event out to several sinks, isolating their failures."""

    def __init__(self, sinks: list[EventSink] | None = None) -> None:
        self.sinks: list[EventSink] = list(sinks or [])

    def add(self, sink: EventSink) -> None:
        self.sinks.append(sink)

    def _dispatch(self, hook: str, *args: object) -> None:
        for sink in self.sinks:
            try:
                getattr(sink, hook)(*args)
            except Exception:
                logger.exception("%s.%s failed", type(sink).__name__, hook)

    def on_presence_changed(self, identity: str, present: bool, name: str | None = None) -> None:
        self._dispatch("on_presence_changed", identity, present, name)

    def on_anyone_changed(self, present: bool) -> None:
        self._dispatch("on_anyone_changed", present)

    def on_call_started(self, record: CallRecord) -> None:
        self._dispatch("on_call_started", record)

    def on_call_established(self, call_id: str, participants: Participants) -> None:
        self._dispatch("on_call_established", call_id, participants)

    def on_call_finalized(self, record: CallRecord) -> None:
        self._dispatch("on_call_finalized", record)

    def on_contact_state(self, active: bool) -> None:
        self._dispatch("on_contact_state", active)


def describe_caller(record: CallRecord) -> str:
    """Human readable caller, e.g. ``Alice ( 030123 )`` or ``030123 ( No name )``."""
    number = record.participants.caller
    if record.caller_name:
        return f"{record.caller_name} ( {number} )"
    return f"{number} ( No name )"


class LoggingSink(EventSink):
    """Writes every event as a human readable log line."""

    def on_presence_changed(self, identity: str, present: bool, name: str | None = None) -> None:
        if present:
            logger.info("Welcome at home %s", name or identity)
        else:
            logger.info("Bye bye %s", name or identity)

    def on_anyone_changed(self, present: bool) -> None:
        if present:
            logger.info("Presence detected at home!")
        else:
            logger.info("No one at home!")

    def on_call_started(self, record: CallRecord) -> None:
        p = record.participants
        if record.direction == CallDirection.inbound:
            if record.caller_name:
                logger.info(
                    "Incoming call from: %s ( %s ) to %s", record.caller_name, p.caller, p.called
                )
            else:
                logger.info("Incoming call from: %s to %s", p.caller, p.called)
        elif record.called_name:
            logger.info("Calling: %s ( %s )", record.called_name, p.called)
        else:
            logger.info("Calling: %s", p.called)

    def on_call_established(self, call_id: str, participants: Participants) -> None:
        logger.info(
            "Connection established from: %s - to: %s", participants.caller, participants.called
        )

    def on_call_finalized(self, record: CallRecord) -> None:
        logger.info("Call disconnected (%s, %ss)", record.call_id, record.duration_sec)
