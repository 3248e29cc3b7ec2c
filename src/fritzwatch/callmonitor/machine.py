"""Call lifecycle reconstruction from call monitor events.

Open calls are keyed by call id. ``ring``/``call`` open a record (replacing
a stale one with the same id), ``connect`` stamps it, ``disconnect``
finalizes and removes it. Events for unknown ids are ignored. Records never
expire on their own.
"""

import codecs
import logging

from fritzwatch.callmonitor.models import CallDirection, CallRecord, Participants
from fritzwatch.callmonitor.parser import CallEvent, CallEventType, parse_line
from fritzwatch.directory import Directory
from fritzwatch.events.sink import EventSink

logger = logging.getLogger(__name__)


class CallMonitorStateMachine:
    """Single-consumer state machine over one call monitor feed."""

    def __init__(self, sink: EventSink | None = None, directory: Directory | None = None) -> None:
        self.sink = sink or EventSink()
        self.directory = directory
        self.open_calls: dict[str, CallRecord] = {}
        self.in_call = False
        self._buffer = ""
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def feed(self, raw: bytes | str) -> CallRecord | None:
        """Process one raw line. Returns the finalized record on disconnect."""
        event = parse_line(raw)
        if event is None:
            return None
        return self.handle(event)

    def feed_chunk(self, chunk: bytes | str) -> list[CallRecord]:
        """Process raw stream data that may hold several lines.

        A trailing partial line is buffered until a later chunk completes it.
        """
        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)
        *lines, self._buffer = (self._buffer + chunk).split("\n")
        finalized = []
        for line in lines:
            record = self.feed(line)
            if record is not None:
                finalized.append(record)
        return finalized

    def handle(self, event: CallEvent) -> CallRecord | None:
        if event.type == CallEventType.ring:
            caller, called = event.fields[0], event.fields[1]
            self._open(event, CallDirection.inbound, Participants(caller=caller, called=called))
        elif event.type == CallEventType.call:
            extension, caller, called = event.fields[0], event.fields[1], event.fields[2]
            participants = Participants(caller=caller, called=called, extension=extension)
            self._open(event, CallDirection.outbound, participants)
        elif event.type == CallEventType.connect:
            self._connect(event)
        elif event.type == CallEventType.disconnect:
            return self._disconnect(event)
        return None

    def reset(self) -> None:
        """Force the line back to "not in call", e.g. after the stream ended."""
        self._buffer = ""
        self._decoder.reset()
        self._set_contact_state(False)

    def _open(self, event: CallEvent, direction: CallDirection, participants: Participants) -> None:
        stale = self.open_calls.get(event.call_id)
        if stale is not None:
            logger.warning(
                "Call %s opened again without a disconnect, dropping the stale %s call",
                event.call_id,
                stale.direction,
            )

        record = CallRecord(
            call_id=event.call_id,
            direction=direction,
            participants=participants,
            start_time=event.timestamp,
            caller_name=self._lookup(participants.caller),
            called_name=self._lookup(participants.called),
        )
        self.open_calls[event.call_id] = record
        self._set_contact_state(True)
        self.sink.on_call_started(record)

    def _connect(self, event: CallEvent) -> None:
        record = self.open_calls.get(event.call_id)
        if record is None:
            logger.debug("Ignoring connect for unknown call %s", event.call_id)
            return
        record.connect_time = event.timestamp
        self._set_contact_state(True)
        self.sink.on_call_established(record.call_id, record.participants)

    def _disconnect(self, event: CallEvent) -> CallRecord | None:
        try:
            duration = int(event.fields[0])
        except (IndexError, ValueError):
            logger.debug("Ignoring disconnect without a valid duration: %s", event.call_id)
            return None

        record = self.open_calls.pop(event.call_id, None)
        if record is None:
            logger.debug("Ignoring disconnect for unknown call %s", event.call_id)
            return None
        record.disconnect_time = event.timestamp
        record.duration_sec = duration
        if not self.open_calls:
            self._set_contact_state(False)
        self.sink.on_call_finalized(record)
        return record

    def _lookup(self, number: str) -> str | None:
        if self.directory is None or not number:
            return None
        try:
            return self.directory.lookup_name(number)
        except Exception:
            logger.warning("Phonebook lookup failed for %s", number, exc_info=True)
            return None

    def _set_contact_state(self, active: bool) -> None:
        if active == self.in_call:
            return
        self.in_call = active
        self.sink.on_contact_state(active)
