"""Parsing of FRITZ!Box call monitor lines.

Lines look like ``19.10.26 15:17:00;RING;0;0301234567;069876543;SIP0;``.
Anything that does not fit is dropped by returning None.
"""

import enum
import logging
import re
from dataclasses import dataclass
from datetime import datetime

logger = logging.getLogger(__name__)

_TWO_DIGITS_RE = re.compile(r"[0-9]{2}")


class CallEventType(enum.StrEnum):
    ring = "ring"
    call = "call"
    connect = "connect"
    disconnect = "disconnect"


# Minimum number of fields (including time and keyword) per event type.
_MIN_FIELDS = {
    CallEventType.ring: 5,
    CallEventType.call: 6,
    CallEventType.connect: 3,
    CallEventType.disconnect: 4,
}


@dataclass(frozen=True)
class CallEvent:
    timestamp: int
    type: CallEventType
    call_id: str
    fields: tuple[str, ...]  # everything after the call id


def fritzbox_date_to_unix(value: str) -> int:
    """Convert the router's dd.mm.yy HH:MM:SS stamp to a unix timestamp.

    Only the two-digit groups matter, so ``010101120000`` works as well.
    The router reports local time.
    """
    groups = _TWO_DIGITS_RE.findall(value)
    if len(groups) < 6:
        raise ValueError(f"Not a call monitor timestamp: {value!r}")
    day, month, year, hour, minute, second = (int(g) for g in groups[:6])
    stamp = datetime(2000 + year, month, day, hour, minute, second)
    return int(stamp.timestamp())


def parse_line(raw: bytes | str) -> CallEvent | None:
    """Parse one call monitor line, or return None if it is malformed."""
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    line = raw.strip()
    if line.endswith(";"):
        line = line[:-1]
    if not line:
        return None

    parts = [p.strip() for p in line.split(";")]
    if len(parts) < 3:
        logger.debug("Dropping short call monitor line: %r", line)
        return None

    try:
        event_type = CallEventType(parts[1].lower())
    except ValueError:
        logger.debug("Dropping unknown call monitor event: %r", line)
        return None

    if len(parts) < _MIN_FIELDS[event_type]:
        logger.debug("Dropping incomplete %s line: %r", event_type, line)
        return None

    try:
        timestamp = fritzbox_date_to_unix(parts[0])
    except ValueError:
        logger.debug("Dropping call monitor line with bad timestamp: %r", line)
        return None

    if event_type == CallEventType.disconnect and not parts[3].isdecimal():
        logger.debug("Dropping disconnect line with bad duration: %r", line)
        return None

    return CallEvent(
        timestamp=timestamp,
        type=event_type,
        call_id=parts[2],
        fields=tuple(parts[3:]),
    )
