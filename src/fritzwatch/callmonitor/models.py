"""Call records reconstructed from the call monitor stream."""

import enum
from dataclasses import dataclass


class CallDirection(enum.StrEnum):
    inbound = "inbound"
    outbound = "outbound"


@dataclass(frozen=True)
class Participants:
    caller: str
    called: str
    extension: str | None = None  # outbound calls only


@dataclass
class CallRecord:
    """One phone call, open from ring/call until disconnect."""

    call_id: str
    direction: CallDirection
    participants: Participants
    start_time: int  # unix seconds
    connect_time: int | None = None
    disconnect_time: int | None = None
    duration_sec: int | None = None
    caller_name: str | None = None
    called_name: str | None = None

    @property
    def finalized(self) -> bool:
        return self.disconnect_time is not None
