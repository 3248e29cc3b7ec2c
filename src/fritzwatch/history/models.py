"""Presence and call history tables."""

from datetime import UTC, datetime

from sqlmodel import Field, SQLModel

from fritzwatch.callmonitor.models import CallDirection


class PresenceLog(SQLModel, table=True):
    """Time-series log of reconciled presence changes."""

    id: int | None = Field(default=None, primary_key=True)
    address: str = Field(index=True)
    name: str | None = None
    present: bool
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


class CallLog(SQLModel, table=True):
    """A finalized call."""

    id: int | None = Field(default=None, primary_key=True)
    call_id: str
    direction: CallDirection = Field(index=True)
    caller: str
    called: str
    extension: str | None = None
    caller_name: str | None = None
    called_name: str | None = None
    start_time: datetime
    connect_time: datetime | None = None
    disconnect_time: datetime | None = None
    duration: int | None = None  # seconds
