"""History persistence and queries."""

import logging
from datetime import UTC, datetime

from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from fritzwatch.callmonitor.models import CallDirection, CallRecord
from fritzwatch.events.sink import EventSink
from fritzwatch.history.models import CallLog, PresenceLog
from fritzwatch.query.base import normalize_address

logger = logging.getLogger(__name__)


def _from_unix(value: int | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=UTC)


def log_presence_change(
    session: Session, address: str, present: bool, name: str | None = None
) -> PresenceLog:
    entry = PresenceLog(address=normalize_address(address), name=name, present=present)
    session.add(entry)
    session.commit()
    session.refresh(entry)
    return entry


def get_last_presence(session: Session, address: str) -> bool | None:
    """Most recently logged state of an address, or None if never logged."""
    stmt = (
        select(PresenceLog)
        .where(PresenceLog.address == normalize_address(address))
        .order_by(PresenceLog.timestamp.desc(), PresenceLog.id.desc())  # type: ignore[union-attr]
        .limit(1)
    )
    entry = session.exec(stmt).first()
    return entry.present if entry is not None else None


def get_presence_history(
    session: Session, address: str | None = None, limit: int = 100
) -> list[PresenceLog]:
    stmt = select(PresenceLog)
    if address is not None:
        stmt = stmt.where(PresenceLog.address == normalize_address(address))
    stmt = stmt.order_by(PresenceLog.timestamp.desc(), PresenceLog.id.desc()).limit(limit)  # type: ignore[union-attr]
    return list(session.exec(stmt).all())


def log_call(session: Session, record: CallRecord) -> CallLog:
    entry = CallLog(
        call_id=record.call_id,
        direction=record.direction,
        caller=record.participants.caller,
        called=record.participants.called,
        extension=record.participants.extension,
        caller_name=record.caller_name,
        called_name=record.called_name,
        start_time=_from_unix(record.start_time),
        connect_time=_from_unix(record.connect_time),
        disconnect_time=_from_unix(record.disconnect_time),
        duration=record.duration_sec,
    )
    session.add(entry)
    session.commit()
    session.refresh(entry)
    return entry


def get_call_history(
    session: Session, direction: CallDirection | None = None, limit: int = 100
) -> list[CallLog]:
    stmt = select(CallLog)
    if direction is not None:
        stmt = stmt.where(CallLog.direction == direction)
    stmt = stmt.order_by(CallLog.start_time.desc(), CallLog.id.desc()).limit(limit)  # type: ignore[union-attr]
    return list(session.exec(stmt).all())


class HistorySink(EventSink):
    """Persists presence changes and finalized calls."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def on_presence_changed(self, identity: str, present: bool, name: str | None = None) -> None:
        try:
            with Session(self.engine) as session:
                log_presence_change(session, identity, present, name=name)
        except Exception:
            logger.exception("Error logging presence change for %s", identity)

    def on_call_finalized(self, record: CallRecord) -> None:
        try:
            with Session(self.engine) as session:
                log_call(session, record)
        except Exception:
            logger.exception("Error logging call %s", record.call_id)
