"""REST API endpoints."""

from dataclasses import asdict
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlmodel import Session

from fritzwatch.callmonitor.models import CallDirection
from fritzwatch.database import get_session
from fritzwatch.history.models import CallLog, PresenceLog
from fritzwatch.history.store import get_call_history, get_presence_history
from fritzwatch.presence.tracker import PresenceTracker
from fritzwatch.query.base import normalize_address

router = APIRouter(prefix="/api")


def _trackers(request: Request) -> dict[str, PresenceTracker]:
    return getattr(request.app.state, "trackers", {})


def _get_tracker(request: Request, address: str) -> PresenceTracker:
    tracker = _trackers(request).get(normalize_address(address))
    if tracker is None:
        raise HTTPException(status_code=404, detail="Identity not tracked")
    return tracker


# --- Presence ---


@router.get("/presence")
def presence_summary(request: Request) -> dict[str, Any]:
    identities = [tracker.snapshot() for tracker in _trackers(request).values()]
    present = [i for i in identities if i["present"]]
    return {
        "present_count": len(present),
        "anyone": bool(present),
        "identities": identities,
    }


# Literal path must come before {address} parametric path
@router.get("/presence/history")
def presence_history(
    address: str | None = None,
    limit: int = 100,
    session: Session = Depends(get_session),
) -> list[PresenceLog]:
    return get_presence_history(session, address=address, limit=limit)


@router.get("/presence/{address}")
def presence_detail(address: str, request: Request) -> dict[str, Any]:
    return _get_tracker(request, address).snapshot()


@router.post("/presence/{address}/pause")
def pause_polling(address: str, request: Request) -> dict[str, Any]:
    tracker = _get_tracker(request, address)
    tracker.pause()
    return tracker.snapshot()


@router.post("/presence/{address}/resume")
def resume_polling(address: str, request: Request) -> dict[str, Any]:
    tracker = _get_tracker(request, address)
    tracker.resume()
    return tracker.snapshot()


# --- Calls ---


@router.get("/calls/open")
def open_calls(request: Request) -> dict[str, Any]:
    machine = getattr(request.app.state, "call_machine", None)
    if machine is None:
        return {"in_call": False, "calls": []}
    return {
        "in_call": machine.in_call,
        "calls": [asdict(record) for record in machine.open_calls.values()],
    }


@router.get("/calls/history")
def call_history(
    direction: CallDirection | None = None,
    limit: int = 100,
    session: Session = Depends(get_session),
) -> list[CallLog]:
    return get_call_history(session, direction=direction, limit=limit)
