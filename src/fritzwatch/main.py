"""fritzwatch application entrypoint."""

import base64
import binascii
import logging
import secrets
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlmodel import Session
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from fritzwatch import database
from fritzwatch.backoff import ErrorThrottle
from fritzwatch.callmonitor.client import CallMonitorClient
from fritzwatch.callmonitor.machine import CallMonitorStateMachine
from fritzwatch.config import Settings, load_config, settings
from fritzwatch.directory import StaticDirectory
from fritzwatch.events.sink import CompositeSink, EventSink, LoggingSink
from fritzwatch.events.webhook import MessageTemplates, WebhookSink
from fritzwatch.history.store import HistorySink, get_last_presence
from fritzwatch.presence.aggregator import RepeaterAggregator
from fritzwatch.presence.household import HouseholdPresence
from fritzwatch.presence.tracker import PresenceTracker, TrackedIdentity
from fritzwatch.query.base import DeviceQuery

logging.basicConfig(level=settings.log_level.upper())
logger = logging.getLogger(__name__)


def _create_query(cfg: Settings) -> DeviceQuery | None:
    """Factory: instantiate the configured lookup backend."""
    if cfg.query_mode == "tr064":
        from fritzwatch.query.tr064 import Tr064Query

        return Tr064Query()
    if cfg.query_mode == "mock":
        from fritzwatch.query.mock import ScriptedQuery, random_presence

        return ScriptedQuery(default=random_presence())
    if cfg.query_mode == "none":
        return None
    logger.warning("Unknown query mode '%s', presence tracking disabled", cfg.query_mode)
    return None


def _create_sink(cfg: Settings) -> CompositeSink:
    sink = CompositeSink([LoggingSink(), HistorySink(database.engine)])
    if cfg.webhook_url:
        templates = MessageTemplates(
            presence_on=cfg.message_presence_on,
            presence_off=cfg.message_presence_off,
            anyone_on=cfg.message_anyone_on,
            anyone_off=cfg.message_anyone_off,
            incoming=cfg.message_incoming,
            disconnected=cfg.message_disconnected,
        )
        sink.add(WebhookSink(cfg.webhook_url, templates))
    return sink


def _restore_presence(address: str) -> bool:
    """Last logged state of an identity, so a restart does not flap it."""
    try:
        with Session(database.engine) as session:
            return bool(get_last_presence(session, address))
    except Exception:
        logger.exception("Could not restore presence state for %s", address)
        return False


async def _start_trackers(
    cfg: Settings, sink: EventSink, household: HouseholdPresence
) -> dict[str, PresenceTracker]:
    query = _create_query(cfg)
    if query is None or not cfg.presence_targets:
        logger.info("No presence targets configured")
        return {}

    primary = cfg.router_endpoint()
    aggregator = RepeaterAggregator(query, cfg.repeater_endpoints())
    trackers: dict[str, PresenceTracker] = {}
    for target in cfg.presence_targets:
        identity = TrackedIdentity(
            address=target.address,
            name=target.name,
            delay=cfg.target_delay(target),
            timeouts=ErrorThrottle(cfg.timeout_log_threshold),
            other_errors=ErrorThrottle(cfg.error_log_threshold),
            repeater_timeouts=ErrorThrottle(cfg.timeout_log_threshold),
            repeater_errors=ErrorThrottle(cfg.error_log_threshold),
        )
        if identity.address in trackers:
            logger.warning("Duplicate presence target %s, skipping", identity.address)
            continue
        identity.last_presence = _restore_presence(identity.address)
        household.track(identity.address, identity.last_presence)

        tracker = PresenceTracker(
            identity,
            query,
            primary,
            aggregator=aggregator,
            sink=household if cfg.anyone_sensor else sink,
            poll_interval=cfg.poll_interval,
            paused_interval=cfg.paused_interval,
        )
        await tracker.start()
        trackers[identity.address] = tracker

    logger.info(
        "Tracking %d identities via %s and %d repeater(s)",
        len(trackers),
        primary.label,
        len(aggregator.endpoints),
    )
    return trackers


async def _start_services(app: FastAPI) -> None:
    """Start presence trackers and the call monitor."""
    cfg = load_config()
    sink = _create_sink(cfg)
    household = HouseholdPresence(sink)

    app.state.sink = sink
    app.state.household = household
    app.state.trackers = await _start_trackers(cfg, sink, household)

    directory = StaticDirectory(cfg.phonebook)
    app.state.call_machine = CallMonitorStateMachine(sink, directory=directory)
    app.state.call_client = None
    if cfg.callmonitor_enabled:
        client = CallMonitorClient(
            cfg.callmonitor_host or cfg.router_host,
            app.state.call_machine,
            port=cfg.callmonitor_port,
            reconnect_interval=cfg.callmonitor_reconnect_interval,
        )
        await client.start()
        app.state.call_client = client


async def _stop_services(app: FastAPI) -> None:
    for tracker in getattr(app.state, "trackers", {}).values():
        await tracker.stop()
    client = getattr(app.state, "call_client", None)
    if client is not None:
        await client.stop()
    sink = getattr(app.state, "sink", None)
    if sink is not None:
        for s in sink.sinks:
            if isinstance(s, WebhookSink):
                await s.drain()
    logger.info("All monitors stopped")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application startup/shutdown lifecycle."""
    # Import models to register them with SQLModel before init_db()
    import fritzwatch.history.models  # noqa: F401

    database.init_db()
    logger.info("Database initialized")

    await _start_services(app)

    yield

    await _stop_services(app)


app = FastAPI(
    title="fritzwatch",
    description="FRITZ!Box presence detection and call monitoring",
    version="0.1.0",
    lifespan=lifespan,
)


# Paths reachable without credentials
PUBLIC_PATHS = frozenset({"/health"})


def _basic_credentials(header: str) -> tuple[str, str] | None:
    """Decode a ``Basic`` Authorization header into (username, password)."""
    scheme, _, token = header.partition(" ")
    if scheme != "Basic" or not token:
        return None
    try:
        decoded = base64.b64decode(token, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None
    username, sep, password = decoded.partition(":")
    if not sep:
        return None
    return username, password


class BasicAuthMiddleware(BaseHTTPMiddleware):
    """HTTP Basic Authentication for the API.

    Pausing or resuming a tracker and reading call history both need
    credentials; only PUBLIC_PATHS are exempt.
    """

    def __init__(self, app, username: str, password: str):
        super().__init__(app)
        self.username = username
        self.password = password

    async def dispatch(self, request, call_next):
        if request.url.path in PUBLIC_PATHS:
            return await call_next(request)

        credentials = _basic_credentials(request.headers.get("Authorization", ""))
        if credentials is None or not self._matches(*credentials):
            logger.debug("Rejected unauthenticated %s %s", request.method, request.url.path)
            return Response(
                content="Unauthorized",
                status_code=401,
                headers={"WWW-Authenticate": 'Basic realm="fritzwatch"'},
            )
        return await call_next(request)

    def _matches(self, username: str, password: str) -> bool:
        # Timing-safe comparison
        username_ok = secrets.compare_digest(username.encode(), self.username.encode())
        password_ok = secrets.compare_digest(password.encode(), self.password.encode())
        return username_ok and password_ok


if settings.auth_password:
    app.add_middleware(
        BasicAuthMiddleware, username=settings.auth_username, password=settings.auth_password
    )
    logger.info("HTTP Basic Auth enabled")


from fritzwatch.api.routes import router as api_router  # noqa: E402

app.include_router(api_router)


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


def main() -> None:
    import uvicorn

    logger.info("Starting fritzwatch on %s:%d", settings.host, settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
