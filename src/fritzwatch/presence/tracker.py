"""Per-identity presence reconciliation.

Each tracked identity gets its own poll loop. A cycle asks the main router
first and only fans out to the repeaters when the router reports the host
as inactive. Presence is adopted immediately; absence only after the
identity's delay has passed without any positive answer. Timeouts and other
errors keep the last known state and are logged with back-off.
"""

import asyncio
import enum
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from fritzwatch.backoff import TIMEOUT_LOG_THRESHOLD, ErrorThrottle
from fritzwatch.events.sink import EventSink
from fritzwatch.presence.aggregator import ClassifiedError, RepeaterAggregator
from fritzwatch.query.base import DeviceQuery, Endpoint, OutcomeKind, normalize_address

logger = logging.getLogger(__name__)


class PresenceState(enum.StrEnum):
    present = "present"
    absent_pending = "absent_pending"
    absent = "absent"


def _timeout_throttle() -> ErrorThrottle:
    return ErrorThrottle(TIMEOUT_LOG_THRESHOLD)


@dataclass
class TrackedIdentity:
    """Reconciled presence of one MAC or IP address.

    Only the owning PresenceTracker mutates this, except for ``stop_polling``.
    """

    address: str
    name: str | None = None
    delay: float = 0.0  # seconds before present → absent
    last_presence: bool = False
    presence_timer_start: float | None = None
    stop_polling: bool = False
    pending_notified: bool = False
    timeouts: ErrorThrottle = field(default_factory=_timeout_throttle)
    other_errors: ErrorThrottle = field(default_factory=ErrorThrottle)
    repeater_timeouts: ErrorThrottle = field(default_factory=_timeout_throttle)
    repeater_errors: ErrorThrottle = field(default_factory=ErrorThrottle)

    def __post_init__(self) -> None:
        self.address = normalize_address(self.address)

    @property
    def label(self) -> str:
        return self.name or self.address

    @property
    def consecutive_timeouts(self) -> int:
        return self.timeouts.count

    @property
    def consecutive_other_errors(self) -> int:
        return self.other_errors.count

    @property
    def state(self) -> PresenceState:
        if not self.last_presence:
            return PresenceState.absent
        if self.presence_timer_start is not None:
            return PresenceState.absent_pending
        return PresenceState.present

    def reset_error_counters(self) -> None:
        self.timeouts.reset()
        self.other_errors.reset()


class PresenceTracker:
    """Runs the poll loop for a single TrackedIdentity."""

    def __init__(
        self,
        identity: TrackedIdentity,
        query: DeviceQuery,
        primary: Endpoint,
        aggregator: RepeaterAggregator | None = None,
        sink: EventSink | None = None,
        poll_interval: float = 5,
        paused_interval: float = 5,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.identity = identity
        self.query = query
        self.primary = primary
        self.aggregator = aggregator
        self.sink = sink or EventSink()
        self.poll_interval = poll_interval
        self.paused_interval = paused_interval
        self._clock = clock
        self._running = False
        self._task: asyncio.Task[None] | None = None

    async def start(self) -> None:
        logger.info(
            "Tracking presence of %s (%s), delay %gs",
            self.identity.label,
            self.identity.address,
            self.identity.delay,
        )
        self._running = True
        self._task = asyncio.create_task(self._poll_loop())

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    def pause(self) -> None:
        self.identity.stop_polling = True

    def resume(self) -> None:
        self.identity.stop_polling = False

    def snapshot(self) -> dict[str, Any]:
        ident = self.identity
        return {
            "address": ident.address,
            "name": ident.name,
            "present": ident.last_presence,
            "state": str(ident.state),
            "paused": ident.stop_polling,
            "delay": ident.delay,
            "consecutive_timeouts": ident.consecutive_timeouts,
            "consecutive_other_errors": ident.consecutive_other_errors,
        }

    async def _poll_loop(self) -> None:
        while self._running:
            if self.identity.stop_polling:
                # no query and no publish; the last reconciled state is held
                logger.debug(
                    "%s: polling paused, holding state %s",
                    self.identity.label,
                    self.identity.state,
                )
                interval = self.paused_interval
            else:
                try:
                    await self.poll_once()
                except asyncio.CancelledError:
                    raise
                except Exception:
                    logger.exception("Presence poll for %s failed", self.identity.label)
                interval = self.poll_interval
            await asyncio.sleep(interval)

    async def poll_once(self) -> PresenceState:
        """Run one query cycle and return the reconciled state."""
        ident = self.identity
        outcome = await self.query.query_active(self.primary, ident.address)

        if outcome.succeeded:
            ident.reset_error_counters()

        if outcome.kind == OutcomeKind.active:
            self._mark_present()
        elif outcome.kind == OutcomeKind.not_found:
            self._mark_absent()
        elif outcome.kind == OutcomeKind.inactive:
            await self._check_repeaters()
        elif outcome.kind == OutcomeKind.timeout:
            if ident.timeouts.record():
                logger.warning(
                    "%s: Connection to %s timed out repeatedly, trying again",
                    ident.label,
                    self.primary.label,
                )
        elif ident.other_errors.record():
            logger.error(
                "%s: Error getting presence state from %s, trying again: %s",
                ident.label,
                self.primary.label,
                outcome.detail,
            )
        return ident.state

    async def _check_repeaters(self) -> None:
        if self.aggregator is None or not self.aggregator.endpoints:
            self._mark_absent()
            return

        result = await self.aggregator.check_any(self.identity.address)
        self._log_repeater_errors(result.errors)
        if result.present:
            self._mark_present()
        elif result.all_failed:
            logger.debug(
                "%s: No repeater answered, keeping last state (%s)",
                self.identity.label,
                self.identity.state,
            )
        else:
            self._mark_absent()

    def _log_repeater_errors(self, errors: list[ClassifiedError]) -> None:
        ident = self.identity
        timeouts = [e for e in errors if e.kind == OutcomeKind.timeout]
        others = [e for e in errors if e.kind != OutcomeKind.timeout]

        if not timeouts:
            ident.repeater_timeouts.reset()
        elif ident.repeater_timeouts.record():
            logger.warning(
                "%s: Repeater connection timed out repeatedly (%s)",
                ident.label,
                ", ".join(e.endpoint for e in timeouts),
            )

        if not others:
            ident.repeater_errors.reset()
        elif ident.repeater_errors.record():
            for error in others:
                logger.error(
                    "%s: Error getting presence state from repeater %s: %s",
                    ident.label,
                    error.endpoint,
                    error.detail,
                )

    def _mark_present(self) -> None:
        ident = self.identity
        if ident.last_presence and ident.presence_timer_start is not None:
            logger.info("Presence detected again for %s", ident.label)
        ident.presence_timer_start = None
        ident.pending_notified = False

        if not ident.last_presence:
            ident.last_presence = True
            self.sink.on_presence_changed(ident.address, True, ident.name)

    def _mark_absent(self) -> None:
        ident = self.identity
        now = self._clock()
        if ident.presence_timer_start is None:
            ident.presence_timer_start = now

        elapsed = now - ident.presence_timer_start
        if ident.last_presence and ident.delay > 0 and elapsed <= ident.delay:
            if not ident.pending_notified:
                logger.warning(
                    "%s: No presence! Waiting %g seconds before switching to no presence",
                    ident.label,
                    ident.delay,
                )
                ident.pending_notified = True
            return

        ident.presence_timer_start = None
        if ident.last_presence:
            ident.last_presence = False
            if ident.pending_notified:
                logger.warning(
                    "%s: No presence after %g seconds, switching to no presence",
                    ident.label,
                    ident.delay,
                )
            else:
                logger.info("%s: Switching to no presence", ident.label)
            self.sink.on_presence_changed(ident.address, False, ident.name)
        ident.pending_notified = False
