"""Webhook notifications rendered from message templates.

Templates use ``@`` for the person or caller and ``%`` for the called
number. An empty template disables that notification.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import httpx

from fritzwatch.callmonitor.models import CallDirection, CallRecord
from fritzwatch.events.sink import EventSink, describe_caller

logger = logging.getLogger(__name__)


@dataclass
class MessageTemplates:
    presence_on: str | None = None
    presence_off: str | None = None
    anyone_on: str | None = None
    anyone_off: str | None = None
    incoming: str | None = None
    disconnected: str | None = None


class WebhookSink(EventSink):
    """POSTs a JSON payload to a webhook for every templated event."""

    def __init__(
        self,
        url: str,
        templates: MessageTemplates,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url
        self.templates = templates
        self.timeout = timeout
        self._transport = transport
        self._pending: set[asyncio.Task[bool]] = set()

    def on_presence_changed(self, identity: str, present: bool, name: str | None = None) -> None:
        template = self.templates.presence_on if present else self.templates.presence_off
        if template:
            self._schedule(
                "arrive" if present else "depart",
                template.replace("@", name or identity),
                device={"address": identity, "name": name or identity},
            )

    def on_anyone_changed(self, present: bool) -> None:
        template = self.templates.anyone_on if present else self.templates.anyone_off
        if template:
            self._schedule("anyone_on" if present else "anyone_off", template)

    def on_call_started(self, record: CallRecord) -> None:
        if record.direction != CallDirection.inbound or not self.templates.incoming:
            return
        message = self.templates.incoming.replace("@", describe_caller(record)).replace(
            "%", record.participants.called
        )
        self._schedule("incoming_call", message, call=_call_payload(record))

    def on_call_finalized(self, record: CallRecord) -> None:
        if record.direction != CallDirection.inbound or not self.templates.disconnected:
            return
        message = self.templates.disconnected.replace("@", describe_caller(record))
        self._schedule("call_disconnected", message, call=_call_payload(record))

    def _schedule(self, event: str, message: str, **extra: Any) -> None:
        payload = {
            "event": event,
            "message": message,
            "timestamp": datetime.now(UTC).isoformat(),
            **extra,
        }
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop, webhook for %s dropped", event)
            return
        task = loop.create_task(self.deliver(payload))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def deliver(self, payload: dict[str, Any]) -> bool:
        """POST one payload. Returns True on a 2xx answer; never raises."""
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.url, json=payload)
        except httpx.HTTPError as e:
            logger.error("Webhook dispatch error: %s → %s: %s", payload["event"], self.url, e)
            return False

        if response.is_success:
            logger.info(
                "Webhook delivered: %s → %s (HTTP %d)",
                payload["event"],
                self.url,
                response.status_code,
            )
        else:
            logger.warning(
                "Webhook failed: %s → %s (HTTP %d)",
                payload["event"],
                self.url,
                response.status_code,
            )
        return response.is_success

    async def drain(self) -> None:
        """Wait for all scheduled deliveries to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


def _call_payload(record: CallRecord) -> dict[str, Any]:
    return {
        "id": record.call_id,
        "direction": str(record.direction),
        "caller": record.participants.caller,
        "called": record.participants.called,
        "caller_name": record.caller_name,
        "duration": record.duration_sec,
    }
