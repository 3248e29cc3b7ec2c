"""TCP client for the FRITZ!Box call monitor (port 1012).

The call monitor has to be enabled on the router once by dialing #96*5*.
"""

import asyncio
import logging

from fritzwatch.callmonitor.machine import CallMonitorStateMachine

logger = logging.getLogger(__name__)

DEFAULT_PORT = 1012


class CallMonitorClient:
    """Streams call monitor lines into a state machine, reconnecting on failure."""

    def __init__(
        self,
        host: str,
        machine: CallMonitorStateMachine,
        port: int = DEFAULT_PORT,
        reconnect_interval: float = 30,
    ) -> None:
        self.host = host
        self.port = port
        self.machine = machine
        self.reconnect_interval = reconnect_interval
        self.connected = False
        self._running = False
        self._task: asyncio.Task[None] | None = None

    async def start(self) -> None:
        logger.info("Starting call monitor on %s:%d", self.host, self.port)
        self._running = True
        self._task = asyncio.create_task(self._run_loop())

    async def stop(self) -> None:
        logger.info("Stopping call monitor")
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    async def _run_loop(self) -> None:
        while self._running:
            try:
                reader, writer = await asyncio.open_connection(self.host, self.port)
            except asyncio.CancelledError:
                raise
            except OSError as e:
                logger.warning(
                    "Call monitor connection to %s:%d failed (%s), retrying in %ss",
                    self.host,
                    self.port,
                    e,
                    self.reconnect_interval,
                )
                await asyncio.sleep(self.reconnect_interval)
                continue

            logger.info("Call monitor connected to %s:%d", self.host, self.port)
            self.connected = True
            try:
                await self.consume(reader)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Call monitor stream error")
            finally:
                self.connected = False
                self.machine.reset()
                writer.close()

            if self._running:
                logger.info("Call monitor stream closed, reconnecting in %ss", self.reconnect_interval)
                await asyncio.sleep(self.reconnect_interval)

    async def consume(self, reader: asyncio.StreamReader) -> None:
        """Feed lines to the state machine until the stream ends."""
        while True:
            line = await reader.readline()
            if not line:
                logger.warning("Call monitor stream ended")
                return
            try:
                self.machine.feed(line)
            except Exception:
                logger.exception("Failed to process call monitor line %r", line)
