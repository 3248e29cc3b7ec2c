"""Tests for the call monitor TCP client."""

import asyncio
from unittest.mock import MagicMock, patch

import pytest
from conftest import RecordingSink

from fritzwatch.callmonitor.client import CallMonitorClient
from fritzwatch.callmonitor.machine import CallMonitorStateMachine

LINES = (
    b"19.10.26 15:17:00;RING;0;0301234567;069876543;SIP0;\r\n"
    b"19.10.26 15:17:05;CONNECT;0;4;0301234567;\r\n"
    b"19.10.26 15:18:00;DISCONNECT;0;55;\r\n"
)


def _reader(data: bytes) -> asyncio.StreamReader:
    reader = asyncio.StreamReader()
    reader.feed_data(data)
    reader.feed_eof()
    return reader


@pytest.mark.asyncio
async def test_consume_feeds_machine_until_eof(sink: RecordingSink):
    machine = CallMonitorStateMachine(sink)
    client = CallMonitorClient("fritz.box", machine)

    await client.consume(_reader(LINES))

    assert len(sink.of("finalized")) == 1
    assert machine.open_calls == {}


@pytest.mark.asyncio
async def test_consume_survives_bad_line(sink: RecordingSink):
    machine = CallMonitorStateMachine(sink)
    machine.feed = MagicMock(side_effect=[RuntimeError("bad"), None, None])
    client = CallMonitorClient("fritz.box", machine)

    await client.consume(_reader(LINES))

    assert machine.feed.call_count == 3


@pytest.mark.asyncio
async def test_stream_end_resets_contact_state(sink: RecordingSink):
    machine = CallMonitorStateMachine(sink)
    client = CallMonitorClient("fritz.box", machine, reconnect_interval=60)
    writer = MagicMock()
    opened = asyncio.Event()

    async def fake_open_connection(host, port):
        opened.set()
        return _reader(LINES.splitlines(keepends=True)[0]), writer

    with patch("asyncio.open_connection", side_effect=fake_open_connection) as mock_open:
        await client.start()
        await asyncio.wait_for(opened.wait(), timeout=1)
        await asyncio.sleep(0.05)
        await client.stop()

    mock_open.assert_called_once_with("fritz.box", 1012)
    assert sink.of("contact") == [("contact", True), ("contact", False)]
    assert client.connected is False
    writer.close.assert_called_once()


@pytest.mark.asyncio
async def test_connection_failure_retries(sink: RecordingSink, caplog):
    machine = CallMonitorStateMachine(sink)
    client = CallMonitorClient("fritz.box", machine, reconnect_interval=0.01)

    with patch("asyncio.open_connection", side_effect=OSError("refused")) as mock_open:
        await client.start()
        await asyncio.sleep(0.1)
        await client.stop()

    assert mock_open.call_count > 1
    assert "Call monitor connection to fritz.box:1012 failed" in caplog.text
    assert client.connected is False
