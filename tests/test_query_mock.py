"""Tests for the scripted lookup backend and outcome classification."""

import pytest

from fritzwatch.errors import NotFoundError, OtherProtocolError, QueryTimeoutError
from fritzwatch.query.base import Endpoint, OutcomeKind, QueryOutcome, normalize_address
from fritzwatch.query.mock import ScriptedQuery, random_presence

ROUTER = Endpoint(host="fritz.box", timeout=0.05)


class TestNormalizeAddress:
    def test_mac_variants(self):
        assert normalize_address("aa-bb-cc-dd-ee-ff") == "AA:BB:CC:DD:EE:FF"
        assert normalize_address("aabbccddeeff") == "AA:BB:CC:DD:EE:FF"
        assert normalize_address(" aa:bb:cc:dd:ee:ff ") == "AA:BB:CC:DD:EE:FF"

    def test_ip_untouched(self):
        assert normalize_address("192.168.178.20") == "192.168.178.20"
        assert normalize_address("fe80::1") == "fe80::1"


class TestScriptedQuery:
    @pytest.mark.asyncio
    async def test_steps_then_last_repeats(self):
        query = ScriptedQuery({"fritz.box": [True, False]})
        results = [await query.fetch_active(ROUTER, "x") for _ in range(3)]
        assert results == [True, False, False]
        assert query.calls == [("fritz.box", "x")] * 3

    @pytest.mark.asyncio
    async def test_default_for_unknown_host(self):
        query = ScriptedQuery(default=True)
        assert await query.fetch_active(ROUTER, "x") is True

    @pytest.mark.asyncio
    async def test_callable_step(self):
        query = ScriptedQuery({"fritz.box": [lambda: True]})
        assert await query.fetch_active(ROUTER, "x") is True

    @pytest.mark.asyncio
    async def test_random_presence_extremes(self):
        assert random_presence(1.0)() is True
        assert random_presence(0.0)() is False


class TestQueryActive:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("step", "kind"),
        [
            (True, OutcomeKind.active),
            (False, OutcomeKind.inactive),
            (NotFoundError("gone"), OutcomeKind.not_found),
            (QueryTimeoutError("slow"), OutcomeKind.timeout),
            (OtherProtocolError("boom"), OutcomeKind.error),
            (RuntimeError("unexpected"), OutcomeKind.error),
        ],
    )
    async def test_classification(self, step, kind):
        query = ScriptedQuery({"fritz.box": [step]})
        outcome = await query.query_active(ROUTER, "x")
        assert outcome.kind == kind

    @pytest.mark.asyncio
    async def test_slow_endpoint_degrades_to_timeout(self):
        query = ScriptedQuery(default=True, delay=1.0)
        outcome = await query.query_active(ROUTER, "x")
        assert outcome.kind == OutcomeKind.timeout

    def test_outcome_helpers(self):
        assert QueryOutcome.from_active(True).present
        assert not QueryOutcome.from_active(False).present
        assert QueryOutcome(OutcomeKind.not_found).succeeded
        assert not QueryOutcome(OutcomeKind.error, "x").succeeded
