"""Tests for the household "anyone at home" aggregate."""

from conftest import RecordingSink

from fritzwatch.presence.household import HouseholdPresence


def test_first_arrival_flips_anyone(sink: RecordingSink):
    household = HouseholdPresence(sink)
    household.track("alice", False)
    household.track("bob", False)

    household.on_presence_changed("alice", True, "Alice")

    assert sink.events == [("presence", "alice", True), ("anyone", True)]


def test_second_arrival_does_not_republish(sink: RecordingSink):
    household = HouseholdPresence(sink, initial={"alice": True, "bob": False})

    household.on_presence_changed("bob", True)

    assert sink.of("anyone") == []
    assert household.anyone is True


def test_last_departure_flips_anyone(sink: RecordingSink):
    household = HouseholdPresence(sink, initial={"alice": True, "bob": True})

    household.on_presence_changed("alice", False)
    assert sink.of("anyone") == []

    household.on_presence_changed("bob", False)
    assert sink.of("anyone") == [("anyone", False)]
    assert household.anyone is False


def test_track_is_silent(sink: RecordingSink):
    household = HouseholdPresence(sink)
    household.track("alice", True)

    assert sink.events == []
    assert household.anyone is True


def test_unknown_identity_is_added(sink: RecordingSink):
    household = HouseholdPresence(sink)

    household.on_presence_changed("carol", True)

    assert household.states == {"carol": True}
    assert sink.of("anyone") == [("anyone", True)]
