"""Roster manager tests."""

import asyncio

import pytest

from backr.engine.roster import RosterManager, check_registration
from backr.utils.errors import DisabledError, DuplicateError

from helpers import make_event, participation


class TestCheckRegistration:
    def test_open_event(self):
        assert check_registration(make_event(), "u1", []) is None

    def test_registration_disabled(self):
        error = check_registration(make_event(registration_enabled=False), "u1", [])
        assert isinstance(error, DisabledError)
        assert error.details["feature"] == "registration"

    def test_admin_only_never_registers(self):
        error = check_registration(make_event(admin_only=True), "u1", [])
        assert isinstance(error, DisabledError)

    def test_already_registered(self):
        error = check_registration(make_event(), "u1", [participation("ev1", "u1")])
        assert isinstance(error, DuplicateError)
        assert error.details["recordId"] == "ev1_u1"


class TestRegister:
    @pytest.mark.asyncio
    async def test_register_creates_one_record(self, records, stored_event):
        roster = RosterManager("ev1", records)

        result = await roster.register(stored_event, "u1", "Alice")

        assert result.success
        assert result.value.display_name == "Alice"
        assert roster.is_participant("u1")
        assert [p.user_id for p in await records.participations("ev1")] == ["u1"]

    @pytest.mark.asyncio
    async def test_double_register_yields_one_record(
        self, suspending_records, records, stored_event
    ):
        roster = RosterManager("ev1", suspending_records)

        first, second = await asyncio.gather(
            roster.register(stored_event, "u1"),
            roster.register(stored_event, "u1"),
        )

        assert first.success != second.success
        assert (first if not first.success else second).is_duplicate
        assert len(await records.participations("ev1")) == 1

    @pytest.mark.asyncio
    async def test_racing_registrations_from_separate_rosters(
        self, suspending_records, records, stored_event
    ):
        results = await asyncio.gather(
            *(RosterManager("ev1", suspending_records).register(stored_event, "u1") for _ in range(3))
        )

        assert sum(r.success for r in results) == 1
        assert all(r.is_duplicate for r in results if not r.success)
        assert len(await records.participations("ev1")) == 1

    @pytest.mark.asyncio
    async def test_stale_roster_still_deduplicates(self, records, stored_event):
        await RosterManager("ev1", records).register(stored_event, "u1")

        result = await RosterManager("ev1", records).register(stored_event, "u1")

        assert result.is_duplicate
        assert result.notice == "You are already registered for this event"

    @pytest.mark.asyncio
    async def test_disabled_registration_no_write(self, records):
        event = make_event(registration_enabled=False)
        roster = RosterManager("ev1", records)

        result = await roster.register(event, "u1")

        assert isinstance(result.error, DisabledError)
        assert await records.participations("ev1") == []

    def test_snapshot_order_is_registration_order(self, records):
        roster = RosterManager("ev1", records)
        roster.apply_snapshot(
            [participation("ev1", "b"), participation("ev2", "z"), participation("ev1", "a")]
        )
        assert roster.participant_ids == ["b", "a"]
        assert not roster.is_participant(None)
        assert roster.contains("a")
        assert not roster.contains("z")
        assert not roster.contains(None)
