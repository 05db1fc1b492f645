"""Event configuration controller tests."""

import pytest

from backr.engine.controller import (
    EventConfigController,
    EventDraft,
    build_admin_event,
    build_event,
    resolve_toggle,
    search_events,
)
from backr.engine.models import ToggleField
from backr.utils.errors import (
    AuthorizationError,
    NotFoundError,
    TransportError,
    ValidationError,
)

from helpers import make_event, seed_managed


def _draft(**overrides) -> EventDraft:
    fields = {"title": "Cup Final", "description": "Who wins?", "tag": "#Sports"}
    fields.update(overrides)
    return EventDraft(**fields)


# =============================================================================
# Pure builders
# =============================================================================


class TestBuildEvent:
    def test_valid_draft(self):
        result = build_event(_draft(max_backings_per_user=3), "u1", "alice")

        event = result.unwrap()
        assert event.tag == "Sports"
        assert event.tag_lower == "sports"
        assert event.creator_id == "u1"
        assert event.creator_name == "alice"
        assert event.max_backings_per_user == 3
        assert not event.is_admin_only

    @pytest.mark.parametrize(
        "overrides, field",
        [
            ({"title": "  "}, "title"),
            ({"description": ""}, "description"),
            ({"tag": "#"}, "tag"),
            ({"max_backings_per_user": 0}, "max_backings_per_user"),
            ({"max_backings_per_user": True}, "max_backings_per_user"),
        ],
    )
    def test_invalid_draft(self, overrides, field):
        result = build_event(_draft(**overrides), "u1")
        assert isinstance(result.error, ValidationError)
        assert result.error.details["field"] == field

    def test_anonymous_creator_rejected(self):
        result = build_event(_draft(), None)
        assert isinstance(result.error, AuthorizationError)

    def test_admin_event_overrides_toggles_and_quota(self):
        draft = _draft(max_backings_per_user=7, registration_enabled=True, backing_enabled=True)

        event = build_admin_event(draft, "u1").unwrap()

        assert event.is_admin_only
        assert not event.registration_enabled
        assert not event.backing_enabled
        assert event.max_backings_per_user == 0


class TestHelpers:
    def test_resolve_toggle_aliases(self):
        assert resolve_toggle("backingEnabled") is ToggleField.BACKING_ENABLED
        assert resolve_toggle("registration_enabled") is ToggleField.REGISTRATION_ENABLED
        assert resolve_toggle(ToggleField.BACKING_ENABLED) is ToggleField.BACKING_ENABLED
        assert resolve_toggle("isAdminOnly") is None

    def test_search_events(self):
        events = [
            make_event("e1", title="Cup Final", tag="Sports", creator_name="alice"),
            make_event("e2", title="Bake Off", tag="Food", creator_name="bob"),
        ]
        assert [e.event_id for e in search_events(events, "#sports")] == ["e1"]
        assert [e.event_id for e in search_events(events, "BOB")] == ["e2"]
        assert [e.event_id for e in search_events(events, "bake")] == ["e2"]
        assert len(search_events(events, "  ")) == 2


# =============================================================================
# Controller against the store
# =============================================================================


class TestController:
    @pytest.mark.asyncio
    async def test_create_and_load(self, records):
        controller = EventConfigController(records)

        created = await controller.create_event(_draft(), "u1")
        loaded = await controller.load(created.value.event_id)

        assert loaded.value == created.value

    @pytest.mark.asyncio
    async def test_load_unknown(self, records):
        result = await EventConfigController(records).load("missing")
        assert isinstance(result.error, NotFoundError)

    @pytest.mark.asyncio
    async def test_create_admin_event_seeds_participants(self, records):
        controller = EventConfigController(records)

        result = await controller.create_admin_event(
            _draft(), "u1", participant_names=["H1", " ", "H2"]
        )

        managed = await records.managed_participants(result.value.event_id)
        assert [(m.name, m.points) for m in managed] == [("H1", 0), ("H2", 0)]

    @pytest.mark.asyncio
    async def test_set_toggle_by_creator(self, records, stored_event):
        controller = EventConfigController(records)

        result = await controller.set_toggle("ev1", "backingEnabled", False, "creator")

        assert result.success
        assert not result.value.backing_enabled
        assert not (await records.get_event("ev1")).backing_enabled

    @pytest.mark.asyncio
    async def test_set_toggle_by_stranger(self, records, stored_event):
        result = await EventConfigController(records).set_toggle(
            "ev1", "backingEnabled", False, "stranger"
        )
        assert isinstance(result.error, AuthorizationError)
        assert (await records.get_event("ev1")).backing_enabled

    @pytest.mark.asyncio
    async def test_authorization_checked_before_field(self, records, stored_event):
        result = await EventConfigController(records).set_toggle(
            "ev1", "isAdminOnly", True, "stranger"
        )
        assert isinstance(result.error, AuthorizationError)

    @pytest.mark.asyncio
    async def test_unknown_toggle(self, records, stored_event):
        result = await EventConfigController(records).set_toggle(
            "ev1", "maxBackingsPerUser", True, "creator"
        )
        assert isinstance(result.error, ValidationError)

    @pytest.mark.asyncio
    async def test_toggle_on_admin_event_is_direct_write(self, records):
        event = make_event(admin_only=True)
        await records.create_event(event)

        result = await EventConfigController(records).set_toggle(
            "ev1", ToggleField.REGISTRATION_ENABLED, True, "creator"
        )

        assert result.value.registration_enabled
        assert result.value.is_admin_only

    @pytest.mark.asyncio
    async def test_set_toggle_transport_failure(self, records, memory_store, stored_event):
        memory_store.disconnect()
        result = await EventConfigController(records).set_toggle(
            "ev1", "backingEnabled", False, "creator"
        )
        assert isinstance(result.error, TransportError)


class TestManagedParticipants:
    @pytest.mark.asyncio
    async def test_add_and_score(self, records):
        event = make_event(admin_only=True)
        await records.create_event(event)
        controller = EventConfigController(records)

        added = await controller.add_managed_participant(event, "H1", "creator")
        scored = await controller.set_points(event, added.value.participant_id, -3, "creator")

        assert scored.value.points == -3
        stored = await records.get_managed_participant(added.value.participant_id)
        assert stored.points == -3

    @pytest.mark.asyncio
    async def test_only_creator(self, records):
        event = make_event(admin_only=True)
        await seed_managed(records, "ev1", ("h1", "H1", 0))
        controller = EventConfigController(records)

        added = await controller.add_managed_participant(event, "H2", "stranger")
        scored = await controller.set_points(event, "h1", 5, "stranger")

        assert isinstance(added.error, AuthorizationError)
        assert isinstance(scored.error, AuthorizationError)

    @pytest.mark.asyncio
    async def test_public_event_has_no_managed_participants(self, records, stored_event):
        result = await EventConfigController(records).add_managed_participant(
            stored_event, "H1", "creator"
        )
        assert isinstance(result.error, ValidationError)

    @pytest.mark.asyncio
    async def test_points_must_be_integer(self, records):
        event = make_event(admin_only=True)
        await seed_managed(records, "ev1", ("h1", "H1", 0))
        controller = EventConfigController(records)

        for bad in ("10", 1.5, True):
            result = await controller.set_points(event, "h1", bad, "creator")
            assert isinstance(result.error, ValidationError)

    @pytest.mark.asyncio
    async def test_participant_of_other_event(self, records):
        await seed_managed(records, "other", ("h1", "H1", 0))
        result = await EventConfigController(records).set_points(
            make_event(admin_only=True), "h1", 5, "creator"
        )
        assert isinstance(result.error, ValidationError)
