"""Tests for the CoordinationService facade."""

from datetime import date, datetime, timedelta

import pytest

from room_coordinator.engine.persistence import InMemoryStore
from room_coordinator.engine.service import CoordinationService
from room_coordinator.exceptions import PermissionDeniedError
from room_coordinator.models import PreferenceWindow, RequestStatus, Slot, SlotKind, TravelMode

WEEK_START = date(2025, 3, 2)
MONDAY = date(2025, 3, 3)
TUESDAY = date(2025, 3, 4)
WEDNESDAY = date(2025, 3, 5)
NOW = datetime(2025, 3, 1, 12, 0)


def _store(room, members):
    store = InMemoryStore()
    for member in members.values():
        store.save_member(member)
    store.save_room(room)
    return store


def _layout(room):
    return sorted((s.member_id, s.date, s.start, s.end) for s in room.slots)


@pytest.fixture
def service(store, bus, audit):
    return CoordinationService(store, bus, audit, clock=lambda: NOW)


class TestAllocate:
    """Tests for CoordinationService.allocate."""

    def test_persists_slots_and_history(self, service, store):
        report = service.allocate("room-1", WEEK_START)

        room = store.get_room("room-1")
        assert len(room.slots) == len(report.slots) == 3
        assert room.get_room_member("alice").carry_over_history[-1].week == WEEK_START

    def test_emits_and_audits(self, service, bus, audit):
        service.allocate("room-1", WEEK_START)

        payload = bus.events_for("room-1", "schedule-allocated")[0].payload
        assert payload["week_start"] == "2025-03-02"
        assert payload["slot_count"] == 3
        entry = audit.for_room("room-1", "auto_assign")[0]
        assert entry.actor_name == "Auto-confirm"

    def test_owner_named_in_audit(self, service, audit):
        service.allocate("room-1", WEEK_START, actor_id="owner")
        assert audit.for_room("room-1", "auto_assign")[0].actor_name == "Olga"

    def test_members_cannot_allocate(self, service, store):
        with pytest.raises(PermissionDeniedError):
            service.allocate("room-1", WEEK_START, actor_id="alice")
        assert store.get_room("room-1").slots == []


class TestSimulate:
    """Tests for CoordinationService.simulate."""

    def test_reads_stored_room(self, service):
        assert service.simulate("room-1", "alice", MONDAY, "09:00", 60).is_valid
        result = service.simulate("room-1", "carol", MONDAY, "09:00", 60)
        assert result.reason == "No preference windows on this date"


class TestTravelMode:
    """Tests for CoordinationService.apply_travel_mode."""

    @pytest.fixture
    def located_store(self, room, members):
        for member_id in ("owner", "alice"):
            members[member_id].latitude, members[member_id].longitude = 0.0, 0.0
        members["bob"].latitude, members["bob"].longitude = 0.17, 0.0
        room.slots = [
            Slot(member_id="alice", date=MONDAY, start="09:00", end="10:00", id="a1"),
            Slot(member_id="bob", date=MONDAY, start="11:00", end="12:00", id="b1"),
        ]
        return _store(room, members)

    def test_applies_and_persists(self, located_store, bus, audit):
        service = CoordinationService(located_store, bus, audit)

        plan = service.apply_travel_mode("room-1", "driving", "owner")

        assert plan.is_feasible
        room = located_store.get_room("room-1")
        assert room.travel_mode == TravelMode.DRIVING
        legs = [s for s in room.slots if s.kind == SlotKind.TRAVEL]
        assert [(s.member_id, s.start, s.end) for s in legs] == [("bob", "10:30", "11:00")]
        assert audit.for_room("room-1", "apply_travel_mode")[0].actor_name == "Olga"
        payload = bus.events_for("room-1", "travel-mode-applied")[0].payload
        assert payload == {"travel_mode": "driving", "leg_count": 1, "travel_minutes": 30}

    def test_infeasible_mode_saves_nothing(self, located_store, bus, audit):
        room = located_store.get_room("room-1")
        room.slots[1] = Slot(member_id="bob", date=MONDAY, start="10:00", end="11:00", id="b1")
        located_store.save_room(room)
        service = CoordinationService(located_store, bus, audit)

        plan = service.apply_travel_mode("room-1", TravelMode.DRIVING, "owner")

        assert not plan.is_feasible
        stored = located_store.get_room("room-1")
        assert stored.version == 2
        assert stored.travel_mode == TravelMode.NONE
        assert bus.events_for("room-1", "travel-mode-applied") == []

    def test_members_cannot_apply(self, located_store):
        with pytest.raises(PermissionDeniedError):
            CoordinationService(located_store).apply_travel_mode("room-1", "driving", "alice")


class TestExchange:
    """Exchange calls persist the room and publish every event."""

    def test_request_and_approve(self, room, members, bus, audit):
        room.slots = [Slot(member_id="bob", date=TUESDAY, start="14:00", end="15:00", id="b1")]
        store = _store(room, members)
        service = CoordinationService(store, bus, audit, clock=lambda: NOW)

        request = service.create_request("room-1", "alice", "bob", "b1").request
        outcome = service.respond("room-1", request.id, "bob", "approve")

        assert outcome.status == RequestStatus.APPROVED
        stored = store.get_room("room-1")
        assert stored.get_request(request.id).status == RequestStatus.APPROVED
        assert _layout(stored) == [
            ("alice", TUESDAY, "14:00", "15:00"),
            ("bob", TUESDAY, "15:00", "16:00"),
        ]
        assert [e.actor_name for e in audit.for_room("room-1", "slot_request")] == [
            "Alice",
            "Bob",
        ]
        events = bus.events_for("room-1", "exchange-request-updated")
        assert len(events) == 2
        assert events[-1].payload["status"] == "approved"
        assert events[-1].payload["notify"] == ["alice"]

    def test_rejected_call_saves_nothing(self, room, members, bus, audit):
        room.slots = [Slot(member_id="bob", date=TUESDAY, start="14:00", end="15:00", id="b1")]
        store = _store(room, members)
        service = CoordinationService(store, bus, audit)

        with pytest.raises(PermissionDeniedError):
            service.create_request("room-1", "owner", "bob", "b1")

        stored = store.get_room("room-1")
        assert stored.requests == []
        assert stored.version == 1
        assert bus.notifications == []

    def test_chain_resumes_from_store(self, room, members, bus, audit):
        members["bob"].recurring_windows = [
            PreferenceWindow("10:00", "11:00", weekday=2),
            PreferenceWindow("14:00", "15:00", weekday=2),
        ]
        members["carol"].recurring_windows.append(PreferenceWindow("10:00", "11:00", weekday=3))
        room.slots = [
            Slot(member_id="bob", date=TUESDAY, start="14:00", end="15:00", id="b1"),
            Slot(member_id="carol", date=TUESDAY, start="10:00", end="11:00", id="c1"),
        ]
        store = _store(room, members)
        service = CoordinationService(store, bus, audit, clock=lambda: NOW)

        root = service.create_request("room-1", "alice", "bob", "b1").request
        outcome = service.respond("room-1", root.id, "bob", "approve")
        assert outcome.status == RequestStatus.NEEDS_CHAIN_CONFIRMATION

        hop = service.confirm_chain("room-1", root.id, "alice", "proceed").created_request
        service.respond("room-1", hop.id, "carol", "approve")

        stored = store.get_room("room-1")
        assert stored.get_request(root.id).status == RequestStatus.APPROVED
        assert _layout(stored) == [
            ("alice", TUESDAY, "14:00", "15:00"),
            ("bob", TUESDAY, "10:00", "11:00"),
            ("carol", WEDNESDAY, "10:00", "11:00"),
        ]

    def test_cancel_request(self, room, members, bus, audit):
        room.slots = [Slot(member_id="bob", date=TUESDAY, start="14:00", end="15:00", id="b1")]
        store = _store(room, members)
        service = CoordinationService(store, bus, audit)

        request = service.create_request("room-1", "alice", "bob", "b1").request
        service.cancel_request("room-1", request.id, "alice")

        assert store.get_room("room-1").requests[0].status == RequestStatus.CANCELLED


class TestConfirmAndDeadline:
    """Commit entry points share the service's store, bus and audit log."""

    def test_allocate_then_auto_confirm(self, service, store, bus):
        service.allocate("room-1", WEEK_START)
        service.arm_auto_confirm("room-1", 30)

        report = service.fire_due_deadlines(now=NOW + timedelta(minutes=30))

        assert report.confirmed_room_ids == ["room-1"]
        assert all(s.confirmed_to_calendar for s in store.get_room("room-1").slots)
        assert len(bus.events_for("room-1", "schedule-confirmed")) == 1

    def test_confirm_and_reset(self, service, store):
        service.allocate("room-1", WEEK_START)
        assert service.confirm("room-1", "owner", "Olga").slot_count == 3

        result = service.reset_schedule("room-1", "owner", "Olga")

        assert result.removed_slot_count == 3
        assert store.get_member("alice").personal_calendar == []

    def test_cancel_auto_confirm(self, service):
        service.arm_auto_confirm("room-1", 30)
        assert service.cancel_auto_confirm("room-1") is True
