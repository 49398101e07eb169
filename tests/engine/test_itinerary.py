"""Tests for travel legs written into a room."""

from datetime import date

import pytest

from room_coordinator.engine.exchange import ExchangeResolver
from room_coordinator.engine.itinerary import (
    apply_travel_plan,
    plan_travel,
    refresh_travel_legs,
)
from room_coordinator.exceptions import SlotNotFoundError
from room_coordinator.models import Slot, SlotKind, TravelMode

MONDAY = date(2025, 3, 3)


def _legs(room):
    return [
        (s.member_id, s.date, s.start, s.end) for s in room.slots if s.kind == SlotKind.TRAVEL
    ]


@pytest.fixture
def located(room, members):
    """Owner and alice share a location; bob is 30 driving minutes away."""
    for member_id in ("owner", "alice"):
        members[member_id].latitude, members[member_id].longitude = 0.0, 0.0
    members["bob"].latitude, members["bob"].longitude = 0.17, 0.0
    room.slots = [
        Slot(member_id="alice", date=MONDAY, start="09:00", end="10:00", id="a1"),
        Slot(member_id="bob", date=MONDAY, start="11:00", end="12:00", id="b1"),
    ]
    return room


class TestPlanTravel:
    """Tests for plan_travel."""

    def test_leg_ends_at_class_start(self, located, members):
        plan = plan_travel(located, members, TravelMode.DRIVING)

        assert plan.is_feasible
        assert [(leg.member_id, leg.start, leg.end) for leg in plan.legs] == [
            ("bob", "10:30", "11:00")
        ]
        assert plan.legs[0].kind == SlotKind.TRAVEL
        assert plan.legs[0].subject == "travel"
        assert plan.travel_minutes == 30
        assert _legs(located) == []

    def test_no_travel_mode(self, located, members):
        plan = plan_travel(located, members, TravelMode.NONE)

        assert plan.legs == []
        assert plan.is_feasible

    def test_pushed_class_reported(self, located, members):
        located.slots[1] = Slot(member_id="bob", date=MONDAY, start="10:00", end="11:00", id="b1")

        plan = plan_travel(located, members, TravelMode.DRIVING)

        assert not plan.is_feasible
        assert [(e.member_id, e.shift_minutes) for e in plan.shifted] == [("bob", 30)]
        assert plan.to_dict()["shifted"][0]["date"] == "2025-03-03"

    def test_leg_before_midnight_clamped(self, room, members):
        members["owner"].latitude, members["owner"].longitude = 0.0, 0.0
        members["bob"].latitude, members["bob"].longitude = 0.17, 0.0
        room.slots = [Slot(member_id="bob", date=MONDAY, start="00:10", end="01:00")]

        plan = plan_travel(room, members, TravelMode.DRIVING)

        assert [(leg.start, leg.end) for leg in plan.legs] == [("00:00", "00:10")]


class TestApplyTravelPlan:
    """Tests for apply_travel_plan."""

    def test_writes_legs_and_mode(self, located, members):
        assert apply_travel_plan(located, plan_travel(located, members, TravelMode.DRIVING))

        assert located.travel_mode == TravelMode.DRIVING
        assert _legs(located) == [("bob", MONDAY, "10:30", "11:00")]
        assert [s.id for s in located.class_slots()] == ["a1", "b1"]

    def test_reapplying_changes_nothing(self, located, members):
        apply_travel_plan(located, plan_travel(located, members, TravelMode.DRIVING))
        leg_ids = [s.id for s in located.slots if s.kind == SlotKind.TRAVEL]

        assert not apply_travel_plan(located, plan_travel(located, members, TravelMode.DRIVING))
        assert [s.id for s in located.slots if s.kind == SlotKind.TRAVEL] == leg_ids

    def test_new_mode_replaces_legs(self, located, members):
        apply_travel_plan(located, plan_travel(located, members, TravelMode.DRIVING))
        apply_travel_plan(located, plan_travel(located, members, TravelMode.NONE))

        assert _legs(located) == []
        assert located.travel_mode == TravelMode.NONE

    def test_infeasible_plan_not_written(self, located, members):
        located.slots[1] = Slot(member_id="bob", date=MONDAY, start="10:00", end="11:00", id="b1")

        assert not apply_travel_plan(located, plan_travel(located, members, TravelMode.DRIVING))
        assert _legs(located) == []
        assert located.travel_mode == TravelMode.NONE

    def test_clears_confirmed_mode(self, located, members):
        located.confirmed_travel_mode = TravelMode.WALKING

        apply_travel_plan(located, plan_travel(located, members, TravelMode.DRIVING))

        assert located.confirmed_travel_mode is None
        assert located.effective_travel_mode == TravelMode.DRIVING


class TestRefreshTravelLegs:
    """Tests for refresh_travel_legs."""

    def test_follows_moved_class(self, located, members):
        apply_travel_plan(located, plan_travel(located, members, TravelMode.DRIVING))
        located.slots = [s for s in located.slots if s.id != "b1"]
        located.slots.append(Slot(member_id="bob", date=MONDAY, start="11:30", end="12:30"))

        assert refresh_travel_legs(located, members)
        assert _legs(located) == [("bob", MONDAY, "11:00", "11:30")]

    def test_room_without_legs_untouched(self, located, members):
        located.travel_mode = TravelMode.DRIVING

        assert not refresh_travel_legs(located, members)
        assert _legs(located) == []

    def test_legs_cannot_be_requested(self, located, members):
        apply_travel_plan(located, plan_travel(located, members, TravelMode.DRIVING))
        leg = next(s for s in located.slots if s.kind == SlotKind.TRAVEL)

        with pytest.raises(SlotNotFoundError):
            ExchangeResolver(located, members).create_request(
                "alice", "bob", leg.id, "slot_request"
            )
