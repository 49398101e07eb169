"""Tests for data models."""

from datetime import date, datetime

import pytest

from room_coordinator.exceptions import (
    InvalidPriorityError,
    InvalidRangeError,
    InvalidTimeFormatError,
    MissingFieldError,
)
from room_coordinator.models import (
    ALLOWED_TRANSITIONS,
    BlockedWindow,
    BlockingCommitment,
    CarryOverEntry,
    DateException,
    ExchangeRequest,
    Member,
    PreferenceWindow,
    RequestStatus,
    RequestType,
    Room,
    RoomMember,
    RoomSettings,
    Slot,
    SlotKind,
    SlotRef,
    TravelMode,
)


class TestPreferenceWindow:
    """Tests for PreferenceWindow."""

    def test_recurring_window(self):
        window = PreferenceWindow("9:00", "12:00", weekday=1)
        assert window.start == "09:00"
        assert window.duration_minutes == 180
        assert window.is_recurring
        assert window.applies_to(date(2025, 3, 3))
        assert not window.applies_to(date(2025, 3, 4))

    def test_weekday_seven_is_sunday(self):
        window = PreferenceWindow("09:00", "10:00", weekday=7)
        assert window.weekday == 0
        assert window.applies_to(date(2025, 3, 2))

    def test_date_window_derives_weekday(self):
        window = PreferenceWindow("09:00", "10:00", specific_date="2025-03-04")
        assert window.weekday == 2
        assert not window.is_recurring
        assert window.applies_to(date(2025, 3, 4))
        assert not window.applies_to(date(2025, 3, 11))

    def test_empty_range_rejected(self):
        with pytest.raises(InvalidRangeError):
            PreferenceWindow("10:00", "10:00", weekday=1)

    def test_invalid_priority(self):
        with pytest.raises(InvalidPriorityError):
            PreferenceWindow("09:00", "10:00", weekday=1, priority=4)

    def test_bool_priority_rejected(self):
        with pytest.raises(InvalidPriorityError):
            PreferenceWindow("09:00", "10:00", weekday=1, priority=True)

    def test_needs_weekday_or_date(self):
        with pytest.raises(MissingFieldError):
            PreferenceWindow("09:00", "10:00")

    def test_invalid_time(self):
        with pytest.raises(InvalidTimeFormatError):
            PreferenceWindow("09:00", "25:00", weekday=1)

    def test_key(self):
        assert PreferenceWindow("09:00", "10:00", weekday=1).key == ("weekday", 1)
        dated = PreferenceWindow("09:00", "10:00", specific_date=date(2025, 3, 4))
        assert dated.key == ("date", "2025-03-04")

    def test_with_range_keeps_key_and_priority(self):
        window = PreferenceWindow("09:00", "12:00", weekday=1, priority=3)
        piece = window.with_range(600, 660)
        assert (piece.start, piece.end) == ("10:00", "11:00")
        assert piece.priority == 3
        assert piece.weekday == 1

    def test_from_dict_missing_start(self):
        with pytest.raises(MissingFieldError):
            PreferenceWindow.from_dict({"end": "10:00", "weekday": 1})


class TestBlockingCommitment:
    """Tests for BlockingCommitment."""

    def test_recurring(self):
        commitment = BlockingCommitment("Work", "09:00", "17:00", weekdays=[1, 7])
        assert commitment.weekdays == [0, 1]
        assert commitment.applies_to(date(2025, 3, 2))
        assert not commitment.applies_to(date(2025, 3, 4))

    def test_single_date(self):
        commitment = BlockingCommitment("Dentist", "10:00", "11:00", specific_date="2025-03-04")
        assert commitment.applies_to(date(2025, 3, 4))

    def test_needs_weekdays_or_date(self):
        with pytest.raises(MissingFieldError):
            BlockingCommitment("Nothing", "10:00", "11:00")


class TestSlot:
    """Tests for Slot and SlotRef."""

    def test_slot_properties(self):
        slot = Slot(member_id="alice", date="2025-03-03", start="10:00", end="11:30")
        assert slot.date == date(2025, 3, 3)
        assert slot.weekday == 1
        assert slot.duration_minutes == 90
        assert slot.kind == SlotKind.CLASS
        assert not slot.confirmed_to_calendar

    def test_generated_ids_differ(self):
        first = Slot(member_id="alice", date="2025-03-03", start="10:00", end="11:00")
        second = Slot(member_id="alice", date="2025-03-03", start="10:00", end="11:00")
        assert first.id != second.id

    def test_empty_slot_rejected(self):
        with pytest.raises(InvalidRangeError):
            Slot(member_id="alice", date="2025-03-03", start="11:00", end="10:00")

    def test_ref_equality(self):
        slot = Slot(member_id="alice", date="2025-03-03", start="10:00", end="11:00")
        assert slot.ref() == SlotRef("2025-03-03", "10:00", "11:00")
        assert str(slot.ref()) == "2025-03-03 10:00-11:00"

    def test_from_dict_kind(self):
        slot = Slot.from_dict(
            {
                "id": "s1",
                "member_id": "alice",
                "date": "2025-03-03",
                "start": "10:00",
                "end": "11:00",
                "kind": "travel",
            }
        )
        assert slot.id == "s1"
        assert slot.kind == SlotKind.TRAVEL


class TestRoomSettings:
    """Tests for RoomSettings."""

    def test_defaults(self):
        settings = RoomSettings()
        assert settings.day_bounds == (540, 1080)
        assert settings.min_class_duration_minutes == 60

    def test_negative_hours_rejected(self):
        with pytest.raises(InvalidRangeError):
            RoomSettings(min_hours_per_week=-1)

    def test_blocked_ranges_for(self):
        settings = RoomSettings(
            blocked_windows=[BlockedWindow("Lunch", "12:00", "13:00")],
            date_exceptions=[DateException(date(2025, 3, 4), "15:00", "16:00", "Repair")],
        )
        assert settings.blocked_ranges_for(date(2025, 3, 3)) == [(720, 780, "Lunch")]
        assert settings.blocked_ranges_for(date(2025, 3, 4)) == [
            (720, 780, "Lunch"),
            (900, 960, "Repair"),
        ]


class TestRoom:
    """Tests for Room."""

    @pytest.fixture
    def room(self):
        return Room(
            id="r1",
            owner_id="owner",
            members=[
                RoomMember("owner", joined_at=datetime(2025, 1, 1)),
                RoomMember("late", joined_at=datetime(2025, 2, 1)),
                RoomMember("early", joined_at=datetime(2025, 1, 15)),
                RoomMember("unknown"),
            ],
            slots=[
                Slot(member_id="early", date="2025-03-03", start="10:00", end="11:00"),
                Slot(
                    member_id="early",
                    date="2025-03-03",
                    start="09:30",
                    end="10:00",
                    kind=SlotKind.TRAVEL,
                ),
            ],
        )

    def test_join_index(self, room):
        assert room.join_index("owner") == 0
        assert room.join_index("early") == 1
        assert room.join_index("late") == 2
        assert room.join_index("unknown") == 3

    def test_non_owner_members(self, room):
        assert [m.member_id for m in room.non_owner_members()] == ["late", "early", "unknown"]

    def test_class_slots_only(self, room):
        assert len(room.slots) == 2
        assert len(room.class_slots()) == 1
        assert len(room.slots_for("early")) == 1
        assert len(room.slots_on(date(2025, 3, 3))) == 1

    def test_effective_travel_mode(self, room):
        assert room.effective_travel_mode == TravelMode.NONE
        room.travel_mode = TravelMode.WALKING
        room.confirmed_travel_mode = TravelMode.DRIVING
        assert room.effective_travel_mode == TravelMode.DRIVING

    def test_round_trip_keeps_requests(self, room):
        room.requests.append(
            ExchangeRequest(
                type=RequestType.SLOT_REQUEST,
                requester_id="late",
                target_member_id="early",
                target_slot=room.slots[0].ref(),
            )
        )
        restored = Room.from_dict(room.to_dict())
        assert restored.requests[0].type == RequestType.SLOT_REQUEST
        assert restored.requests[0].target_slot == room.slots[0].ref()
        assert restored.members[1].joined_at == datetime(2025, 2, 1)


class TestRoomMember:
    """Tests for RoomMember carry-over history."""

    def test_carry_over_for_week(self):
        member = RoomMember(
            "alice",
            carry_over_history=[
                CarryOverEntry(date(2025, 2, 23), 1.0),
                CarryOverEntry(date(2025, 2, 23), 0.5),
            ],
        )
        assert member.carry_over_for_week(date(2025, 2, 23)) == 0.5
        assert member.carry_over_for_week(date(2025, 2, 16)) == 0.0

    def test_record_carry_over_replaces_week(self):
        member = RoomMember("alice")
        week = date(2025, 3, 2)
        member.record_carry_over(CarryOverEntry(week, 2.0, previous_priority=1), 2)
        member.record_carry_over(CarryOverEntry(week, 1.0, previous_priority=1), 2)

        assert [e.hours for e in member.carry_over_history] == [1.0]
        assert (member.carry_over_hours, member.priority) == (1.0, 2)
        assert member.state_before_week(week) == (0.0, 1)

    def test_earlier_week_keeps_current_state(self):
        member = RoomMember("alice")
        member.record_carry_over(CarryOverEntry(date(2025, 3, 2), 1.0, previous_priority=1), 2)
        member.record_carry_over(CarryOverEntry(date(2025, 2, 23), 0.5, previous_priority=1), 3)

        assert [e.week for e in member.carry_over_history] == [
            date(2025, 2, 23),
            date(2025, 3, 2),
        ]
        assert (member.carry_over_hours, member.priority) == (1.0, 2)


class TestMember:
    """Tests for Member."""

    def test_windows_recurring_first(self):
        member = Member(
            id="m",
            recurring_windows=[PreferenceWindow("09:00", "10:00", weekday=1)],
            date_windows=[PreferenceWindow("11:00", "12:00", specific_date="2025-03-03")],
        )
        assert [w.start for w in member.windows] == ["09:00", "11:00"]

    def test_has_location(self):
        assert not Member(id="m", latitude=1.0).has_location
        assert Member(id="m", latitude=1.0, longitude=2.0).has_location

    def test_display_name_falls_back_to_id(self):
        assert Member(id="m").display_name == "m"

    def test_missing_id(self):
        with pytest.raises(MissingFieldError):
            Member.from_dict({"name": "No id"})


class TestRequestStatus:
    """Tests for request status transitions."""

    def test_terminal(self):
        assert RequestStatus.APPROVED.is_terminal
        assert RequestStatus.CANCELLED.is_terminal
        assert not RequestStatus.WAITING_FOR_CHAIN.is_terminal

    def test_terminal_states_have_no_transitions(self):
        for status in RequestStatus:
            if status.is_terminal:
                assert not ALLOWED_TRANSITIONS[status]

    def test_no_transition_back_to_pending(self):
        for targets in ALLOWED_TRANSITIONS.values():
            assert RequestStatus.PENDING not in targets
