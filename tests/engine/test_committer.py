"""Tests for schedule confirmation and reset."""

from datetime import date, datetime

import pytest

from room_coordinator.engine.committer import ScheduleCommitter, merge_commit_blocks
from room_coordinator.engine.persistence import InMemoryStore, RetryPolicy
from room_coordinator.exceptions import (
    CommitFailedError,
    PermissionDeniedError,
    VersionConflictError,
)
from room_coordinator.models import (
    CalendarBlock,
    ExchangeRequest,
    PreferenceWindow,
    RequestStatus,
    RequestType,
    Slot,
    SlotRef,
    TravelMode,
)

MONDAY = date(2025, 3, 3)
TUESDAY = date(2025, 3, 4)
NOW = datetime(2025, 3, 1, 18, 0)


class ConflictingStore(InMemoryStore):
    """Fails the next `conflicts` room saves with a version conflict."""

    def __init__(self):
        super().__init__()
        self.conflicts = 0

    def save_room(self, room):
        if self.conflicts > 0:
            self.conflicts -= 1
            raise VersionConflictError("room", room.id, room.version, room.version + 1)
        return super().save_room(room)


@pytest.fixture
def booked_store(room, members):
    """Alice holds Monday 09:00-11:00 as two slots, bob holds Tuesday 14:00-15:00."""
    room.slots = [
        Slot(member_id="alice", date=MONDAY, start="09:00", end="10:00", id="a1"),
        Slot(member_id="alice", date=MONDAY, start="10:00", end="11:00", id="a2"),
        Slot(member_id="bob", date=TUESDAY, start="14:00", end="15:00", id="b1"),
    ]
    store = ConflictingStore()
    for member in members.values():
        store.save_member(member)
    store.save_room(room)
    return store


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def committer(booked_store, bus, audit, sleeps):
    retry = RetryPolicy(max_attempts=3, backoff_seconds=0.1, sleep=sleeps.append)
    return ScheduleCommitter(booked_store, bus, audit, retry=retry, clock=lambda: NOW)


class TestMergeCommitBlocks:
    """Tests for merge_commit_blocks."""

    def test_contiguous_slots_merged(self):
        blocks = merge_commit_blocks(
            [
                Slot(member_id="a", date=MONDAY, start="10:00", end="11:00", id="s2"),
                Slot(member_id="a", date=MONDAY, start="09:00", end="10:00", id="s1"),
            ]
        )

        assert len(blocks) == 1
        assert (blocks[0].start, blocks[0].end) == (540, 660)
        assert blocks[0].slot_ids == ["s1", "s2"]

    def test_gap_keeps_blocks_apart(self):
        blocks = merge_commit_blocks(
            [
                Slot(member_id="a", date=MONDAY, start="09:00", end="10:00"),
                Slot(member_id="a", date=MONDAY, start="10:30", end="11:00"),
            ]
        )
        assert len(blocks) == 2

    def test_members_and_dates_kept_apart(self):
        blocks = merge_commit_blocks(
            [
                Slot(member_id="b", date=MONDAY, start="10:00", end="11:00"),
                Slot(member_id="a", date=MONDAY, start="09:00", end="10:00"),
                Slot(member_id="a", date=TUESDAY, start="10:00", end="11:00"),
            ]
        )
        assert [(b.member_id, b.date) for b in blocks] == [
            ("a", MONDAY),
            ("b", MONDAY),
            ("a", TUESDAY),
        ]

    def test_travel_taken_from_first_slot(self):
        blocks = merge_commit_blocks(
            [
                Slot(member_id="a", date=MONDAY, start="09:00", end="10:00", id="s1"),
                Slot(member_id="a", date=MONDAY, start="10:00", end="11:00", id="s2"),
            ],
            {"s1": 30, "s2": 0},
        )
        assert blocks[0].travel_minutes == 30
        assert blocks[0].travel_start == 510
        assert blocks[0].travel_ref() == SlotRef(MONDAY, "08:30", "11:00")


class TestConfirm:
    """Tests for ScheduleCommitter.confirm."""

    def test_confirm_writes_calendars(self, committer, booked_store):
        result = committer.confirm("room-1", "owner", "Olga")

        assert result.committed
        assert result.slot_count == 3
        assert result.confirmed_at == NOW
        assert [b.class_ref() for b in result.blocks] == [
            SlotRef(MONDAY, "09:00", "11:00"),
            SlotRef(TUESDAY, "14:00", "15:00"),
        ]

        alice = booked_store.get_member("alice")
        assert [(b.title, b.start, b.end) for b in alice.personal_calendar] == [
            ("Piano", "09:00", "11:00")
        ]
        owner = booked_store.get_member("owner")
        assert [b.title for b in owner.personal_calendar] == ["Piano: Alice", "Piano: Bob"]

    def test_confirm_splits_preferences(self, committer, booked_store):
        committer.confirm("room-1", "owner", "Olga")

        alice = booked_store.get_member("alice")
        monday = [(w.start, w.end) for w in alice.recurring_windows if w.weekday == 1]
        assert monday == [("11:00", "12:00")]
        assert "room-1" in alice.deleted_preferences_by_room

    def test_confirm_marks_room(self, committer, booked_store):
        committer.confirm("room-1", "owner", "Olga")

        room = booked_store.get_room("room-1")
        assert all(s.confirmed_to_calendar for s in room.slots)
        assert room.confirmed_at == NOW
        assert room.auto_confirm_at is None
        assert room.confirmed_travel_mode == TravelMode.NONE

    def test_confirm_emits_and_audits(self, committer, bus, audit):
        committer.confirm("room-1", "owner", "Olga")

        events = bus.events_for("room-1", "schedule-confirmed")
        assert len(events) == 1
        assert events[0].payload["block_count"] == 2
        assert events[0].payload["slot_count"] == 3
        entries = audit.for_room("room-1", "confirm_schedule")
        assert [e.actor_name for e in entries] == ["Olga"]

    def test_second_confirm_is_empty(self, committer, booked_store, bus):
        committer.confirm("room-1", "owner", "Olga")
        result = committer.confirm("room-1", "owner", "Olga")

        assert not result.committed
        assert len(booked_store.get_member("alice").personal_calendar) == 1
        assert len(bus.events_for("room-1", "schedule-confirmed")) == 1

    def test_only_owner_or_system(self, committer):
        with pytest.raises(PermissionDeniedError):
            committer.confirm("room-1", "alice", "Alice")
        assert committer.confirm("room-1", "system", "Auto-confirm").committed

    def test_owner_block_includes_travel(self, room, members, bus, audit):
        room.travel_mode = TravelMode.DRIVING
        members["owner"].latitude, members["owner"].longitude = 0.0, 0.0
        members["alice"].latitude, members["alice"].longitude = 0.17, 0.0
        room.slots = [Slot(member_id="alice", date=MONDAY, start="09:00", end="10:00")]
        store = InMemoryStore()
        for member in members.values():
            store.save_member(member)
        store.save_room(room)

        ScheduleCommitter(store, bus, audit, clock=lambda: NOW).confirm("room-1", "owner", "Olga")

        block = store.get_member("owner").personal_calendar[0]
        assert (block.start, block.end) == ("08:30", "10:00")
        assert block.includes_travel
        alice_block = store.get_member("alice").personal_calendar[0]
        assert (alice_block.start, alice_block.end) == ("09:00", "10:00")
        assert not alice_block.includes_travel

    def test_travel_mode_override(self, committer, booked_store):
        result = committer.confirm("room-1", "owner", "Olga", travel_mode=TravelMode.WALKING)

        assert result.travel_mode == TravelMode.WALKING
        assert booked_store.get_room("room-1").confirmed_travel_mode == TravelMode.WALKING

    def test_room_conflict_retried(self, committer, booked_store, sleeps):
        booked_store.conflicts = 2

        assert committer.confirm("room-1", "owner", "Olga").committed
        assert sleeps == [0.1, 0.2]

    def test_retries_exhausted(self, committer, booked_store, sleeps):
        booked_store.conflicts = 3

        with pytest.raises(CommitFailedError):
            committer.confirm("room-1", "owner", "Olga")

        assert sleeps == [0.1, 0.2]
        assert not any(s.confirmed_to_calendar for s in booked_store.get_room("room-1").slots)

    def test_repeat_after_failure(self, committer, booked_store):
        booked_store.conflicts = 3
        with pytest.raises(CommitFailedError):
            committer.confirm("room-1", "owner", "Olga")

        result = committer.confirm("room-1", "owner", "Olga")

        assert result.committed
        assert len(booked_store.get_member("alice").personal_calendar) == 1
        assert len(booked_store.get_member("owner").personal_calendar) == 2


class TestResetSchedule:
    """Tests for ScheduleCommitter.reset_schedule."""

    def test_reset_restores_preferences(self, committer, booked_store):
        committer.confirm("room-1", "owner", "Olga")

        result = committer.reset_schedule("room-1", "owner", "Olga")

        assert result.removed_slot_count == 3
        assert result.restored_member_ids == ["alice", "bob"]
        alice = booked_store.get_member("alice")
        assert [(w.start, w.end) for w in alice.recurring_windows if w.weekday == 1] == [
            ("09:00", "12:00")
        ]
        assert alice.deleted_preferences_by_room == {}

    def test_reset_clears_room(self, committer, booked_store, bus, audit):
        committer.confirm("room-1", "owner", "Olga")
        committer.reset_schedule("room-1", "owner", "Olga")

        room = booked_store.get_room("room-1")
        assert room.slots == []
        assert room.auto_confirm_at is None
        assert bus.events_for("room-1", "schedule-reset")[0].payload == {
            "removed_slot_count": 3
        }
        assert len(audit.for_room("room-1", "reset_schedule")) == 1

    def test_reset_removes_only_room_calendar_blocks(self, committer, booked_store):
        committer.confirm("room-1", "owner", "Olga")

        def add_other_room_block(member):
            member.personal_calendar.append(
                CalendarBlock("Violin", MONDAY, "15:00", "16:00", "room-2", "alice")
            )
            return True

        committer.retry.update_member(booked_store, "alice", add_other_room_block)

        committer.reset_schedule("room-1", "owner", "Olga")

        assert [b.room_id for b in booked_store.get_member("alice").personal_calendar] == [
            "room-2"
        ]
        assert booked_store.get_member("owner").personal_calendar == []

    def test_reset_cancels_open_requests(self, committer, booked_store):
        def add_request(room):
            room.requests.append(
                ExchangeRequest(
                    type=RequestType.SLOT_REQUEST,
                    requester_id="alice",
                    target_member_id="bob",
                    target_slot=SlotRef(TUESDAY, "14:00", "15:00"),
                )
            )
            return True

        committer.retry.update_room(booked_store, "room-1", add_request)

        committer.reset_schedule("room-1", "owner", "Olga")

        request = booked_store.get_room("room-1").requests[0]
        assert request.status == RequestStatus.CANCELLED
        assert request.responded_at == NOW

    def test_reset_without_confirm(self, committer, booked_store):
        result = committer.reset_schedule("room-1", "owner", "Olga")

        assert result.removed_slot_count == 3
        assert result.restored_member_ids == []
        assert booked_store.get_member("alice").recurring_windows[0] == PreferenceWindow(
            "09:00", "12:00", weekday=1
        )

    def test_only_owner_resets(self, committer):
        with pytest.raises(PermissionDeniedError):
            committer.reset_schedule("room-1", "bob", "Bob")
