"""Test fixtures for room coordinator tests."""

from datetime import datetime

import pytest

from room_coordinator.engine import InMemoryAuditLog, InMemoryNotificationBus, InMemoryStore
from room_coordinator.models import (
    Member,
    PreferenceWindow,
    Room,
    RoomMember,
    RoomSettings,
    Slot,
)


@pytest.fixture
def make_window():
    """Factory for recurring (weekday) or dated preference windows."""

    def _make(start, end, weekday=None, priority=2, specific_date=None):
        return PreferenceWindow(
            start=start,
            end=end,
            priority=priority,
            weekday=weekday,
            specific_date=specific_date,
        )

    return _make


@pytest.fixture
def make_slot():
    """Factory for class slots."""

    def _make(member_id, day, start, end, slot_id=None, **kwargs):
        if slot_id is not None:
            kwargs["id"] = slot_id
        return Slot(member_id=member_id, date=day, start=start, end=end, **kwargs)

    return _make


@pytest.fixture
def owner():
    return Member(id="owner", name="Olga")


@pytest.fixture
def alice(make_window):
    """Prefers Monday mornings and Tuesday afternoons."""
    return Member(
        id="alice",
        name="Alice",
        recurring_windows=[
            make_window("09:00", "12:00", weekday=1),
            make_window("13:00", "18:00", weekday=2),
        ],
    )


@pytest.fixture
def bob(make_window):
    return Member(
        id="bob",
        name="Bob",
        recurring_windows=[
            make_window("09:00", "11:00", weekday=1),
            make_window("14:00", "16:00", weekday=2),
        ],
    )


@pytest.fixture
def carol(make_window):
    return Member(
        id="carol",
        name="Carol",
        recurring_windows=[make_window("10:00", "11:00", weekday=2)],
    )


@pytest.fixture
def room():
    """Room owned by 'owner' with alice, bob and carol in join order."""
    return Room(
        id="room-1",
        owner_id="owner",
        name="Piano",
        members=[
            RoomMember("owner", joined_at=datetime(2025, 1, 1)),
            RoomMember("alice", joined_at=datetime(2025, 1, 2)),
            RoomMember("bob", joined_at=datetime(2025, 1, 3)),
            RoomMember("carol", joined_at=datetime(2025, 1, 4)),
        ],
        settings=RoomSettings(min_hours_per_week=2.0),
    )


@pytest.fixture
def members(owner, alice, bob, carol):
    return {m.id: m for m in (owner, alice, bob, carol)}


@pytest.fixture
def store(room, members):
    """In-memory store holding the room and its members."""
    store = InMemoryStore()
    for member in members.values():
        store.save_member(member)
    store.save_room(room)
    return store


@pytest.fixture
def bus():
    return InMemoryNotificationBus()


@pytest.fixture
def audit():
    return InMemoryAuditLog()
