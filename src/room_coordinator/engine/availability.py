"""Free time computation shared by the allocator and the exchange resolver."""

from collections.abc import Iterable
from datetime import date, timedelta

from ..models import Member, Room, Slot, SlotKind
from ..utils import intersect_ranges, subtract_ranges
from .preferences import merged_preferred_ranges


def week_dates(week_start: date) -> list[date]:
    """The seven dates starting at week_start."""
    return [week_start + timedelta(days=offset) for offset in range(7)]


def occupied_ranges(
    room: Room,
    day: date,
    extra_slots: Iterable[Slot] = (),
    removed_slot_ids: Iterable[str] = (),
) -> list[tuple[int, int]]:
    """Nominal class time already taken on a date."""
    removed = set(removed_slot_ids)
    return [
        (s.start_minutes, s.end_minutes)
        for s in [*room.slots, *extra_slots]
        if s.kind == SlotKind.CLASS and s.date == day and s.id not in removed
    ]


def _commitment_ranges(member: Member | None, day: date) -> list[tuple[int, int]]:
    if member is None:
        return []
    return [
        (c.start_minutes, c.end_minutes)
        for c in member.blocking_commitments
        if c.applies_to(day)
    ]


def free_ranges(
    room: Room,
    members: dict[str, Member],
    member_id: str,
    day: date,
    min_priority: int,
    extra_slots: Iterable[Slot] = (),
    removed_slot_ids: Iterable[str] = (),
) -> list[tuple[int, int]]:
    """Time on a date where a member could be placed.

    The member's preferred ranges at or above min_priority, inside the room's
    day bounds and the owner's availability (when the owner declares any
    windows), minus blocked room time, both parties' commitments and all
    occupied slots.
    """
    member = members.get(member_id)
    if member is None:
        return []

    ranges = intersect_ranges(
        merged_preferred_ranges(member, day, min_priority), [room.settings.day_bounds]
    )

    owner = members.get(room.owner_id)
    if owner is not None and owner.windows:
        ranges = intersect_ranges(ranges, merged_preferred_ranges(owner, day))

    cuts = [(start, end) for start, end, _ in room.settings.blocked_ranges_for(day)]
    cuts.extend(_commitment_ranges(member, day))
    cuts.extend(_commitment_ranges(owner, day))
    cuts.extend(occupied_ranges(room, day, extra_slots, removed_slot_ids))
    return subtract_ranges(ranges, cuts)
