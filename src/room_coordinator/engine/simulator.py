"""Travel-conflict simulation of a day's occupancy chain.

The owner visits each occupant of a day in chronological order. The first
visit anchors its travel leg backward from the slot's nominal start. A later
class cannot start before the previous occupant's computed class end plus the
travel leg between them; when that is later than the nominal start, the class
is pushed back and every following occupant may shift with it. Travel is
otherwise taken as late as possible, ending at the class start.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from ..constants import MINUTES_PER_DAY
from ..exceptions import InvalidRangeError
from ..models import Member, Room, Slot, SlotKind, TravelMode
from ..utils import intervals_overlap, minutes_to_time, parse_date, time_to_minutes
from .preferences import merged_preferred_ranges
from .travel import travel_minutes

logger = logging.getLogger(__name__)

CANDIDATE_SLOT_ID = "candidate"


@dataclass
class TimelineEntry:
    """One occupant of the day with its computed travel leg and class segment."""

    slot_id: str
    member_id: str
    nominal_start: int
    nominal_end: int
    travel_minutes: int
    travel_start: int
    travel_end: int
    class_start: int
    class_end: int
    is_candidate: bool = False

    @property
    def shift_minutes(self) -> int:
        """How far the class was pushed past its nominal start."""
        return self.class_start - self.nominal_start

    def segments(self) -> list[tuple[str, int, int]]:
        return [
            ("travel", self.travel_start, self.travel_end),
            ("class", self.class_start, self.class_end),
        ]

    def to_dict(self) -> dict[str, Any]:
        return {
            "slot_id": self.slot_id,
            "member_id": self.member_id,
            "travel_minutes": self.travel_minutes,
            "travel_start": minutes_to_time(self.travel_start),
            "travel_end": minutes_to_time(self.travel_end),
            "class_start": minutes_to_time(self.class_start),
            "class_end": minutes_to_time(self.class_end),
            "is_candidate": self.is_candidate,
        }


@dataclass
class SimulationResult:
    """Outcome of a hypothetical insertion."""

    is_valid: bool
    reason: str = ""
    suggested_earliest_time: str | None = None
    timeline: list[TimelineEntry] = field(default_factory=list)

    @property
    def candidate(self) -> TimelineEntry | None:
        return next((e for e in self.timeline if e.is_candidate), None)

    @property
    def booking_problem(self) -> str | None:
        """Why the candidate cannot be booked as proposed, if it cannot.

        The candidate and every occupant after it must keep their nominal
        start. Occupants before the candidate are not affected by it.
        """
        if not self.is_valid:
            return self.reason
        affected = False
        for entry in self.timeline:
            affected = affected or entry.is_candidate
            if not affected or not entry.shift_minutes:
                continue
            if entry.is_candidate:
                return f"Travel pushes the class start to {minutes_to_time(entry.class_start)}"
            return (
                f"Travel pushes the class of '{entry.member_id}' to "
                f"{minutes_to_time(entry.class_start)}"
            )
        return None

    @property
    def fits_as_booked(self) -> bool:
        return self.booking_problem is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "reason": self.reason,
            "suggested_earliest_time": self.suggested_earliest_time,
            "timeline": [e.to_dict() for e in self.timeline],
        }


class ScheduleSimulator:
    """Validates hypothetical slot insertions against a room's day.

    The simulator never mutates the room or the member records it is given.
    """

    def __init__(
        self,
        room: Room,
        members: dict[str, Member],
        speeds: dict[str, float] | None = None,
        travel_mode: TravelMode | None = None,
    ):
        """
        Initialize the simulator.

        Args:
            room: Room whose slots and settings are simulated
            members: Member records by id (owner included) for locations,
                     preferences and blocking commitments
            speeds: Travel speeds (km/h) by mode, defaults to the built-in table
            travel_mode: Override for the room's effective travel mode
        """
        self.room = room
        self.members = members
        self.speeds = speeds
        self.travel_mode = travel_mode or room.effective_travel_mode
        self._travel_cache: dict[tuple[str, str], int] = {}

    def travel_between(self, from_member_id: str, to_member_id: str) -> int:
        key = (from_member_id, to_member_id)
        if key not in self._travel_cache:
            self._travel_cache[key] = travel_minutes(
                self.members.get(from_member_id),
                self.members.get(to_member_id),
                self.travel_mode,
                self.speeds,
            )
        return self._travel_cache[key]

    def build_timeline(
        self,
        day: date,
        removed_slot_ids: Iterable[str] = (),
        extra_slots: Iterable[Slot] = (),
        candidate: Slot | None = None,
    ) -> list[TimelineEntry]:
        """Compute the chained occupancy of a day.

        Args:
            day: Date to compute
            removed_slot_ids: Room slots to leave out
            extra_slots: Additional slots to include (e.g., placed in this run)
            candidate: Hypothetical slot, marked in the result

        Returns:
            Entries in chronological order of nominal start
        """
        removed = set(removed_slot_ids)
        entries: list[tuple[Slot, bool]] = [
            (s, False)
            for s in [*self.room.slots, *extra_slots]
            if s.kind == SlotKind.CLASS and s.date == day and s.id not in removed
        ]
        if candidate is not None:
            entries.append((candidate, True))
        entries.sort(key=lambda item: item[0].start_minutes)

        timeline: list[TimelineEntry] = []
        previous_member = self.room.owner_id
        previous_end: int | None = None
        for slot, is_candidate in entries:
            travel = self.travel_between(previous_member, slot.member_id)
            class_start = slot.start_minutes
            if previous_end is not None:
                class_start = max(class_start, previous_end + travel)
            travel_start = class_start - travel
            class_end = class_start + slot.duration_minutes

            timeline.append(
                TimelineEntry(
                    slot_id=slot.id,
                    member_id=slot.member_id,
                    nominal_start=slot.start_minutes,
                    nominal_end=slot.end_minutes,
                    travel_minutes=travel,
                    travel_start=travel_start,
                    travel_end=class_start,
                    class_start=class_start,
                    class_end=class_end,
                    is_candidate=is_candidate,
                )
            )
            previous_member = slot.member_id
            previous_end = class_end

        return timeline

    def _find_overlap(self, timeline: list[TimelineEntry]) -> str | None:
        for i, first in enumerate(timeline):
            for second in timeline[i + 1 :]:
                if intervals_overlap(
                    first.nominal_start, first.nominal_end,
                    second.nominal_start, second.nominal_end,
                ):
                    return (
                        f"Class of '{first.member_id}' overlaps class of "
                        f"'{second.member_id}'"
                    )
                for first_kind, a_start, a_end in first.segments():
                    for second_kind, b_start, b_end in second.segments():
                        if intervals_overlap(a_start, a_end, b_start, b_end):
                            return (
                                f"{first_kind.capitalize()} time of '{first.member_id}' "
                                f"overlaps {second_kind} time of '{second.member_id}'"
                            )
        return None

    def _find_blocked(self, entry: TimelineEntry, day: date) -> str | None:
        for start, end, name in self.room.settings.blocked_ranges_for(day):
            if intervals_overlap(entry.travel_start, entry.class_end, start, end):
                return f"Conflicts with blocked time '{name or 'blocked'}'"

        member = self.members.get(entry.member_id)
        if member is None:
            return None
        for commitment in member.blocking_commitments:
            if commitment.applies_to(day) and intervals_overlap(
                entry.travel_start,
                entry.class_end,
                commitment.start_minutes,
                commitment.end_minutes,
            ):
                return f"Conflicts with personal commitment '{commitment.title}'"
        return None

    def simulate(
        self,
        member_id: str,
        day: date | str,
        proposed_start: str | int,
        duration_minutes: int,
        removed_slot_ids: Iterable[str] = (),
        extra_slots: Iterable[Slot] = (),
    ) -> SimulationResult:
        """Validate inserting a slot for a member.

        The candidate's travel-inclusive window must not overlap any other
        occupant's travel or class time, must avoid blocked time and the
        member's own commitments, and must lie inside one of the member's
        merged preference ranges.

        Args:
            member_id: Member who would occupy the slot
            day: Date of the slot
            proposed_start: Start as "HH:MM" or minutes since midnight
            duration_minutes: Class length
            removed_slot_ids: Room slots to leave out (e.g., the one being vacated)
            extra_slots: Slots not yet in the room to include

        Returns:
            SimulationResult; infeasibility is reported, never raised

        Raises:
            ValidationError: If the date, time or duration is malformed
        """
        day = parse_date(day, "date")
        start = (
            time_to_minutes(proposed_start, "proposed_start")
            if isinstance(proposed_start, str)
            else int(proposed_start)
        )
        if duration_minutes <= 0 or start < 0 or start + duration_minutes > MINUTES_PER_DAY:
            raise InvalidRangeError(
                f"Invalid proposal: start {start} with duration {duration_minutes} minutes"
            )

        candidate = Slot(
            id=CANDIDATE_SLOT_ID,
            member_id=member_id,
            date=day,
            start=minutes_to_time(start),
            end=minutes_to_time(start + duration_minutes),
        )
        timeline = self.build_timeline(day, removed_slot_ids, extra_slots, candidate)
        entry = next(e for e in timeline if e.is_candidate)

        member = self.members.get(member_id)
        ranges = merged_preferred_ranges(member, day) if member is not None else []

        reason = self._find_overlap(timeline) or self._find_blocked(entry, day)
        if reason is None:
            if not ranges:
                reason = "No preference windows on this date"
            elif not any(
                entry.travel_start >= r_start and entry.class_end <= r_end
                for r_start, r_end in ranges
            ):
                reason = "Outside preferred time"

        if reason is None:
            return SimulationResult(is_valid=True, timeline=timeline)

        suggestion = (
            minutes_to_time(ranges[0][0] + entry.travel_minutes) if ranges else None
        )
        logger.debug(
            f"Rejected {member_id} on {day} at {minutes_to_time(start)}: {reason}"
        )
        return SimulationResult(
            is_valid=False,
            reason=reason,
            suggested_earliest_time=suggestion,
            timeline=timeline,
        )
