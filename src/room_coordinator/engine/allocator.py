"""Greedy weekly allocation of open time to room members."""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any

from ..config import CoordinationConfig
from ..constants import (
    CARRY_OVER_ADVISORY_WEEKS,
    MAX_PRIORITY,
    SLOT_GRANULARITY_MINUTES,
    SUBJECT_AUTO_ASSIGNED,
)
from ..models import (
    AssignmentMode,
    CarryOverEntry,
    Member,
    Room,
    RoomMember,
    Slot,
    TravelMode,
)
from ..utils import minutes_to_time, round_up
from .availability import free_ranges, week_dates
from .simulator import ScheduleSimulator

logger = logging.getLogger(__name__)

WARNING_INSUFFICIENT_PREFERRED_TIME = "insufficient_preferred_time"
WARNING_MISSING_MEMBER = "missing_member"


@dataclass
class MemberAllocation:
    """Allocation outcome for one member."""

    member_id: str
    required_minutes: int
    already_assigned_minutes: int
    assigned_minutes: int
    available_minutes: int

    @property
    def remaining_minutes(self) -> int:
        return max(0, self.required_minutes - self.already_assigned_minutes)

    @property
    def shortfall_minutes(self) -> int:
        return max(0, self.remaining_minutes - self.assigned_minutes)

    @property
    def shortfall_hours(self) -> float:
        return self.shortfall_minutes / 60

    def to_dict(self) -> dict[str, Any]:
        return {
            "member_id": self.member_id,
            "required_minutes": self.required_minutes,
            "already_assigned_minutes": self.already_assigned_minutes,
            "assigned_minutes": self.assigned_minutes,
            "available_minutes": self.available_minutes,
            "shortfall_hours": self.shortfall_hours,
        }


@dataclass
class AllocationWarning:
    member_id: str
    code: str
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"member_id": self.member_id, "code": self.code, "message": self.message}


@dataclass
class CarryOverUpdate:
    """New carry-over state for a member after the week's allocation."""

    member_id: str
    week: date
    previous_hours: float
    carry_over_hours: float
    priority: int
    needs_attention: bool = False
    previous_priority: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "member_id": self.member_id,
            "week": self.week.isoformat(),
            "previous_hours": self.previous_hours,
            "carry_over_hours": self.carry_over_hours,
            "priority": self.priority,
            "needs_attention": self.needs_attention,
            "previous_priority": self.previous_priority,
        }


@dataclass
class AllocationReport:
    """Partial-success result of a weekly allocation run."""

    room_id: str
    week_start: date
    mode: AssignmentMode
    slots: list[Slot] = field(default_factory=list)
    members: list[MemberAllocation] = field(default_factory=list)
    warnings: list[AllocationWarning] = field(default_factory=list)
    carry_over_updates: list[CarryOverUpdate] = field(default_factory=list)

    @property
    def unassigned(self) -> list[MemberAllocation]:
        """Members left with a shortfall."""
        return [m for m in self.members if m.shortfall_minutes > 0]

    @property
    def advisories(self) -> list[CarryOverUpdate]:
        """Members who carried hours over in each of the previous two weeks."""
        return [u for u in self.carry_over_updates if u.needs_attention]

    @property
    def is_complete(self) -> bool:
        return not self.unassigned

    def to_dict(self) -> dict[str, Any]:
        return {
            "room_id": self.room_id,
            "week_start": self.week_start.isoformat(),
            "mode": self.mode.value,
            "slots": [s.to_dict() for s in self.slots],
            "members": [m.to_dict() for m in self.members],
            "unassigned": [
                {"member_id": m.member_id, "shortfall_hours": m.shortfall_hours}
                for m in self.unassigned
            ],
            "warnings": [w.to_dict() for w in self.warnings],
            "carry_over_updates": [u.to_dict() for u in self.carry_over_updates],
        }


class SlotAllocator:
    """
    Scarcity-first greedy allocator.

    Members are served one at a time in mode order. Each member repeatedly
    receives the best remaining block of their free time until the weekly
    quota is met or no usable time is left. With a travel mode active, every
    block is checked by the simulator against the day as it stands, including
    the blocks placed earlier in the run.
    """

    def __init__(
        self,
        room: Room,
        members: dict[str, Member],
        config: CoordinationConfig | None = None,
    ):
        self.room = room
        self.members = members
        self.config = config or CoordinationConfig()

    def allocate(
        self,
        week_start: date,
        mode: AssignmentMode | None = None,
        today: date | None = None,
    ) -> AllocationReport:
        """
        Allocate one week.

        Args:
            week_start: First date of the week
            mode: Member ordering, defaults to the configured mode
            today: First usable date for from_today mode

        Returns:
            AllocationReport; the room is not modified
        """
        mode = AssignmentMode(mode or self.config.assignment_mode)
        report = AllocationReport(room_id=self.room.id, week_start=week_start, mode=mode)

        dates = week_dates(week_start)
        if mode == AssignmentMode.FROM_TODAY:
            cutoff = today or date.today()
            dates = [d for d in dates if d >= cutoff]

        candidates: list[tuple[RoomMember, MemberAllocation]] = []
        for room_member in self.room.non_owner_members():
            if room_member.member_id not in self.members:
                report.warnings.append(
                    AllocationWarning(
                        room_member.member_id,
                        WARNING_MISSING_MEMBER,
                        f"No member record for '{room_member.member_id}'",
                    )
                )
                continue
            candidates.append(
                (room_member, self._initial_allocation(room_member, dates, week_start))
            )

        ordered = sorted(candidates, key=lambda item: self._order_key(mode, *item))
        logger.info(
            f"Allocating week of {week_start} for {len(ordered)} member(s) "
            f"in room '{self.room.id}' ({mode.value})"
        )

        simulator = self._simulator()
        for room_member, allocation in ordered:
            if allocation.available_minutes < allocation.remaining_minutes:
                report.warnings.append(
                    AllocationWarning(
                        room_member.member_id,
                        WARNING_INSUFFICIENT_PREFERRED_TIME,
                        f"Only {allocation.available_minutes} preferred minute(s) for "
                        f"{allocation.remaining_minutes} required",
                    )
                )
            placed = self._allocate_member(
                room_member.member_id, allocation, dates, report.slots, simulator
            )
            report.slots.extend(placed)
            report.members.append(allocation)

        for room_member, allocation in candidates:
            report.carry_over_updates.append(
                self._carry_over_update(room_member, allocation, week_start)
            )

        for allocation in report.unassigned:
            logger.warning(
                f"Member '{allocation.member_id}' is short "
                f"{allocation.shortfall_hours:.2f} hour(s) for week of {week_start}"
            )
        logger.info(
            f"Placed {len(report.slots)} slot(s); "
            f"{len(report.unassigned)} member(s) with shortfall"
        )
        return report

    def _simulator(self) -> ScheduleSimulator | None:
        if self.room.effective_travel_mode == TravelMode.NONE:
            return None
        return ScheduleSimulator(
            self.room, self.members, speeds=self.config.travel_speeds_kmh
        )

    def _assigned_minutes(self, member_id: str, dates: list[date]) -> int:
        return sum(
            s.duration_minutes
            for s in self.room.slots_for(member_id)
            if s.date in dates
        )

    def _initial_allocation(
        self, room_member: RoomMember, dates: list[date], week_start: date
    ) -> MemberAllocation:
        settings = self.room.settings
        carry_over, _ = room_member.state_before_week(week_start)
        target_hours = settings.min_hours_per_week + carry_over
        required = round_up(max(0.0, target_hours) * 60, SLOT_GRANULARITY_MINUTES)
        available = sum(
            end - start
            for day in dates
            for start, end in free_ranges(
                self.room,
                self.members,
                room_member.member_id,
                day,
                self.config.preferred_priority_threshold,
            )
        )
        return MemberAllocation(
            member_id=room_member.member_id,
            required_minutes=required,
            already_assigned_minutes=self._assigned_minutes(
                room_member.member_id, week_dates(week_start)
            ),
            assigned_minutes=0,
            available_minutes=available,
        )

    def _order_key(
        self, mode: AssignmentMode, room_member: RoomMember, allocation: MemberAllocation
    ) -> tuple:
        join_index = self.room.join_index(room_member.member_id)
        if mode == AssignmentMode.FIRST_COME:
            return (join_index,)
        return (-room_member.priority, allocation.available_minutes, join_index)

    def _candidate_blocks(
        self,
        member_id: str,
        dates: list[date],
        placed: list[Slot],
        remaining: int,
    ) -> list[tuple[date, int, int, int]]:
        """Free ranges as (date, range_start, range_end, block_length), best first."""
        minimum = min(self.room.settings.min_class_duration_minutes, remaining)
        blocks = []
        for day in dates:
            for start, end in free_ranges(
                self.room,
                self.members,
                member_id,
                day,
                self.config.preferred_priority_threshold,
                extra_slots=placed,
            ):
                length = min(end - start, remaining)
                blocks.append((day, start, end, length))

        return sorted(
            blocks,
            key=lambda b: (b[3] < minimum, -b[3], b[0], b[1]),
        )

    def _place(
        self,
        member_id: str,
        block: tuple[date, int, int, int],
        placed: list[Slot],
        simulator: ScheduleSimulator | None,
    ) -> Slot | None:
        day, range_start, range_end, length = block
        start = range_start
        while start + length <= range_end:
            if simulator is None:
                break
            result = simulator.simulate(member_id, day, start, length, extra_slots=placed)
            if result.fits_as_booked:
                break
            logger.debug(
                f"Candidate {day} {minutes_to_time(start)} for '{member_id}' "
                f"rejected: {result.booking_problem}"
            )
            start += SLOT_GRANULARITY_MINUTES
        else:
            return None

        return Slot(
            member_id=member_id,
            date=day,
            start=minutes_to_time(start),
            end=minutes_to_time(start + length),
            subject=SUBJECT_AUTO_ASSIGNED,
        )

    def _allocate_member(
        self,
        member_id: str,
        allocation: MemberAllocation,
        dates: list[date],
        already_placed: list[Slot],
        simulator: ScheduleSimulator | None,
    ) -> list[Slot]:
        placed: list[Slot] = []
        while allocation.shortfall_minutes > 0:
            remaining = allocation.shortfall_minutes
            slot = None
            for block in self._candidate_blocks(
                member_id, dates, [*already_placed, *placed], remaining
            ):
                slot = self._place(member_id, block, [*already_placed, *placed], simulator)
                if slot is not None:
                    break
            if slot is None:
                break
            placed.append(slot)
            allocation.assigned_minutes += slot.duration_minutes
            logger.debug(
                f"Assigned '{member_id}' {slot.date} {slot.start}-{slot.end}"
            )
        return placed

    def _carry_over_update(
        self, room_member: RoomMember, allocation: MemberAllocation, week_start: date
    ) -> CarryOverUpdate:
        shortfall = allocation.shortfall_hours
        previous_hours, previous_priority = room_member.state_before_week(week_start)
        priority = previous_priority
        if shortfall > 0:
            priority = min(priority + 1, MAX_PRIORITY)

        previous_weeks = [
            week_start - timedelta(weeks=offset)
            for offset in range(1, CARRY_OVER_ADVISORY_WEEKS + 1)
        ]
        needs_attention = all(
            room_member.carry_over_for_week(week) > 0 for week in previous_weeks
        )
        return CarryOverUpdate(
            member_id=room_member.member_id,
            week=week_start,
            previous_hours=previous_hours,
            carry_over_hours=shortfall,
            priority=priority,
            needs_attention=needs_attention,
            previous_priority=previous_priority,
        )


def allocate_week(
    room: Room,
    members: dict[str, Member],
    week_start: date,
    mode: AssignmentMode | None = None,
    today: date | None = None,
    config: CoordinationConfig | None = None,
) -> AllocationReport:
    """Convenience wrapper around SlotAllocator."""
    return SlotAllocator(room, members, config).allocate(week_start, mode, today)


def apply_allocation(room: Room, report: AllocationReport, now: datetime | None = None) -> Room:
    """Write an allocation report into the room.

    Adds the new slots and applies carry-over updates and progress. Applying
    a rerun of a week replaces that week's carry-over entry. The caller
    persists the room.
    """
    now = now or datetime.now()
    room.slots.extend(report.slots)

    assigned = {m.member_id: m.assigned_minutes for m in report.members}
    for update in report.carry_over_updates:
        room_member = room.get_room_member(update.member_id)
        if room_member is None:
            continue
        room_member.record_carry_over(
            CarryOverEntry(
                week=update.week,
                hours=update.carry_over_hours,
                recorded_at=now,
                previous_hours=update.previous_hours,
                previous_priority=update.previous_priority,
            ),
            update.priority,
        )
        room_member.total_progress_hours += assigned.get(update.member_id, 0) / 60
    return room
