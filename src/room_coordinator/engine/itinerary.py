"""Travel legs written into a room for its travel mode."""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from ..constants import SUBJECT_TRAVEL
from ..models import Member, Room, Slot, SlotKind, TravelMode
from ..utils import minutes_to_time
from .simulator import ScheduleSimulator, TimelineEntry

logger = logging.getLogger(__name__)


@dataclass
class TravelPlan:
    """Owner's travel legs for every day of a room under one travel mode."""

    room_id: str
    travel_mode: TravelMode
    legs: list[Slot] = field(default_factory=list)
    shifted: list[TimelineEntry] = field(default_factory=list)
    shifted_dates: dict[str, date] = field(default_factory=dict)

    @property
    def is_feasible(self) -> bool:
        """True when every stored class keeps its start under this mode."""
        return not self.shifted

    @property
    def travel_minutes(self) -> int:
        return sum(leg.duration_minutes for leg in self.legs)

    def to_dict(self) -> dict[str, Any]:
        return {
            "room_id": self.room_id,
            "travel_mode": self.travel_mode.value,
            "is_feasible": self.is_feasible,
            "travel_minutes": self.travel_minutes,
            "legs": [leg.to_dict() for leg in self.legs],
            "shifted": [
                {
                    "date": self.shifted_dates[e.slot_id].isoformat(),
                    "shift_minutes": e.shift_minutes,
                    **e.to_dict(),
                }
                for e in self.shifted
            ],
        }


def plan_travel(
    room: Room,
    members: dict[str, Member],
    travel_mode: TravelMode,
    speeds: dict[str, float] | None = None,
) -> TravelPlan:
    """
    Compute the travel legs of every day that has classes.

    Each leg ends at the class start of the member being visited and is
    recorded as a travel-kind slot of that member. A class that the mode
    would push past its stored start is reported in `shifted`.

    Args:
        room: Room to plan; not modified
        members: Member records (owner included) for locations
        travel_mode: Mode to plan with
        speeds: Travel speeds (km/h) by mode

    Returns:
        TravelPlan
    """
    travel_mode = TravelMode(travel_mode)
    plan = TravelPlan(room_id=room.id, travel_mode=travel_mode)
    simulator = ScheduleSimulator(room, members, speeds=speeds, travel_mode=travel_mode)

    for day in sorted({s.date for s in room.class_slots()}):
        for entry in simulator.build_timeline(day):
            if entry.shift_minutes:
                plan.shifted.append(entry)
                plan.shifted_dates[entry.slot_id] = day
            travel_start = max(0, entry.travel_start)
            if entry.travel_minutes == 0 or travel_start >= entry.travel_end:
                continue
            plan.legs.append(
                Slot(
                    member_id=entry.member_id,
                    date=day,
                    start=minutes_to_time(travel_start),
                    end=minutes_to_time(entry.travel_end),
                    kind=SlotKind.TRAVEL,
                    subject=SUBJECT_TRAVEL,
                )
            )

    for entry in plan.shifted:
        logger.warning(
            f"{travel_mode.value} travel pushes '{entry.member_id}' on "
            f"{plan.shifted_dates[entry.slot_id]} to {minutes_to_time(entry.class_start)}"
        )
    return plan


def write_travel_legs(room: Room, legs: list[Slot]) -> bool:
    """Replace the room's travel-kind slots. Returns True if anything changed."""
    current = sorted((s.member_id, s.ref()) for s in room.slots if s.kind == SlotKind.TRAVEL)
    if current == sorted((leg.member_id, leg.ref()) for leg in legs):
        return False
    room.slots = [*room.class_slots(), *legs]
    return True


def apply_travel_plan(room: Room, plan: TravelPlan) -> bool:
    """Write a feasible plan into the room and select its travel mode.

    An infeasible plan leaves the room untouched. The previously confirmed
    mode is cleared, the next confirmation records the new one.

    Returns:
        True if the room changed
    """
    if not plan.is_feasible:
        return False
    changed = write_travel_legs(room, plan.legs)
    if room.travel_mode != plan.travel_mode or room.confirmed_travel_mode is not None:
        room.travel_mode = plan.travel_mode
        room.confirmed_travel_mode = None
        changed = True
    logger.info(
        f"Room '{room.id}' uses {plan.travel_mode.value} travel "
        f"with {len(plan.legs)} leg(s)"
    )
    return changed


def refresh_travel_legs(
    room: Room, members: dict[str, Member], speeds: dict[str, float] | None = None
) -> bool:
    """Rebuild the legs of a room that already carries them, after its classes moved."""
    if not any(s.kind == SlotKind.TRAVEL for s in room.slots):
        return False
    plan = plan_travel(room, members, room.effective_travel_mode, speeds)
    return write_travel_legs(room, plan.legs)
