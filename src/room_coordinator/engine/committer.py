"""Commit of a room's schedule into personal calendars, and bulk reset."""

import logging
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from ..config import CoordinationConfig
from ..constants import (
    ACTION_CONFIRM_SCHEDULE,
    ACTION_RESET_SCHEDULE,
    EVENT_SCHEDULE_CONFIRMED,
    EVENT_SCHEDULE_RESET,
    SYSTEM_ACTOR_ID,
)
from ..exceptions import PermissionDeniedError
from ..models import (
    CalendarBlock,
    Member,
    RequestStatus,
    Room,
    Slot,
    SlotRef,
    StatusChange,
    TravelMode,
)
from ..utils import minutes_to_time
from .notifications import AuditLog, NotificationBus
from .persistence import DocumentStore, RetryPolicy
from .preferences import remove_preference_times, restore_preference_times
from .simulator import ScheduleSimulator

logger = logging.getLogger(__name__)


@dataclass
class CommitBlock:
    """Contiguous class time of one member on one date."""

    member_id: str
    date: date
    start: int
    end: int
    travel_minutes: int = 0
    slot_ids: list[str] = field(default_factory=list)

    @property
    def travel_start(self) -> int:
        return max(0, self.start - self.travel_minutes)

    def class_ref(self) -> SlotRef:
        return SlotRef(self.date, minutes_to_time(self.start), minutes_to_time(self.end))

    def travel_ref(self) -> SlotRef:
        return SlotRef(self.date, minutes_to_time(self.travel_start), minutes_to_time(self.end))

    def to_dict(self) -> dict[str, Any]:
        return {
            "member_id": self.member_id,
            "date": self.date.isoformat(),
            "start": minutes_to_time(self.start),
            "end": minutes_to_time(self.end),
            "travel_start": minutes_to_time(self.travel_start),
            "travel_minutes": self.travel_minutes,
            "slot_ids": self.slot_ids,
        }


@dataclass
class ConfirmResult:
    room_id: str
    blocks: list[CommitBlock] = field(default_factory=list)
    confirmed_at: datetime | None = None
    travel_mode: TravelMode | None = None

    @property
    def committed(self) -> bool:
        return bool(self.blocks)

    @property
    def slot_count(self) -> int:
        return sum(len(b.slot_ids) for b in self.blocks)


@dataclass
class ResetResult:
    room_id: str
    removed_slot_count: int = 0
    restored_member_ids: list[str] = field(default_factory=list)


def merge_commit_blocks(
    slots: list[Slot], travel_by_slot: dict[str, int] | None = None
) -> list[CommitBlock]:
    """Group slots by (member, date) and merge time-contiguous ones.

    A block's travel minutes are those of its first slot.
    """
    travel_by_slot = travel_by_slot or {}
    groups: dict[tuple[str, date], list[Slot]] = defaultdict(list)
    for slot in slots:
        groups[(slot.member_id, slot.date)].append(slot)

    blocks: list[CommitBlock] = []
    for (member_id, day), group in groups.items():
        current: CommitBlock | None = None
        for slot in sorted(group, key=lambda s: s.start_minutes):
            if current is not None and slot.start_minutes <= current.end:
                current.end = max(current.end, slot.end_minutes)
                current.slot_ids.append(slot.id)
                continue
            current = CommitBlock(
                member_id=member_id,
                date=day,
                start=slot.start_minutes,
                end=slot.end_minutes,
                travel_minutes=travel_by_slot.get(slot.id, 0),
                slot_ids=[slot.id],
            )
            blocks.append(current)

    return sorted(blocks, key=lambda b: (b.date, b.start, b.member_id))


class ScheduleCommitter:
    """
    Writes a room's unconfirmed slots into personal calendars.

    Member records are written before the room, each through the retry
    policy. Calendar writes skip blocks that already exist and preference
    splits only touch time that is still there, so a call interrupted after
    some member writes can be repeated safely. Slots are flagged as confirmed
    only in the final room write.
    """

    def __init__(
        self,
        store: DocumentStore,
        bus: NotificationBus,
        audit: AuditLog,
        config: CoordinationConfig | None = None,
        retry: RetryPolicy | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.bus = bus
        self.audit = audit
        self.config = config or CoordinationConfig()
        self.retry = retry or RetryPolicy(
            max_attempts=self.config.max_commit_attempts,
            backoff_seconds=self.config.commit_backoff_seconds,
        )
        self.clock = clock

    def _check_owner(self, room: Room, actor_id: str, action: str) -> None:
        if actor_id not in (room.owner_id, SYSTEM_ACTOR_ID):
            raise PermissionDeniedError(actor_id, action)

    def _travel_by_slot(
        self, room: Room, members: dict[str, Member], mode: TravelMode
    ) -> dict[str, int]:
        simulator = ScheduleSimulator(
            room, members, speeds=self.config.travel_speeds_kmh, travel_mode=mode
        )
        travel: dict[str, int] = {}
        for day in sorted({s.date for s in room.class_slots()}):
            for entry in simulator.build_timeline(day):
                travel[entry.slot_id] = entry.travel_minutes
        return travel

    def confirm(
        self,
        room_id: str,
        actor_id: str,
        actor_name: str,
        travel_mode: TravelMode | None = None,
    ) -> ConfirmResult:
        """
        Commit every unconfirmed class slot of a room.

        Args:
            room_id: Room to confirm
            actor_id: Owner id, or the system actor for automatic confirmation
            actor_name: Name for the audit log
            travel_mode: Mode to confirm with, defaults to the room's effective mode

        Returns:
            ConfirmResult; empty when there was nothing to confirm

        Raises:
            PermissionDeniedError: If the actor is not the owner
            CommitFailedError: If a record could not be saved within the retry limit
        """
        room = self.store.get_room(room_id)
        self._check_owner(room, actor_id, f"confirm room '{room_id}'")

        pending = [s for s in room.class_slots() if not s.confirmed_to_calendar]
        if not pending:
            logger.info(f"Room '{room_id}' has nothing to confirm")
            return ConfirmResult(room_id=room_id)

        mode = travel_mode or room.effective_travel_mode
        members = self.store.get_members(room.member_ids)
        blocks = merge_commit_blocks(pending, self._travel_by_slot(room, members, mode))
        title = room.name or room.id

        by_member: dict[str, list[CommitBlock]] = defaultdict(list)
        for block in blocks:
            by_member[block.member_id].append(block)

        for member_id, member_blocks in by_member.items():
            self._commit_member(room.id, title, member_id, member_blocks)
        self._commit_owner(room, title, members, blocks)

        now = self.clock()
        slot_ids = {slot_id for block in blocks for slot_id in block.slot_ids}

        def mark_confirmed(fresh: Room) -> bool:
            changed = False
            for slot in fresh.slots:
                if slot.id in slot_ids and not slot.confirmed_to_calendar:
                    slot.confirmed_to_calendar = True
                    changed = True
            if changed:
                fresh.auto_confirm_at = None
                fresh.confirmed_at = now
                fresh.confirmed_travel_mode = mode
            return changed

        self.retry.update_room(self.store, room_id, mark_confirmed)

        self.audit.append(
            room_id,
            actor_id,
            actor_name,
            ACTION_CONFIRM_SCHEDULE,
            f"Confirmed {len(slot_ids)} slot(s) as {len(blocks)} calendar block(s)",
        )
        self.bus.emit(
            room_id,
            EVENT_SCHEDULE_CONFIRMED,
            {
                "confirmed_at": now.isoformat(),
                "block_count": len(blocks),
                "slot_count": len(slot_ids),
            },
        )
        logger.info(f"Confirmed {len(slot_ids)} slot(s) in room '{room_id}'")
        return ConfirmResult(room_id=room_id, blocks=blocks, confirmed_at=now, travel_mode=mode)

    def _commit_member(
        self, room_id: str, title: str, member_id: str, blocks: list[CommitBlock]
    ) -> None:
        calendar_blocks = [
            CalendarBlock(
                title=title,
                date=b.date,
                start=minutes_to_time(b.start),
                end=minutes_to_time(b.end),
                room_id=room_id,
                member_id=member_id,
            )
            for b in blocks
        ]
        refs = [b.class_ref() for b in blocks]

        def apply(member: Member) -> bool:
            added = _add_calendar_blocks(member, calendar_blocks)
            removed = remove_preference_times(member, refs, room_id, now=self.clock())
            return added or bool(removed)

        self.retry.update_member(self.store, member_id, apply)

    def _commit_owner(
        self,
        room: Room,
        title: str,
        members: dict[str, Member],
        blocks: list[CommitBlock],
    ) -> None:
        # The owner's copy of each visit starts at the travel leg
        calendar_blocks = []
        for b in blocks:
            visited = members.get(b.member_id)
            name = visited.display_name if visited else b.member_id
            calendar_blocks.append(
                CalendarBlock(
                    title=f"{title}: {name}",
                    date=b.date,
                    start=minutes_to_time(b.travel_start),
                    end=minutes_to_time(b.end),
                    room_id=room.id,
                    member_id=b.member_id,
                    includes_travel=b.travel_minutes > 0,
                )
            )
        refs = [b.travel_ref() for b in blocks]

        def apply(owner: Member) -> bool:
            added = _add_calendar_blocks(owner, calendar_blocks)
            removed = remove_preference_times(owner, refs, room.id, now=self.clock())
            return added or bool(removed)

        self.retry.update_member(self.store, room.owner_id, apply)

    def reset_schedule(self, room_id: str, actor_id: str, actor_name: str) -> ResetResult:
        """
        Remove all slots of a room and undo the preference splits.

        Open exchange requests are cancelled and the room's calendar blocks
        are removed from every member's calendar.

        Raises:
            PermissionDeniedError: If the actor is not the owner
            CommitFailedError: If a record could not be saved within the retry limit
        """
        room = self.store.get_room(room_id)
        self._check_owner(room, actor_id, f"reset room '{room_id}'")
        result = ResetResult(room_id=room_id)
        restored_ids: set[str] = set()

        def restore(member: Member) -> bool:
            restored = restore_preference_times(member, room_id)
            if restored:
                restored_ids.add(member.id)
            before = len(member.personal_calendar)
            member.personal_calendar = [
                b for b in member.personal_calendar if b.room_id != room_id
            ]
            return bool(restored) or len(member.personal_calendar) != before

        for member_id in room.member_ids:
            self.retry.update_member(self.store, member_id, restore)
        result.restored_member_ids = [m for m in room.member_ids if m in restored_ids]

        now = self.clock()

        def clear(fresh: Room) -> bool:
            result.removed_slot_count = len(fresh.slots)
            open_requests = [r for r in fresh.requests if not r.status.is_terminal]
            for request in open_requests:
                request.status = RequestStatus.CANCELLED
                request.responded_at = now
                request.history.append(
                    StatusChange(RequestStatus.CANCELLED, now, "Schedule reset")
                )
            changed = bool(fresh.slots or open_requests or fresh.auto_confirm_at)
            fresh.slots = []
            fresh.auto_confirm_at = None
            return changed

        self.retry.update_room(self.store, room_id, clear)

        self.audit.append(
            room_id,
            actor_id,
            actor_name,
            ACTION_RESET_SCHEDULE,
            f"Reset schedule, removed {result.removed_slot_count} slot(s)",
        )
        self.bus.emit(
            room_id, EVENT_SCHEDULE_RESET, {"removed_slot_count": result.removed_slot_count}
        )
        logger.info(f"Reset room '{room_id}'")
        return result


def _add_calendar_blocks(member: Member, blocks: list[CalendarBlock]) -> bool:
    existing = {b.identity for b in member.personal_calendar}
    added = False
    for block in blocks:
        if block.identity in existing:
            continue
        member.personal_calendar.append(block)
        existing.add(block.identity)
        added = True
    return added
