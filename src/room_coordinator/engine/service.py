"""Entry points that load records, run the engine and persist the result."""

import logging
from collections.abc import Callable, Iterable
from datetime import date, datetime

from ..config import CoordinationConfig
from ..constants import (
    ACTION_APPLY_TRAVEL_MODE,
    ACTION_AUTO_ASSIGN,
    EVENT_EXCHANGE_UPDATED,
    EVENT_SCHEDULE_ALLOCATED,
    EVENT_TRAVEL_MODE_APPLIED,
    SYSTEM_ACTOR_ID,
    SYSTEM_ACTOR_NAME,
)
from ..exceptions import PermissionDeniedError
from ..models import (
    AssignmentMode,
    ChainAction,
    Member,
    RequestType,
    ResponseAction,
    Room,
    TravelMode,
)
from .allocator import AllocationReport, SlotAllocator, apply_allocation
from .committer import ConfirmResult, ResetResult, ScheduleCommitter
from .deadline import AutoConfirmDeadline, FireReport
from .exchange import ExchangeOutcome, ExchangeResolver
from .itinerary import TravelPlan, apply_travel_plan, plan_travel, refresh_travel_legs
from .notifications import AuditLog, InMemoryAuditLog, InMemoryNotificationBus, NotificationBus
from .persistence import DocumentStore, RetryPolicy
from .simulator import ScheduleSimulator, SimulationResult

logger = logging.getLogger(__name__)


class CoordinationService:
    """Facade over the engine for one document store."""

    def __init__(
        self,
        store: DocumentStore,
        bus: NotificationBus | None = None,
        audit: AuditLog | None = None,
        config: CoordinationConfig | None = None,
        retry: RetryPolicy | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.bus = bus if bus is not None else InMemoryNotificationBus()
        self.audit = audit if audit is not None else InMemoryAuditLog()
        self.config = config or CoordinationConfig()
        self.retry = retry or RetryPolicy(
            max_attempts=self.config.max_commit_attempts,
            backoff_seconds=self.config.commit_backoff_seconds,
        )
        self.clock = clock
        self.committer = ScheduleCommitter(
            store, self.bus, self.audit, self.config, self.retry, clock
        )
        self.deadline = AutoConfirmDeadline(
            store, self.committer, self.config, self.retry, clock
        )

    def _members(self, room: Room) -> dict[str, Member]:
        return self.store.get_members(room.member_ids)

    def _name(self, members: dict[str, Member], member_id: str) -> str:
        if member_id == SYSTEM_ACTOR_ID:
            return SYSTEM_ACTOR_NAME
        member = members.get(member_id)
        return member.display_name if member else member_id

    # Allocation

    def allocate(
        self,
        room_id: str,
        week_start: date,
        mode: AssignmentMode | None = None,
        today: date | None = None,
        actor_id: str = SYSTEM_ACTOR_ID,
    ) -> AllocationReport:
        """Allocate a week and persist the new slots and carry-over state."""
        room = self.store.get_room(room_id)
        if actor_id not in (room.owner_id, SYSTEM_ACTOR_ID):
            raise PermissionDeniedError(actor_id, f"allocate room '{room_id}'")
        members = self._members(room)
        report: AllocationReport | None = None

        def run(fresh: Room) -> bool:
            nonlocal report
            report = SlotAllocator(fresh, members, self.config).allocate(week_start, mode, today)
            apply_allocation(fresh, report, self.clock())
            refresh_travel_legs(fresh, members, self.config.travel_speeds_kmh)
            return True

        self.retry.update_room(self.store, room_id, run)

        self.audit.append(
            room_id,
            actor_id,
            self._name(members, actor_id),
            ACTION_AUTO_ASSIGN,
            f"Allocated {len(report.slots)} slot(s) for week of {week_start.isoformat()}",
        )
        self.bus.emit(
            room_id,
            EVENT_SCHEDULE_ALLOCATED,
            {
                "week_start": week_start.isoformat(),
                "slot_count": len(report.slots),
                "unassigned": [m.member_id for m in report.unassigned],
            },
        )
        return report

    # Simulation

    def simulate(
        self,
        room_id: str,
        member_id: str,
        day: date | str,
        proposed_start: str | int,
        duration_minutes: int,
        removed_slot_ids: Iterable[str] = (),
    ) -> SimulationResult:
        room = self.store.get_room(room_id)
        simulator = ScheduleSimulator(
            room, self._members(room), speeds=self.config.travel_speeds_kmh
        )
        return simulator.simulate(
            member_id, day, proposed_start, duration_minutes, removed_slot_ids=removed_slot_ids
        )

    # Travel legs

    def apply_travel_mode(
        self,
        room_id: str,
        travel_mode: TravelMode | str,
        actor_id: str,
        actor_name: str | None = None,
    ) -> TravelPlan:
        """Select a room's travel mode and write its travel legs.

        Nothing is written when the mode would push a stored class past its
        start; the returned plan lists those classes.
        """
        travel_mode = TravelMode(travel_mode)
        room = self.store.get_room(room_id)
        if actor_id not in (room.owner_id, SYSTEM_ACTOR_ID):
            raise PermissionDeniedError(actor_id, f"change travel mode of room '{room_id}'")
        members = self._members(room)
        plan: TravelPlan | None = None

        def run(fresh: Room) -> bool:
            nonlocal plan
            plan = plan_travel(fresh, members, travel_mode, self.config.travel_speeds_kmh)
            return apply_travel_plan(fresh, plan)

        self.retry.update_room(self.store, room_id, run)
        if not plan.is_feasible:
            return plan

        self.audit.append(
            room_id,
            actor_id,
            actor_name or self._name(members, actor_id),
            ACTION_APPLY_TRAVEL_MODE,
            f"Applied {travel_mode.value} travel with {len(plan.legs)} leg(s)",
        )
        self.bus.emit(
            room_id,
            EVENT_TRAVEL_MODE_APPLIED,
            {
                "travel_mode": travel_mode.value,
                "leg_count": len(plan.legs),
                "travel_minutes": plan.travel_minutes,
            },
        )
        return plan

    # Exchange

    def _exchange(
        self, room_id: str, operation: Callable[[ExchangeResolver], ExchangeOutcome]
    ) -> ExchangeOutcome:
        room = self.store.get_room(room_id)
        members = self._members(room)
        outcome: ExchangeOutcome | None = None

        def run(fresh: Room) -> bool:
            nonlocal outcome
            resolver = ExchangeResolver(fresh, members, self.config, self.clock())
            outcome = operation(resolver)
            refresh_travel_legs(fresh, members, self.config.travel_speeds_kmh)
            return True

        self.retry.update_room(self.store, room_id, run)

        for event in outcome.events:
            self.audit.append(
                room_id,
                event.actor_id,
                self._name(members, event.actor_id),
                event.action,
                event.message,
            )
            self.bus.emit(
                room_id,
                EVENT_EXCHANGE_UPDATED,
                {
                    "request_id": event.request_id,
                    "status": event.status.value,
                    "message": event.message,
                    "notify": event.notify_member_ids,
                },
            )
        return outcome

    def create_request(
        self,
        room_id: str,
        requester_id: str,
        target_member_id: str,
        target_slot_id: str,
        request_type: RequestType | str = RequestType.SLOT_REQUEST,
        requester_slot_ids: list[str] | None = None,
        message: str = "",
    ) -> ExchangeOutcome:
        return self._exchange(
            room_id,
            lambda r: r.create_request(
                requester_id,
                target_member_id,
                target_slot_id,
                request_type,
                requester_slot_ids,
                message,
            ),
        )

    def respond(
        self,
        room_id: str,
        request_id: str,
        responder_id: str,
        action: ResponseAction | str,
        message: str = "",
    ) -> ExchangeOutcome:
        return self._exchange(
            room_id, lambda r: r.respond(request_id, responder_id, action, message)
        )

    def confirm_chain(
        self, room_id: str, request_id: str, actor_id: str, action: ChainAction | str
    ) -> ExchangeOutcome:
        return self._exchange(room_id, lambda r: r.confirm_chain(request_id, actor_id, action))

    def cancel_request(self, room_id: str, request_id: str, actor_id: str) -> ExchangeOutcome:
        return self._exchange(room_id, lambda r: r.cancel_request(request_id, actor_id))

    # Commit and deadline

    def confirm(
        self,
        room_id: str,
        actor_id: str,
        actor_name: str,
        travel_mode: TravelMode | None = None,
    ) -> ConfirmResult:
        return self.committer.confirm(room_id, actor_id, actor_name, travel_mode)

    def reset_schedule(self, room_id: str, actor_id: str, actor_name: str) -> ResetResult:
        return self.committer.reset_schedule(room_id, actor_id, actor_name)

    def arm_auto_confirm(
        self, room_id: str, duration_minutes: int | None = None
    ) -> datetime:
        return self.deadline.arm_auto_confirm(room_id, duration_minutes)

    def cancel_auto_confirm(self, room_id: str) -> bool:
        return self.deadline.cancel_auto_confirm(room_id)

    def fire_due_deadlines(
        self, room_ids: Iterable[str] | None = None, now: datetime | None = None
    ) -> FireReport:
        return self.deadline.fire_due_deadlines(room_ids, now)
