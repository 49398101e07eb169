"""Exchange requests and multi-hop chain relocation.

A slot request asks a target member to hand over a slot. Approving it means
the target has to go somewhere else: directly into free time when there is
some, otherwise into another member's slot, who then has to move in turn.
Each such hop needs the approval of the member being displaced. The whole
state lives in the room's request records, so a chain resumes from the
stored document at any hop.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

from ..config import CoordinationConfig
from ..constants import (
    ACTION_CHAIN_REQUEST,
    ACTION_REQUEST_CANCELLED,
    ACTION_REQUEST_REJECTED,
    ACTION_SLOT_RELEASE,
    ACTION_SLOT_REQUEST,
    ACTION_SLOT_SWAP,
    MIN_PRIORITY,
    RELOCATION_STEP_MINUTES,
    SUBJECT_CHAIN_RESULT,
    SUBJECT_EXCHANGED,
    SUBJECT_RELOCATED,
)
from ..exceptions import (
    DuplicateRequestError,
    InvalidActionError,
    InvalidStatusTransitionError,
    MemberNotFoundError,
    MissingFieldError,
    PermissionDeniedError,
    RequestNotFoundError,
    SlotNotFoundError,
    SlotOwnershipError,
)
from ..models import (
    ALLOWED_TRANSITIONS,
    ChainAction,
    ChainData,
    ChainHop,
    ExchangeRequest,
    Member,
    RequestStatus,
    RequestType,
    ResponseAction,
    Room,
    Slot,
    SlotKind,
    SlotRef,
    StatusChange,
)
from ..utils import minutes_to_time, weekday_of
from .availability import free_ranges, week_dates
from .simulator import ScheduleSimulator

logger = logging.getLogger(__name__)

TYPE_ACTIONS = {
    RequestType.SLOT_REQUEST: ACTION_SLOT_REQUEST,
    RequestType.SLOT_SWAP: ACTION_SLOT_SWAP,
    RequestType.SLOT_RELEASE: ACTION_SLOT_RELEASE,
    RequestType.CHAIN_REQUEST: ACTION_CHAIN_REQUEST,
}


@dataclass
class ExchangeEvent:
    """A status change to be written to the audit log and broadcast."""

    request_id: str
    status: RequestStatus
    actor_id: str
    action: str
    message: str
    notify_member_ids: list[str] = field(default_factory=list)


@dataclass
class ExchangeOutcome:
    """Result of one resolver call."""

    request: ExchangeRequest
    events: list[ExchangeEvent] = field(default_factory=list)
    created_request: ExchangeRequest | None = None

    @property
    def status(self) -> RequestStatus:
        return self.request.status

    @property
    def reason(self) -> str:
        return self.request.response


@dataclass
class _Context:
    """Slots taken out of and added to the day by moves planned so far."""

    removed_ids: set[str]
    extra: list[Slot]


def _parse_action(value, enum_type):
    try:
        return enum_type(value)
    except ValueError as e:
        raise InvalidActionError(value, [a.value for a in enum_type]) from e


class ExchangeResolver:
    """State machine over a room's exchange requests.

    Operates on an in-memory room; the caller persists it after each call.
    """

    def __init__(
        self,
        room: Room,
        members: dict[str, Member],
        config: CoordinationConfig | None = None,
        now: datetime | None = None,
    ):
        self.room = room
        self.members = members
        self.config = config or CoordinationConfig()
        self.now = now or datetime.now()
        self.simulator = ScheduleSimulator(room, members, speeds=self.config.travel_speeds_kmh)
        self._events: list[ExchangeEvent] = []
        self._created: ExchangeRequest | None = None

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def create_request(
        self,
        requester_id: str,
        target_member_id: str,
        target_slot_id: str,
        request_type: RequestType | str,
        requester_slot_ids: list[str] | None = None,
        message: str = "",
    ) -> ExchangeOutcome:
        """Open a new request.

        For slot_request and slot_swap the target slot belongs to the target
        member; for slot_release it is the requester's own slot.

        Raises:
            PermissionDeniedError: If the owner makes the request
            MemberNotFoundError: If either party is not in the room
            SlotNotFoundError: If a slot does not exist
            SlotOwnershipError: If a slot belongs to the wrong member
            DuplicateRequestError: If the same request is already open
        """
        request_type = _parse_action(request_type, RequestType)
        if request_type == RequestType.CHAIN_REQUEST:
            raise InvalidActionError(
                request_type.value,
                [t.value for t in RequestType if t != RequestType.CHAIN_REQUEST],
            )
        if requester_id == self.room.owner_id:
            raise PermissionDeniedError(requester_id, "create exchange requests")
        for member_id in (requester_id, target_member_id):
            if self.room.get_room_member(member_id) is None:
                raise MemberNotFoundError(member_id, self.room.id)

        slot = self._require_slot(target_slot_id)
        slot_owner = requester_id if request_type == RequestType.SLOT_RELEASE else target_member_id
        if slot.member_id != slot_owner:
            raise SlotOwnershipError(slot.id, slot_owner)

        offered = list(requester_slot_ids or [])
        for slot_id in offered:
            if self._require_slot(slot_id).member_id != requester_id:
                raise SlotOwnershipError(slot_id, requester_id)
        if request_type == RequestType.SLOT_SWAP and not offered:
            raise MissingFieldError("requester_slot_ids", "slot swap request")

        for existing in self.room.requests:
            if (
                not existing.status.is_terminal
                and existing.type == request_type
                and existing.requester_id == requester_id
                and existing.target_member_id == target_member_id
                and existing.target_slot == slot.ref()
            ):
                raise DuplicateRequestError(existing.id)

        request = ExchangeRequest(
            type=request_type,
            requester_id=requester_id,
            target_member_id=target_member_id,
            target_slot=slot.ref(),
            requester_slot_ids=offered,
            message=message,
            created_at=self.now,
            history=[StatusChange(RequestStatus.PENDING, self.now, "created")],
        )
        self.room.requests.append(request)
        self._record(
            request,
            requester_id,
            TYPE_ACTIONS[request_type],
            f"Requested {request.target_slot} from '{target_member_id}'",
            [target_member_id],
        )
        logger.info(f"Created {request_type.value} '{request.id}' in room '{self.room.id}'")
        return self._outcome(request)

    def respond(
        self,
        request_id: str,
        responder_id: str,
        action: ResponseAction | str,
        message: str = "",
    ) -> ExchangeOutcome:
        """Approve or reject a pending request as its target.

        Raises:
            RequestNotFoundError: If the request does not exist
            PermissionDeniedError: If the responder is not the target
            InvalidStatusTransitionError: If the request is not pending
        """
        action = _parse_action(action, ResponseAction)
        request = self._require_request(request_id)
        if responder_id != request.target_member_id:
            raise PermissionDeniedError(responder_id, f"respond to request '{request_id}'")
        if request.status != RequestStatus.PENDING:
            target = (
                RequestStatus.APPROVED
                if action == ResponseAction.APPROVE
                else RequestStatus.REJECTED
            )
            raise InvalidStatusTransitionError(request.id, request.status.value, target.value)

        request.response = message
        if request.type == RequestType.CHAIN_REQUEST:
            if action == ResponseAction.APPROVE:
                self._approve_chain_hop(request, responder_id)
            else:
                self._reject_chain_hop(request, responder_id, message)
        elif action == ResponseAction.REJECT:
            self._transition(request, RequestStatus.REJECTED, message or "Rejected by target")
            self._record(
                request,
                responder_id,
                ACTION_REQUEST_REJECTED,
                f"Rejected request for {request.target_slot}",
                [request.requester_id],
            )
        elif request.type == RequestType.SLOT_RELEASE:
            self._approve_release(request, responder_id)
        elif request.type == RequestType.SLOT_SWAP:
            self._approve_swap(request, responder_id)
        else:
            self._approve_slot_request(request, responder_id)

        return self._outcome(request)

    def confirm_chain(
        self, request_id: str, actor_id: str, action: ChainAction | str
    ) -> ExchangeOutcome:
        """Chain head proceeds with or cancels a proposed chain.

        Raises:
            PermissionDeniedError: If the actor is not the chain head
            InvalidStatusTransitionError: If no chain confirmation is pending
        """
        action = _parse_action(action, ChainAction)
        request = self._require_request(request_id)
        chain = request.chain_data
        if chain is None or request.status != RequestStatus.NEEDS_CHAIN_CONFIRMATION:
            target = (
                RequestStatus.WAITING_FOR_CHAIN
                if action == ChainAction.PROCEED
                else RequestStatus.REJECTED
            )
            raise InvalidStatusTransitionError(request.id, request.status.value, target.value)
        if actor_id != chain.head_id:
            raise PermissionDeniedError(actor_id, f"confirm chain '{request_id}'")

        if action == ChainAction.CANCEL:
            self._transition(request, RequestStatus.REJECTED, "Chain cancelled by requester")
            request.response = "Chain cancelled by requester"
            self._record(
                request,
                actor_id,
                ACTION_REQUEST_REJECTED,
                "Chain cancelled by requester",
                [request.target_member_id],
            )
            return self._outcome(request)

        candidate_slot = self.room.get_slot(chain.candidate_slot_id or "")
        if candidate_slot is None or candidate_slot.member_id != chain.candidate_member_id:
            self._terminate_chain(request, actor_id, "The chain's slots have changed")
            return self._outcome(request)

        self._transition(request, RequestStatus.WAITING_FOR_CHAIN, "Chain confirmed")
        self._open_hop_request(request, chain)
        return self._outcome(request)

    def cancel_request(self, request_id: str, actor_id: str) -> ExchangeOutcome:
        """Requester withdraws a request. A chain collapses to rejected."""
        request = self._require_request(request_id)
        if actor_id != request.requester_id:
            raise PermissionDeniedError(actor_id, f"cancel request '{request_id}'")
        if request.status.is_terminal:
            raise InvalidStatusTransitionError(
                request.id, request.status.value, RequestStatus.CANCELLED.value
            )

        if request.chain_data is not None:
            root = self._require_request(request.chain_data.root_request_id)
            self._terminate_chain(root, actor_id, "Chain cancelled by requester")
            return self._outcome(request)

        self._transition(request, RequestStatus.CANCELLED, "Cancelled by requester")
        self._record(
            request,
            actor_id,
            ACTION_REQUEST_CANCELLED,
            f"Cancelled request for {request.target_slot}",
            [request.target_member_id],
        )
        return self._outcome(request)

    # ------------------------------------------------------------------
    # Approvals
    # ------------------------------------------------------------------

    def _approve_release(self, request: ExchangeRequest, responder_id: str) -> None:
        slot = self._locate(request.requester_id, request.target_slot)
        if slot is not None:
            self.room.slots.remove(slot)
        self._transition(request, RequestStatus.APPROVED, "Slot released")
        self._record(
            request,
            responder_id,
            ACTION_SLOT_RELEASE,
            f"Released {request.target_slot} of '{request.requester_id}'",
            [request.requester_id],
        )

    def _approve_swap(self, request: ExchangeRequest, responder_id: str) -> None:
        target_slot = self._locate(request.target_member_id, request.target_slot)
        offered = [self.room.get_slot(slot_id) for slot_id in request.requester_slot_ids]
        if target_slot is None or any(s is None for s in offered):
            self._reject(request, responder_id, "The slots involved have changed")
            return

        removed = {target_slot.id, *request.requester_slot_ids}
        requester_slot = self._new_slot(request.requester_id, target_slot.ref(), SUBJECT_EXCHANGED)
        placed = [requester_slot]
        for slot in offered:
            result = self.simulator.simulate(
                request.target_member_id,
                slot.date,
                slot.start_minutes,
                slot.duration_minutes,
                removed_slot_ids=removed,
                extra_slots=placed,
            )
            if not result.fits_as_booked:
                self._reject(
                    request,
                    responder_id,
                    f"Target cannot take {slot.ref()}: {result.booking_problem}",
                )
                return
            placed.append(self._new_slot(request.target_member_id, slot.ref(), SUBJECT_EXCHANGED))

        reason = self._requester_conflict(request, removed, placed[1:])
        if reason:
            self._reject(request, responder_id, reason)
            return

        self.room.slots = [s for s in self.room.slots if s.id not in removed]
        self.room.slots.extend(placed)
        self._transition(request, RequestStatus.APPROVED, "Slots swapped")
        self._record(
            request,
            responder_id,
            ACTION_SLOT_SWAP,
            f"Swapped {request.target_slot} with {len(offered)} offered slot(s)",
            [request.requester_id],
        )

    def _approve_slot_request(self, request: ExchangeRequest, responder_id: str) -> None:
        target_slot = self._locate(request.target_member_id, request.target_slot)
        if target_slot is None:
            self._reject(request, responder_id, "The requested slot no longer exists")
            return

        context = self._root_context(request, [])
        reason = self._requester_conflict(request, context.removed_ids, [])
        if reason:
            self._reject(request, responder_id, reason)
            return

        destination = self._find_free_destination(
            request.target_member_id, target_slot, context
        )
        if destination is not None:
            self._execute(
                request,
                [ChainHop(request.target_member_id, target_slot.ref(), destination)],
                SUBJECT_RELOCATED,
            )
            self._transition(request, RequestStatus.APPROVED, f"Target moved to {destination}")
            self._record(
                request,
                responder_id,
                ACTION_SLOT_REQUEST,
                f"Gave {request.target_slot} to '{request.requester_id}', "
                f"target moved to {destination}",
                [request.requester_id],
            )
            return

        hop = self._find_candidate(
            request.target_member_id,
            target_slot,
            context,
            excluded={request.requester_id, request.target_member_id},
            near=request.target_slot.date,
        )
        if hop is None:
            self._reject(request, responder_id, "No free time or chain candidate for the target")
            return

        move, candidate_slot = hop
        request.chain_data = ChainData(
            root_request_id=request.id,
            head_id=request.requester_id,
            path=[move],
            visited_member_ids=[request.requester_id, request.target_member_id],
            candidate_member_id=candidate_slot.member_id,
            candidate_slot_id=candidate_slot.id,
        )
        self._transition(
            request,
            RequestStatus.NEEDS_CHAIN_CONFIRMATION,
            f"Target needs to move into a slot of '{candidate_slot.member_id}'",
        )
        self._record(
            request,
            responder_id,
            ACTION_CHAIN_REQUEST,
            f"Chain needed: '{request.target_member_id}' into {move.to_slot}",
            [request.requester_id],
        )

    def _approve_chain_hop(self, hop_request: ExchangeRequest, responder_id: str) -> None:
        root = self._require_request(hop_request.chain_data.root_request_id)
        chain = root.chain_data
        candidate_slot = self.room.get_slot(chain.candidate_slot_id or "")
        if candidate_slot is None or candidate_slot.member_id != responder_id:
            self._terminate_chain(root, responder_id, "The chain's slots have changed")
            return

        context = self._root_context(root, chain.path)
        context.removed_ids.add(candidate_slot.id)
        destination = self._find_free_destination(responder_id, candidate_slot, context)
        if destination is not None:
            path = [*chain.path, ChainHop(responder_id, candidate_slot.ref(), destination)]
            if not self._execute(root, path, SUBJECT_CHAIN_RESULT):
                self._terminate_chain(root, responder_id, "The chain's slots have changed")
                return
            chain.path = path
            chain.visited_member_ids.append(responder_id)
            for request in self._chain_requests(root):
                self._transition(request, RequestStatus.APPROVED, "Chain completed")
            self._record(
                root,
                responder_id,
                ACTION_CHAIN_REQUEST,
                f"Chain completed in {len(path)} move(s)",
                [chain.head_id, *[h.member_id for h in path]],
            )
            logger.info(f"Chain '{root.id}' completed with {len(path)} move(s)")
            return

        if chain.hop >= self.config.max_chain_hops:
            self._terminate_chain(
                root,
                responder_id,
                f"No free time found within {self.config.max_chain_hops} hop(s)",
            )
            return

        chain.visited_member_ids.append(responder_id)
        hop = self._find_candidate(
            responder_id,
            candidate_slot,
            context,
            excluded=self._excluded(chain),
            near=root.target_slot.date,
        )
        if hop is None:
            self._terminate_chain(root, responder_id, "No further chain candidate")
            return

        move, next_slot = hop
        chain.path.append(move)
        chain.candidate_member_id = next_slot.member_id
        chain.candidate_slot_id = next_slot.id
        self._transition(hop_request, RequestStatus.WAITING_FOR_CHAIN, "Waiting for next hop")
        self._record(
            hop_request,
            responder_id,
            ACTION_CHAIN_REQUEST,
            f"Agreed to move into {move.to_slot}; asking '{next_slot.member_id}'",
            [chain.head_id],
        )
        self._open_hop_request(root, chain)

    def _reject_chain_hop(
        self, hop_request: ExchangeRequest, responder_id: str, message: str
    ) -> None:
        root = self._require_request(hop_request.chain_data.root_request_id)
        chain = root.chain_data
        self._transition(hop_request, RequestStatus.REJECTED, message or "Declined")
        self._record(
            hop_request,
            responder_id,
            ACTION_REQUEST_REJECTED,
            "Declined chain move",
            [chain.head_id],
        )

        chain.tried_candidate_ids.append(responder_id)
        declined = chain.path.pop()
        mover_slot = self._locate(declined.member_id, declined.from_slot)
        hop = None
        if mover_slot is not None:
            hop = self._find_candidate(
                declined.member_id,
                mover_slot,
                self._root_context(root, chain.path),
                excluded=self._excluded(chain),
                near=root.target_slot.date,
            )
        if hop is None:
            chain.path.append(declined)
            self._terminate_chain(root, responder_id, "Every chain candidate declined")
            return

        move, next_slot = hop
        chain.path.append(move)
        chain.candidate_member_id = next_slot.member_id
        chain.candidate_slot_id = next_slot.id
        self._open_hop_request(root, chain)

    # ------------------------------------------------------------------
    # Chain helpers
    # ------------------------------------------------------------------

    def _open_hop_request(self, root: ExchangeRequest, chain: ChainData) -> ExchangeRequest:
        candidate_slot = self._require_slot(chain.candidate_slot_id or "")
        hop_request = ExchangeRequest(
            type=RequestType.CHAIN_REQUEST,
            requester_id=chain.head_id,
            target_member_id=candidate_slot.member_id,
            target_slot=candidate_slot.ref(),
            chain_data=ChainData(
                root_request_id=root.id,
                head_id=chain.head_id,
                path=list(chain.path),
                candidate_member_id=candidate_slot.member_id,
                candidate_slot_id=candidate_slot.id,
            ),
            created_at=self.now,
            history=[StatusChange(RequestStatus.PENDING, self.now, f"hop {chain.hop}")],
        )
        self.room.requests.append(hop_request)
        self._created = hop_request
        self._record(
            hop_request,
            chain.head_id,
            ACTION_CHAIN_REQUEST,
            f"Asked '{candidate_slot.member_id}' to give up {candidate_slot.ref()} "
            f"(hop {chain.hop})",
            [candidate_slot.member_id],
        )
        return hop_request

    def _chain_requests(self, root: ExchangeRequest) -> list[ExchangeRequest]:
        """Non-terminal requests of a chain, root first."""
        return [
            r
            for r in self.room.requests
            if not r.status.is_terminal
            and (r.id == root.id or (r.chain_data and r.chain_data.root_request_id == root.id))
        ]

    def _terminate_chain(self, root: ExchangeRequest, actor_id: str, reason: str) -> None:
        for request in self._chain_requests(root):
            self._transition(request, RequestStatus.REJECTED, reason)
            request.response = reason
        head_id = root.chain_data.head_id if root.chain_data else root.requester_id
        self._record(
            root,
            actor_id,
            ACTION_REQUEST_REJECTED,
            f"Chain rejected: {reason}",
            [head_id],
        )
        logger.warning(f"Chain '{root.id}' rejected: {reason}")

    def _excluded(self, chain: ChainData) -> set[str]:
        return {chain.head_id, *chain.visited_member_ids, *chain.tried_candidate_ids}

    def _root_context(self, root: ExchangeRequest, path: list[ChainHop]) -> _Context:
        """Day state with the requester in the target slot and the path's moves applied."""
        removed = set(root.requester_slot_ids)
        target_slot = self._locate(root.target_member_id, root.target_slot)
        if target_slot is not None:
            removed.add(target_slot.id)
        extra = [self._new_slot(root.requester_id, root.target_slot, SUBJECT_EXCHANGED)]
        for hop in path:
            slot = self._locate(hop.member_id, hop.from_slot)
            if slot is not None:
                removed.add(slot.id)
            extra.append(self._new_slot(hop.member_id, hop.to_slot, SUBJECT_CHAIN_RESULT))
        return _Context(removed_ids=removed, extra=extra)

    def _search_dates(self, near: date) -> list[date]:
        """The week around a date (Sunday first), that date tried first."""
        week_start = near - timedelta(days=weekday_of(near))
        return [near, *[d for d in week_dates(week_start) if d != near]]

    def _find_free_destination(
        self, member_id: str, current: Slot, context: _Context
    ) -> SlotRef | None:
        """Free, simulator-valid time for a member leaving their current slot."""
        duration = current.duration_minutes
        removed = context.removed_ids | {current.id}
        for day in self._search_dates(current.date):
            for start, end in free_ranges(
                self.room,
                self.members,
                member_id,
                day,
                MIN_PRIORITY,
                extra_slots=context.extra,
                removed_slot_ids=removed,
            ):
                position = start
                while position + duration <= end:
                    result = self.simulator.simulate(
                        member_id,
                        day,
                        position,
                        duration,
                        removed_slot_ids=removed,
                        extra_slots=context.extra,
                    )
                    if result.fits_as_booked:
                        return SlotRef(
                            day, minutes_to_time(position), minutes_to_time(position + duration)
                        )
                    position += RELOCATION_STEP_MINUTES
        return None

    def _find_candidate(
        self,
        mover_id: str,
        mover_slot: Slot,
        context: _Context,
        excluded: set[str],
        near: date,
    ) -> tuple[ChainHop, Slot] | None:
        """Choose whose slot the mover could take.

        Candidates are other members' slots in the same week that are long
        enough and simulator-valid for the mover. Ties go to the lowest
        current load, then earliest join, then the earliest slot.
        """
        duration = mover_slot.duration_minutes
        search_dates = set(self._search_dates(near))
        removed = context.removed_ids | {mover_slot.id}
        options = []
        for slot in self.room.class_slots():
            member_id = slot.member_id
            if (
                member_id in excluded
                or member_id == mover_id
                or member_id == self.room.owner_id
                or slot.id in removed
                or slot.date not in search_dates
                or slot.duration_minutes < duration
            ):
                continue
            result = self.simulator.simulate(
                mover_id,
                slot.date,
                slot.start_minutes,
                duration,
                removed_slot_ids=removed | {slot.id},
                extra_slots=context.extra,
            )
            if not result.fits_as_booked:
                logger.debug(
                    f"Chain candidate {slot.ref()} rejected for '{mover_id}': "
                    f"{result.booking_problem}"
                )
                continue
            load = sum(s.duration_minutes for s in self.room.slots_for(member_id))
            key = (load, self.room.join_index(member_id), slot.date, slot.start_minutes)
            options.append((key, slot))

        if not options:
            return None
        _, chosen = min(options, key=lambda option: option[0])
        destination = SlotRef(
            chosen.date,
            chosen.start,
            minutes_to_time(chosen.start_minutes + duration),
        )
        return ChainHop(mover_id, mover_slot.ref(), destination), chosen

    def _execute(self, root: ExchangeRequest, path: list[ChainHop], subject: str) -> bool:
        """Apply the requester's takeover and every move of a path to the room."""
        removed = set(root.requester_slot_ids)
        target_slot = self._locate(root.target_member_id, root.target_slot)
        moving = [self._locate(hop.member_id, hop.from_slot) for hop in path]
        if target_slot is None or any(slot is None for slot in moving):
            return False

        removed.add(target_slot.id)
        removed.update(slot.id for slot in moving)
        self.room.slots = [s for s in self.room.slots if s.id not in removed]
        self.room.slots.append(
            self._new_slot(root.requester_id, root.target_slot, SUBJECT_EXCHANGED)
        )
        for hop in path:
            self.room.slots.append(self._new_slot(hop.member_id, hop.to_slot, subject))
        return True

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------

    def _requester_conflict(
        self, request: ExchangeRequest, removed: set[str], extra: list[Slot]
    ) -> str | None:
        ref = request.target_slot
        result = self.simulator.simulate(
            request.requester_id,
            ref.date,
            ref.start_minutes,
            ref.duration_minutes,
            removed_slot_ids=removed,
            extra_slots=extra,
        )
        problem = result.booking_problem
        return f"Requester cannot take {ref}: {problem}" if problem else None

    def _reject(self, request: ExchangeRequest, actor_id: str, reason: str) -> None:
        self._transition(request, RequestStatus.REJECTED, reason)
        request.response = reason
        self._record(request, actor_id, ACTION_REQUEST_REJECTED, reason, [request.requester_id])
        logger.warning(f"Request '{request.id}' rejected: {reason}")

    def _transition(self, request: ExchangeRequest, status: RequestStatus, note: str) -> None:
        if status not in ALLOWED_TRANSITIONS[request.status]:
            raise InvalidStatusTransitionError(request.id, request.status.value, status.value)
        request.status = status
        request.history.append(StatusChange(status, self.now, note))
        if status.is_terminal:
            request.responded_at = self.now

    def _record(
        self,
        request: ExchangeRequest,
        actor_id: str,
        action: str,
        message: str,
        notify: list[str],
    ) -> None:
        self._events.append(
            ExchangeEvent(
                request_id=request.id,
                status=request.status,
                actor_id=actor_id,
                action=action,
                message=message,
                notify_member_ids=list(dict.fromkeys(notify)),
            )
        )

    def _outcome(self, request: ExchangeRequest) -> ExchangeOutcome:
        outcome = ExchangeOutcome(
            request=request, events=self._events, created_request=self._created
        )
        self._events, self._created = [], None
        return outcome

    def _new_slot(self, member_id: str, ref: SlotRef, subject: str) -> Slot:
        return Slot(
            member_id=member_id, date=ref.date, start=ref.start, end=ref.end, subject=subject
        )

    def _locate(self, member_id: str, ref: SlotRef) -> Slot | None:
        for slot in self.room.slots_for(member_id):
            if slot.ref() == ref:
                return slot
        return None

    def _require_slot(self, slot_id: str) -> Slot:
        slot = self.room.get_slot(slot_id)
        if slot is None or slot.kind != SlotKind.CLASS:
            raise SlotNotFoundError(slot_id)
        return slot

    def _require_request(self, request_id: str) -> ExchangeRequest:
        request = self.room.get_request(request_id)
        if request is None:
            raise RequestNotFoundError(request_id)
        return request
