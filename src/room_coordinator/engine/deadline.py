"""Auto-confirm deadline: arm, cancel and fire."""

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from ..config import CoordinationConfig
from ..constants import SYSTEM_ACTOR_ID, SYSTEM_ACTOR_NAME
from ..exceptions import CoordinationError, InvalidRangeError
from ..models import Room
from .committer import ScheduleCommitter
from .persistence import DocumentStore, RetryPolicy

logger = logging.getLogger(__name__)


@dataclass
class FireReport:
    """Outcome of one deadline poll."""

    confirmed_room_ids: list[str] = field(default_factory=list)
    cleared_room_ids: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)


class AutoConfirmDeadline:
    """
    Manages each room's single auto_confirm_at deadline.

    Arming always replaces the current deadline. Firing goes through the
    committer, which clears the deadline and guards every slot with its
    confirmed flag, so a duplicate fire commits nothing.
    """

    def __init__(
        self,
        store: DocumentStore,
        committer: ScheduleCommitter,
        config: CoordinationConfig | None = None,
        retry: RetryPolicy | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.committer = committer
        self.config = config or CoordinationConfig()
        self.retry = retry or committer.retry
        self.clock = clock

    def arm_auto_confirm(
        self, room_id: str, duration_minutes: int | None = None, now: datetime | None = None
    ) -> datetime:
        """Set (or reset) the deadline to now + duration.

        Returns:
            The new deadline
        """
        duration = (
            self.config.auto_confirm_minutes if duration_minutes is None else duration_minutes
        )
        if duration <= 0:
            raise InvalidRangeError(f"Auto-confirm duration must be positive, got {duration}")
        deadline = (now or self.clock()) + timedelta(minutes=duration)

        def arm(room: Room) -> bool:
            room.auto_confirm_duration_minutes = duration
            room.auto_confirm_at = deadline
            return True

        self.retry.update_room(self.store, room_id, arm)
        logger.info(f"Armed auto-confirm for room '{room_id}' at {deadline.isoformat()}")
        return deadline

    def cancel_auto_confirm(self, room_id: str) -> bool:
        """Clear the deadline. Returns False if none was armed."""

        cancelled = False

        def cancel(room: Room) -> bool:
            nonlocal cancelled
            cancelled = room.auto_confirm_at is not None
            room.auto_confirm_at = None
            return cancelled

        self.retry.update_room(self.store, room_id, cancel)
        if cancelled:
            logger.info(f"Cancelled auto-confirm for room '{room_id}'")
        return cancelled

    def fire_due_deadlines(
        self, room_ids: Iterable[str] | None = None, now: datetime | None = None
    ) -> FireReport:
        """Confirm every room whose deadline has passed.

        Args:
            room_ids: Rooms to check, defaults to all rooms in the store
            now: Current time

        Returns:
            FireReport; a room that fails is reported and does not stop the others
        """
        now = now or self.clock()
        report = FireReport()
        for room_id in room_ids if room_ids is not None else self.store.list_room_ids():
            room = self.store.get_room(room_id)
            if room.auto_confirm_at is None or room.auto_confirm_at > now:
                continue

            logger.info(f"Auto-confirm deadline passed for room '{room_id}'")
            try:
                result = self.committer.confirm(room_id, SYSTEM_ACTOR_ID, SYSTEM_ACTOR_NAME)
            except CoordinationError as e:
                logger.error(f"Auto-confirm failed for room '{room_id}': {e}")
                report.failed[room_id] = str(e)
                continue

            if result.committed:
                report.confirmed_room_ids.append(room_id)
            else:
                self.cancel_auto_confirm(room_id)
                report.cleared_room_ids.append(room_id)
        return report
