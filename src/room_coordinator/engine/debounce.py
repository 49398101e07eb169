"""Per-room coalescing of re-analysis runs."""

import logging
import threading
from collections.abc import Callable

logger = logging.getLogger(__name__)


class RoomRerunCoordinator:
    """Runs a job per room at most once at a time.

    A trigger that arrives while the room's job is running sets a single
    pending flag; when the run finishes the job runs once more. Any number
    of triggers during one run collapse into that one rerun.
    """

    def __init__(self, job: Callable[[str], None]):
        self.job = job
        self._lock = threading.Lock()
        self._running: set[str] = set()
        self._pending: set[str] = set()

    def is_running(self, room_id: str) -> bool:
        with self._lock:
            return room_id in self._running

    def trigger(self, room_id: str) -> bool:
        """Request a run for a room.

        Returns:
            True if this call ran the job, False if it was coalesced into a
            run already in progress
        """
        with self._lock:
            if room_id in self._running:
                self._pending.add(room_id)
                logger.debug(f"Coalesced rerun for room '{room_id}'")
                return False
            self._running.add(room_id)

        try:
            while True:
                self.job(room_id)
                with self._lock:
                    if room_id not in self._pending:
                        self._running.discard(room_id)
                        return True
                    self._pending.discard(room_id)
        except Exception:
            with self._lock:
                self._running.discard(room_id)
                self._pending.discard(room_id)
            raise
