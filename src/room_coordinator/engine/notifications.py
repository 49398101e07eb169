"""Room-scoped notification bus and audit log."""

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class NotificationBus(Protocol):
    def emit(self, room_id: str, event: str, payload: dict[str, Any]) -> None: ...


class AuditLog(Protocol):
    def append(
        self, room_id: str, actor_id: str, actor_name: str, action: str, message: str
    ) -> None: ...


@dataclass
class Notification:
    room_id: str
    event: str
    payload: dict[str, Any]
    emitted_at: datetime = field(default_factory=datetime.now)


@dataclass
class AuditEntry:
    room_id: str
    actor_id: str
    actor_name: str
    action: str
    message: str
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "room_id": self.room_id,
            "actor_id": self.actor_id,
            "actor_name": self.actor_name,
            "action": self.action,
            "message": self.message,
            "created_at": self.created_at.isoformat(),
        }


class InMemoryNotificationBus:
    """Records emitted events and forwards them to subscribers."""

    def __init__(self) -> None:
        self.notifications: list[Notification] = []
        self._subscribers: list[Callable[[Notification], None]] = []

    def subscribe(self, callback: Callable[[Notification], None]) -> None:
        self._subscribers.append(callback)

    def emit(self, room_id: str, event: str, payload: dict[str, Any]) -> None:
        notification = Notification(room_id=room_id, event=event, payload=payload)
        self.notifications.append(notification)
        logger.debug(f"Emitted '{event}' to room '{room_id}'")
        for callback in self._subscribers:
            callback(notification)

    def events_for(self, room_id: str, event: str | None = None) -> list[Notification]:
        return [
            n
            for n in self.notifications
            if n.room_id == room_id and (event is None or n.event == event)
        ]


class InMemoryAuditLog:
    """Append-only audit log kept in memory."""

    def __init__(self) -> None:
        self.entries: list[AuditEntry] = []

    def append(
        self, room_id: str, actor_id: str, actor_name: str, action: str, message: str
    ) -> None:
        self.entries.append(
            AuditEntry(
                room_id=room_id,
                actor_id=actor_id,
                actor_name=actor_name,
                action=action,
                message=message,
            )
        )

    def for_room(self, room_id: str, action: str | None = None) -> list[AuditEntry]:
        return [
            e
            for e in self.entries
            if e.room_id == room_id and (action is None or e.action == action)
        ]


class JsonLinesAuditLog:
    """Append-only audit log written as one JSON object per line."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def append(
        self, room_id: str, actor_id: str, actor_name: str, action: str, message: str
    ) -> None:
        entry = AuditEntry(
            room_id=room_id,
            actor_id=actor_id,
            actor_name=actor_name,
            action=action,
            message=message,
        )
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry.to_dict(), ensure_ascii=False) + "\n")
