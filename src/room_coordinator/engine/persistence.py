"""Document store contract, store implementations and the commit retry policy."""

import copy
import json
import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol, TypeVar

from ..constants import DEFAULT_COMMIT_BACKOFF_SECONDS, DEFAULT_MAX_COMMIT_ATTEMPTS
from ..exceptions import (
    CommitFailedError,
    MemberNotFoundError,
    RoomNotFoundError,
    VersionConflictError,
)
from ..models import Member, Room

logger = logging.getLogger(__name__)

T = TypeVar("T", Room, Member)


class DocumentStore(Protocol):
    """Persistence contract used by the engine.

    Saves are version-checked: the record being saved must carry the version
    that is currently stored. A successful save bumps the version by one.
    """

    def get_room(self, room_id: str) -> Room: ...

    def save_room(self, room: Room) -> Room: ...

    def get_member(self, member_id: str) -> Member: ...

    def save_member(self, member: Member) -> Member: ...

    def get_members(self, member_ids: Iterable[str]) -> dict[str, Member]: ...

    def list_room_ids(self) -> list[str]: ...


class _RecordStore:
    """Shared load/save logic over raw dict documents."""

    def _read(self, kind: str, record_id: str) -> dict[str, Any] | None:
        raise NotImplementedError

    def _write(self, kind: str, record_id: str, data: dict[str, Any]) -> None:
        raise NotImplementedError

    def _ids(self, kind: str) -> list[str]:
        raise NotImplementedError

    def _save(self, kind: str, record: T) -> T:
        stored = self._read(kind, record.id)
        stored_version = stored.get("version", 0) if stored is not None else record.version
        if stored_version != record.version:
            raise VersionConflictError(kind, record.id, record.version, stored_version)
        record.version += 1
        self._write(kind, record.id, record.to_dict())
        logger.debug(f"Saved {kind} '{record.id}' at version {record.version}")
        return record

    def get_room(self, room_id: str) -> Room:
        data = self._read("room", room_id)
        if data is None:
            raise RoomNotFoundError(room_id)
        return Room.from_dict(data)

    def save_room(self, room: Room) -> Room:
        return self._save("room", room)

    def get_member(self, member_id: str) -> Member:
        data = self._read("member", member_id)
        if data is None:
            raise MemberNotFoundError(member_id)
        return Member.from_dict(data)

    def save_member(self, member: Member) -> Member:
        return self._save("member", member)

    def get_members(self, member_ids: Iterable[str]) -> dict[str, Member]:
        return {member_id: self.get_member(member_id) for member_id in member_ids}

    def list_room_ids(self) -> list[str]:
        return sorted(self._ids("room"))


class InMemoryStore(_RecordStore):
    """Store keeping serialized documents in memory.

    Records are copied in and out so callers never share state with the store.
    """

    def __init__(self) -> None:
        self._records: dict[str, dict[str, dict[str, Any]]] = {"room": {}, "member": {}}

    def _read(self, kind: str, record_id: str) -> dict[str, Any] | None:
        data = self._records[kind].get(record_id)
        return copy.deepcopy(data) if data is not None else None

    def _write(self, kind: str, record_id: str, data: dict[str, Any]) -> None:
        self._records[kind][record_id] = copy.deepcopy(data)

    def _ids(self, kind: str) -> list[str]:
        return list(self._records[kind])


class JsonFileStore(_RecordStore):
    """Store keeping one JSON file per record under a data directory.

    Layout:
        <root>/rooms/<room_id>.json
        <root>/members/<member_id>.json
    """

    DIRECTORIES = {"room": "rooms", "member": "members"}

    def __init__(self, root: Path):
        self.root = Path(root)
        for directory in self.DIRECTORIES.values():
            (self.root / directory).mkdir(parents=True, exist_ok=True)

    def _path(self, kind: str, record_id: str) -> Path:
        return self.root / self.DIRECTORIES[kind] / f"{record_id}.json"

    def _read(self, kind: str, record_id: str) -> dict[str, Any] | None:
        path = self._path(kind, record_id)
        if not path.exists():
            return None
        with open(path, encoding="utf-8") as f:
            return json.load(f)

    def _write(self, kind: str, record_id: str, data: dict[str, Any]) -> None:
        path = self._path(kind, record_id)
        tmp_path = path.with_suffix(".json.tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
        tmp_path.replace(path)

    def _ids(self, kind: str) -> list[str]:
        return [p.stem for p in (self.root / self.DIRECTORIES[kind]).glob("*.json")]


@dataclass
class RetryPolicy:
    """Optimistic-concurrency loop: fetch, apply a mutation, save, retry on conflict.

    The mutation receives a freshly fetched record and returns True when it
    changed something. Nothing is written when it returns False. Version
    conflicts are retried with linear backoff (attempt * backoff_seconds);
    exhausting max_attempts raises CommitFailedError.
    """

    max_attempts: int = DEFAULT_MAX_COMMIT_ATTEMPTS
    backoff_seconds: float = DEFAULT_COMMIT_BACKOFF_SECONDS
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def run(
        self,
        kind: str,
        record_id: str,
        fetch: Callable[[], T],
        mutate: Callable[[T], bool],
        save: Callable[[T], T],
    ) -> T:
        for attempt in range(1, self.max_attempts + 1):
            record = fetch()
            if not mutate(record):
                return record
            try:
                return save(record)
            except VersionConflictError as e:
                logger.warning(f"{e} (attempt {attempt}/{self.max_attempts})")
                if attempt < self.max_attempts:
                    self.sleep(self.backoff_seconds * attempt)

        raise CommitFailedError(kind, record_id, self.max_attempts)

    def update_room(
        self, store: DocumentStore, room_id: str, mutate: Callable[[Room], bool]
    ) -> Room:
        return self.run(
            "room", room_id, lambda: store.get_room(room_id), mutate, store.save_room
        )

    def update_member(
        self, store: DocumentStore, member_id: str, mutate: Callable[[Member], bool]
    ) -> Member:
        return self.run(
            "member",
            member_id,
            lambda: store.get_member(member_id),
            mutate,
            store.save_member,
        )
