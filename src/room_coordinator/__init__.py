"""Room Coordinator - weekly time-slot allocation and exchange for shared rooms.

A room owner publishes preferred time windows; members join, declare their
own preferences, and get class slots allocated each week. Members can then
trade slots through exchange requests, which may grow into bounded relocation
chains, before the owner (or the auto-confirm deadline) commits the schedule
to everyone's calendars.

Example usage:
    from room_coordinator import CoordinationService, InMemoryStore

    store = InMemoryStore()
    # ... save Member and Room records into the store ...
    service = CoordinationService(store)

    report = service.allocate("room-1", date(2025, 3, 2))
    for member in report.unassigned:
        print(f"{member.member_id} is short {member.shortfall_hours:g}h")

    result = service.simulate("room-1", "alice", "2025-03-04", "14:00", 60)
    print(result.is_valid, result.reason)

    service.confirm("room-1", "owner", "Owner Name")
"""

from .config import ConfigLoader, CoordinationConfig
from .engine import (
    AllocationReport,
    CoordinationService,
    ExchangeResolver,
    InMemoryStore,
    JsonFileStore,
    ScheduleCommitter,
    ScheduleSimulator,
    SimulationResult,
    SlotAllocator,
)
from .exceptions import (
    CommitFailedError,
    CoordinationError,
    DuplicateRequestError,
    InvalidStatusTransitionError,
    MemberNotFoundError,
    PermissionDeniedError,
    RequestNotFoundError,
    RoomNotFoundError,
    SlotNotFoundError,
    ValidationError,
    VersionConflictError,
)
from .exporters import CSVExporter, ExcelExporter, JSONExporter, get_exporter
from .models import (
    AssignmentMode,
    ExchangeRequest,
    Member,
    PreferenceWindow,
    RequestStatus,
    RequestType,
    Room,
    RoomMember,
    RoomSettings,
    Slot,
    TravelMode,
)

__version__ = "0.1.0"

__all__ = [
    # Service
    "CoordinationService",
    "SlotAllocator",
    "AllocationReport",
    "ScheduleSimulator",
    "SimulationResult",
    "ExchangeResolver",
    "ScheduleCommitter",
    "InMemoryStore",
    "JsonFileStore",
    # Configuration
    "ConfigLoader",
    "CoordinationConfig",
    # Models
    "AssignmentMode",
    "ExchangeRequest",
    "Member",
    "PreferenceWindow",
    "RequestStatus",
    "RequestType",
    "Room",
    "RoomMember",
    "RoomSettings",
    "Slot",
    "TravelMode",
    # Exporters
    "JSONExporter",
    "CSVExporter",
    "ExcelExporter",
    "get_exporter",
    # Exceptions
    "CoordinationError",
    "ValidationError",
    "RoomNotFoundError",
    "MemberNotFoundError",
    "SlotNotFoundError",
    "RequestNotFoundError",
    "PermissionDeniedError",
    "DuplicateRequestError",
    "InvalidStatusTransitionError",
    "VersionConflictError",
    "CommitFailedError",
]
