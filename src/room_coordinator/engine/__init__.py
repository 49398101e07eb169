"""Allocation, simulation, exchange and commit engine."""

from .allocator import (
    AllocationReport,
    AllocationWarning,
    CarryOverUpdate,
    MemberAllocation,
    SlotAllocator,
    allocate_week,
    apply_allocation,
)
from .committer import CommitBlock, ConfirmResult, ResetResult, ScheduleCommitter
from .deadline import AutoConfirmDeadline, FireReport
from .debounce import RoomRerunCoordinator
from .exchange import ExchangeEvent, ExchangeOutcome, ExchangeResolver
from .itinerary import TravelPlan, apply_travel_plan, plan_travel, refresh_travel_legs
from .notifications import (
    AuditLog,
    InMemoryAuditLog,
    InMemoryNotificationBus,
    JsonLinesAuditLog,
    NotificationBus,
)
from .persistence import DocumentStore, InMemoryStore, JsonFileStore, RetryPolicy
from .preferences import (
    merge_preference_windows,
    merged_preferred_ranges,
    remove_preference_times,
    restore_preference_times,
    windows_for_date,
)
from .service import CoordinationService
from .simulator import ScheduleSimulator, SimulationResult, TimelineEntry
from .travel import haversine_km, minutes_for_distance, travel_minutes

__all__ = [
    # Allocation
    "AllocationReport",
    "AllocationWarning",
    "CarryOverUpdate",
    "MemberAllocation",
    "SlotAllocator",
    "allocate_week",
    "apply_allocation",
    # Commit
    "CommitBlock",
    "ConfirmResult",
    "ResetResult",
    "ScheduleCommitter",
    "AutoConfirmDeadline",
    "FireReport",
    "RoomRerunCoordinator",
    # Exchange
    "ExchangeEvent",
    "ExchangeOutcome",
    "ExchangeResolver",
    # Travel legs
    "TravelPlan",
    "apply_travel_plan",
    "plan_travel",
    "refresh_travel_legs",
    # Infrastructure
    "AuditLog",
    "InMemoryAuditLog",
    "InMemoryNotificationBus",
    "JsonLinesAuditLog",
    "NotificationBus",
    "DocumentStore",
    "InMemoryStore",
    "JsonFileStore",
    "RetryPolicy",
    "CoordinationService",
    # Preferences
    "merge_preference_windows",
    "merged_preferred_ranges",
    "remove_preference_times",
    "restore_preference_times",
    "windows_for_date",
    # Simulation
    "ScheduleSimulator",
    "SimulationResult",
    "TimelineEntry",
    "haversine_km",
    "minutes_for_distance",
    "travel_minutes",
]
