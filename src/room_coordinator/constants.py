"""Constants for room coordination."""

# Weekday numbering: 0=Sunday ... 6=Saturday, 7 is an alias for Sunday
SUNDAY = 0
SATURDAY = 6
WEEKDAY_ALIASES = {7: 0}
WEEKDAY_NAMES = [
    "sunday",
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
]

# Time granularity
MINUTES_PER_DAY = 24 * 60
SLOT_GRANULARITY_MINUTES = 10
TRAVEL_ROUNDING_MINUTES = 10

# Default room settings
DEFAULT_DAY_START = "09:00"
DEFAULT_DAY_END = "18:00"
DEFAULT_MIN_HOURS_PER_WEEK = 3.0
DEFAULT_MIN_CLASS_DURATION_MINUTES = 60
DEFAULT_AUTO_CONFIRM_MINUTES = 60

# Priority tiers
MIN_PRIORITY = 1
MAX_PRIORITY = 3
DEFAULT_WINDOW_PRIORITY = 2
DEFAULT_MEMBER_PRIORITY = 1
# Only windows at or above this tier are auto-allocated
PREFERRED_PRIORITY_THRESHOLD = 2

# Travel speeds (km/h) per travel mode
TRAVEL_SPEEDS_KMH = {
    "driving": 40.0,
    "transit": 30.0,
    "walking": 5.0,
    "bicycling": 15.0,
}
EARTH_RADIUS_KM = 6371.0

# Carry-over
# Advisory when both of the two previous weeks carried hours over
CARRY_OVER_ADVISORY_WEEKS = 2

# Exchange chains
DEFAULT_MAX_CHAIN_HOPS = 3
# Step between relocation start positions within a free range
RELOCATION_STEP_MINUTES = 30

# Optimistic concurrency
DEFAULT_MAX_COMMIT_ATTEMPTS = 5
DEFAULT_COMMIT_BACKOFF_SECONDS = 0.1

# Actor recorded for automatic confirmation
SYSTEM_ACTOR_ID = "system"
SYSTEM_ACTOR_NAME = "Auto-confirm"

# Notification events
EVENT_SCHEDULE_CONFIRMED = "schedule-confirmed"
EVENT_EXCHANGE_UPDATED = "exchange-request-updated"
EVENT_SCHEDULE_ALLOCATED = "schedule-allocated"
EVENT_SCHEDULE_RESET = "schedule-reset"
EVENT_TRAVEL_MODE_APPLIED = "travel-mode-applied"

# Audit log actions
ACTION_AUTO_ASSIGN = "auto_assign"
ACTION_CONFIRM_SCHEDULE = "confirm_schedule"
ACTION_SLOT_REQUEST = "slot_request"
ACTION_SLOT_SWAP = "slot_swap"
ACTION_SLOT_RELEASE = "slot_release"
ACTION_CHAIN_REQUEST = "chain_request"
ACTION_REQUEST_REJECTED = "request_rejected"
ACTION_REQUEST_CANCELLED = "request_cancelled"
ACTION_RESET_SCHEDULE = "reset_schedule"
ACTION_APPLY_TRAVEL_MODE = "apply_travel_mode"

# Slot subjects
SUBJECT_AUTO_ASSIGNED = "auto-assigned"
SUBJECT_EXCHANGED = "exchanged"
SUBJECT_RELOCATED = "relocated"
SUBJECT_CHAIN_RESULT = "chain-relocation"
SUBJECT_TRAVEL = "travel"
