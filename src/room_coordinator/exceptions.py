"""Custom exceptions for the room coordinator."""


class CoordinationError(Exception):
    """Base exception for coordinator errors."""

    pass


class ValidationError(CoordinationError):
    """Malformed input rejected before any state is touched."""

    pass


class InvalidTimeFormatError(ValidationError):
    """Time value is not a valid HH:MM string."""

    def __init__(self, value: object, field: str | None = None):
        self.value = value
        self.field = field
        location = f" for '{field}'" if field else ""
        super().__init__(f"Invalid time{location}: {value!r}. Expected HH:MM (00:00-24:00)")


class InvalidDateFormatError(ValidationError):
    """Date value is not a valid ISO date."""

    def __init__(self, value: object, field: str | None = None):
        self.value = value
        self.field = field
        location = f" for '{field}'" if field else ""
        super().__init__(f"Invalid date{location}: {value!r}. Expected YYYY-MM-DD")


class MissingFieldError(ValidationError):
    """A required field is absent."""

    def __init__(self, field: str, record: str | None = None):
        self.field = field
        self.record = record
        where = f" in {record}" if record else ""
        super().__init__(f"Missing required field '{field}'{where}")


class InvalidPriorityError(ValidationError):
    """Priority tier outside 1-3."""

    def __init__(self, priority: object):
        self.priority = priority
        super().__init__(f"Invalid priority: {priority!r}. Must be 1, 2 or 3")


class InvalidRangeError(ValidationError):
    """Start is not strictly before end, or a duration is not positive."""

    def __init__(self, message: str):
        super().__init__(message)


class InvalidActionError(ValidationError):
    """Action name is not one of the accepted values."""

    def __init__(self, action: object, allowed: list[str]):
        self.action = action
        self.allowed = allowed
        super().__init__(f"Invalid action: {action!r}. Must be one of {', '.join(allowed)}")


class SlotOwnershipError(ValidationError):
    """Slot does not belong to the member it was given for."""

    def __init__(self, slot_id: str, member_id: str):
        self.slot_id = slot_id
        self.member_id = member_id
        super().__init__(f"Slot '{slot_id}' does not belong to member '{member_id}'")


class RoomNotFoundError(CoordinationError):
    """Room record does not exist."""

    def __init__(self, room_id: str):
        self.room_id = room_id
        super().__init__(f"Room '{room_id}' not found")


class MemberNotFoundError(CoordinationError):
    """Member record or room membership does not exist."""

    def __init__(self, member_id: str, room_id: str | None = None):
        self.member_id = member_id
        self.room_id = room_id
        where = f" in room '{room_id}'" if room_id else ""
        super().__init__(f"Member '{member_id}' not found{where}")


class SlotNotFoundError(CoordinationError):
    """Slot does not exist in the room."""

    def __init__(self, slot_id: str):
        self.slot_id = slot_id
        super().__init__(f"Slot '{slot_id}' not found")


class RequestNotFoundError(CoordinationError):
    """Exchange request does not exist in the room."""

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Exchange request '{request_id}' not found")


class PermissionDeniedError(CoordinationError):
    """Actor is not allowed to perform the action."""

    def __init__(self, actor_id: str, action: str):
        self.actor_id = actor_id
        self.action = action
        super().__init__(f"Member '{actor_id}' is not allowed to {action}")


class DuplicateRequestError(CoordinationError):
    """An equivalent request is already pending."""

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"An identical request is already pending: '{request_id}'")


class InvalidStatusTransitionError(CoordinationError):
    """Exchange request status can only move forward toward a terminal state."""

    def __init__(self, request_id: str, current: str, target: str):
        self.request_id = request_id
        self.current = current
        self.target = target
        super().__init__(
            f"Request '{request_id}' cannot move from '{current}' to '{target}'"
        )


class VersionConflictError(CoordinationError):
    """Optimistic version check failed on save."""

    def __init__(self, kind: str, record_id: str, expected: int, actual: int):
        self.kind = kind
        self.record_id = record_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Version conflict on {kind} '{record_id}': "
            f"saving version {expected}, stored version is {actual}"
        )


class CommitFailedError(CoordinationError):
    """Retries exhausted; the whole call must be retried by the caller."""

    def __init__(self, kind: str, record_id: str, attempts: int):
        self.kind = kind
        self.record_id = record_id
        self.attempts = attempts
        super().__init__(
            f"Commit failed for {kind} '{record_id}' after {attempts} attempts"
        )
