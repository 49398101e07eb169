"""Preference window queries and the interval splitter.

Committing a slot removes its time from the member's preference windows so
the same time is not offered again. Removed segments are kept per room in
the member's undo log, from which a bulk reset restores them.
"""

import logging
from collections.abc import Iterable, Sequence
from datetime import date, datetime

from ..constants import MIN_PRIORITY
from ..models import Member, PreferenceBackup, PreferenceWindow, Slot, SlotRef
from ..utils import intervals_overlap, merge_ranges, weekday_of

logger = logging.getLogger(__name__)


def windows_for_date(member: Member, day: date) -> list[PreferenceWindow]:
    """All preference windows that apply on a date.

    Recurring windows for the weekday and date windows for the exact date are
    combined; neither replaces the other.
    """
    return [w for w in member.windows if w.applies_to(day)]


def merged_preferred_ranges(
    member: Member, day: date, min_priority: int = MIN_PRIORITY
) -> list[tuple[int, int]]:
    """Applicable windows at or above min_priority, merged into maximal ranges."""
    return merge_ranges(
        [
            (w.start_minutes, w.end_minutes)
            for w in windows_for_date(member, day)
            if w.priority >= min_priority
        ]
    )


def _window_sort_key(window: PreferenceWindow) -> tuple:
    return (window.key, window.start_minutes, window.priority)


def merge_preference_windows(windows: Iterable[PreferenceWindow]) -> list[PreferenceWindow]:
    """Merge contiguous or overlapping windows that share key and priority."""
    groups: dict[tuple, list[PreferenceWindow]] = {}
    for window in windows:
        groups.setdefault((window.key, window.priority), []).append(window)

    merged = []
    for group in groups.values():
        template = group[0]
        for start, end in merge_ranges([(w.start_minutes, w.end_minutes) for w in group]):
            merged.append(template.with_range(start, end))
    return sorted(merged, key=_window_sort_key)


def _matches(window: PreferenceWindow, assigned: Slot | SlotRef) -> bool:
    if window.specific_date is not None:
        return window.specific_date == assigned.date
    return window.weekday == weekday_of(assigned.date)


def split_window(
    window: PreferenceWindow, cuts: Sequence[tuple[int, int]]
) -> tuple[list[PreferenceWindow], list[PreferenceWindow]]:
    """Subtract each cut from a window in turn.

    Each subtraction leaves 0, 1 or 2 fragments of the piece it hits.

    Returns:
        Tuple of (remaining fragments, removed segments). Together they cover
        the original window exactly, with its key and priority.
    """
    remaining = [(window.start_minutes, window.end_minutes)]
    removed = []
    for cut_start, cut_end in cuts:
        next_remaining = []
        for start, end in remaining:
            if not intervals_overlap(start, end, cut_start, cut_end):
                next_remaining.append((start, end))
                continue
            removed.append((max(start, cut_start), min(end, cut_end)))
            if start < cut_start:
                next_remaining.append((start, cut_start))
            if end > cut_end:
                next_remaining.append((cut_end, end))
        remaining = next_remaining

    return (
        [window.with_range(s, e) for s, e in remaining],
        [window.with_range(s, e) for s, e in removed],
    )


def _split_list(
    windows: list[PreferenceWindow], assigned: Sequence[Slot | SlotRef]
) -> tuple[list[PreferenceWindow], list[PreferenceWindow]]:
    kept: list[PreferenceWindow] = []
    removed: list[PreferenceWindow] = []
    for window in windows:
        cuts = [
            (a.start_minutes, a.end_minutes)
            for a in assigned
            if _matches(window, a)
            and intervals_overlap(
                window.start_minutes, window.end_minutes, a.start_minutes, a.end_minutes
            )
        ]
        if not cuts:
            kept.append(window)
            continue
        fragments, segments = split_window(window, cuts)
        kept.extend(fragments)
        removed.extend(segments)
    return kept, removed


def remove_preference_times(
    member: Member,
    assigned_slots: Sequence[Slot | SlotRef],
    room_id: str,
    now: datetime | None = None,
) -> list[PreferenceWindow]:
    """Remove assigned time from a member's preference windows.

    Windows are matched by exact date (date windows) or weekday (recurring
    windows). When anything is removed, the removed segments replace the
    member's undo log for the room before the window lists are replaced.

    Args:
        member: Member record, modified in place
        assigned_slots: Slots or ranges that were assigned to the member
        room_id: Room whose undo log receives the removed segments
        now: Timestamp for the undo log

    Returns:
        The removed segments
    """
    recurring, removed_recurring = _split_list(member.recurring_windows, assigned_slots)
    dated, removed_dated = _split_list(member.date_windows, assigned_slots)
    removed = removed_recurring + removed_dated

    if not removed:
        return []

    member.deleted_preferences_by_room[room_id] = PreferenceBackup(
        room_id=room_id,
        deleted_windows=removed,
        deleted_at=now or datetime.now(),
    )
    member.recurring_windows = recurring
    member.date_windows = dated
    logger.debug(
        f"Removed {len(removed)} preference segment(s) from member '{member.id}' "
        f"for room '{room_id}'"
    )
    return removed


def restore_preference_times(member: Member, room_id: str) -> list[PreferenceWindow]:
    """Re-add the segments logged for a room and re-merge the window lists.

    Returns:
        The restored segments (empty if there was no undo log)
    """
    backup = member.deleted_preferences_by_room.pop(room_id, None)
    if backup is None:
        return []

    recurring = [w for w in backup.deleted_windows if w.is_recurring]
    dated = [w for w in backup.deleted_windows if not w.is_recurring]
    member.recurring_windows = merge_preference_windows(member.recurring_windows + recurring)
    member.date_windows = merge_preference_windows(member.date_windows + dated)
    logger.debug(
        f"Restored {len(backup.deleted_windows)} preference segment(s) for member "
        f"'{member.id}' from room '{room_id}'"
    )
    return backup.deleted_windows
