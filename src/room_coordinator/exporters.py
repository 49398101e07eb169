"""Export functionality for rooms and allocation reports."""

import csv
import json
from abc import ABC, abstractmethod
from datetime import date, timedelta
from pathlib import Path

import pandas as pd
from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from .constants import WEEKDAY_NAMES
from .engine.allocator import AllocationReport
from .models import Member, Room, SlotKind
from .utils import minutes_to_time, weekday_of


def _slot_rows(room: Room, members: dict[str, Member] | None = None) -> list[dict]:
    members = members or {}
    rows = []
    for slot in sorted(room.slots, key=lambda s: (s.date, s.start_minutes, s.member_id)):
        member = members.get(slot.member_id)
        rows.append(
            {
                "id": slot.id,
                "date": slot.date.isoformat(),
                "weekday": WEEKDAY_NAMES[slot.weekday],
                "start": slot.start,
                "end": slot.end,
                "member_id": slot.member_id,
                "member_name": member.display_name if member else slot.member_id,
                "kind": slot.kind.value,
                "subject": slot.subject,
                "confirmed": slot.confirmed_to_calendar,
            }
        )
    return rows


def _request_rows(room: Room) -> list[dict]:
    return [
        {
            "id": r.id,
            "type": r.type.value,
            "status": r.status.value,
            "requester_id": r.requester_id,
            "target_member_id": r.target_member_id,
            "target_slot": str(r.target_slot),
            "root_request_id": r.chain_data.root_request_id if r.chain_data else "",
            "response": r.response,
            "created_at": r.created_at.isoformat(),
        }
        for r in room.requests
    ]


def _member_rows(room: Room) -> list[dict]:
    return [
        {
            "member_id": m.member_id,
            "is_owner": m.member_id == room.owner_id,
            "priority": m.priority,
            "carry_over_hours": m.carry_over_hours,
            "total_progress_hours": m.total_progress_hours,
            "joined_at": m.joined_at.isoformat() if m.joined_at else "",
        }
        for m in room.members
    ]


class BaseExporter(ABC):
    """Base class for room exporters."""

    @abstractmethod
    def export(
        self,
        room: Room,
        output_path: str | Path,
        members: dict[str, Member] | None = None,
    ) -> None:
        """Export a room to file.

        Args:
            room: Room to export
            output_path: Path to output file or directory
            members: Member records used for display names
        """
        pass


class JSONExporter(BaseExporter):
    """Export to JSON format."""

    def __init__(self, indent: int = 2, ensure_ascii: bool = False):
        self.indent = indent
        self.ensure_ascii = ensure_ascii

    def export(
        self,
        room: Room,
        output_path: str | Path,
        members: dict[str, Member] | None = None,
    ) -> None:
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(room.to_dict(), f, indent=self.indent, ensure_ascii=self.ensure_ascii)


class CSVExporter(BaseExporter):
    """Export to CSV format (multiple files)."""

    def export(
        self,
        room: Room,
        output_path: str | Path,
        members: dict[str, Member] | None = None,
    ) -> None:
        """Export a room to CSV files.

        Creates three files:
        - slots.csv: All slots
        - requests.csv: Exchange requests
        - members.csv: Memberships with carry-over state
        """
        output_dir = Path(output_path)
        output_dir.mkdir(parents=True, exist_ok=True)

        self._write_csv(output_dir / "slots.csv", _slot_rows(room, members))
        self._write_csv(output_dir / "requests.csv", _request_rows(room))
        self._write_csv(output_dir / "members.csv", _member_rows(room))

    def _write_csv(self, output_path: Path, rows: list[dict]) -> None:
        """Write rows to CSV file."""
        if not rows:
            return

        with open(output_path, "w", encoding="utf-8", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=rows[0].keys())
            writer.writeheader()
            writer.writerows(rows)


class ExcelExporter(BaseExporter):
    """Export to Excel format (one workbook with Slots, Requests and Members sheets)."""

    def export(
        self,
        room: Room,
        output_path: str | Path,
        members: dict[str, Member] | None = None,
    ) -> None:
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        sheets = {
            "Slots": (_slot_rows(room, members), ["id", "date", "start", "end", "member_id"]),
            "Requests": (_request_rows(room), ["id", "type", "status"]),
            "Members": (_member_rows(room), ["member_id", "priority"]),
        }
        with pd.ExcelWriter(output_path, engine="openpyxl") as writer:
            for name, (rows, columns) in sheets.items():
                df = pd.DataFrame(rows) if rows else pd.DataFrame(columns=columns)
                df.to_excel(writer, sheet_name=name, index=False)


def export_allocation_report(report: AllocationReport, output_path: str | Path) -> Path:
    """Write an allocation report with pandas.

    A .csv path receives the per-member table only; any other suffix gets an
    Excel workbook with Members, Slots, Warnings and Carry-over sheets.
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    members_df = pd.DataFrame(
        [m.to_dict() for m in report.members],
        columns=[
            "member_id",
            "required_minutes",
            "already_assigned_minutes",
            "assigned_minutes",
            "available_minutes",
            "shortfall_hours",
        ],
    )
    if output_path.suffix == ".csv":
        members_df.to_csv(output_path, index=False)
        return output_path

    slots_df = pd.DataFrame(
        [s.to_dict() for s in report.slots],
        columns=["id", "member_id", "date", "weekday", "start", "end", "kind", "subject"],
    )
    warnings_df = pd.DataFrame(
        [w.to_dict() for w in report.warnings], columns=["member_id", "code", "message"]
    )
    carry_df = pd.DataFrame(
        [u.to_dict() for u in report.carry_over_updates],
        columns=[
            "member_id",
            "week",
            "previous_hours",
            "carry_over_hours",
            "priority",
            "needs_attention",
        ],
    )
    with pd.ExcelWriter(output_path, engine="openpyxl") as writer:
        members_df.to_excel(writer, sheet_name="Members", index=False)
        slots_df.to_excel(writer, sheet_name="Slots", index=False)
        warnings_df.to_excel(writer, sheet_name="Warnings", index=False)
        carry_df.to_excel(writer, sheet_name="Carry-over", index=False)
    return output_path


# Workbook styling
FONT_TITLE = Font(name="Calibri", size=14, bold=True)
FONT_HEADER = Font(name="Calibri", size=11, bold=True)
FONT_TIME = Font(name="Calibri", size=10, bold=False)
FONT_CELL = Font(name="Calibri", size=10, bold=False)

ALIGN_CENTER = Alignment(horizontal="center", vertical="center", wrap_text=True)

THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)

FILL_CONFIRMED = PatternFill(start_color="C6EFCE", end_color="C6EFCE", fill_type="solid")
FILL_PENDING = PatternFill(start_color="FFEB9C", end_color="FFEB9C", fill_type="solid")

ROW_MINUTES = 30
HEADER_ROW = 3
FIRST_DATA_ROW = 4


class RoomWorkbookGenerator:
    """Weekly grid of a room's slots: one column per date, one row per half hour."""

    def __init__(self, room: Room, members: dict[str, Member] | None = None):
        self.room = room
        self.members = members or {}

    def _name(self, member_id: str) -> str:
        member = self.members.get(member_id)
        return member.display_name if member else member_id

    def _row_for(self, minutes: int, day_start: int) -> int:
        return FIRST_DATA_ROW + (minutes - day_start) // ROW_MINUTES

    def create_workbook(self, week_start: date) -> Workbook:
        """Create a workbook for the week starting at week_start."""
        wb = Workbook()
        ws = wb.active
        ws.title = week_start.isoformat()

        day_start, day_end = self.room.settings.day_bounds
        dates = [week_start + timedelta(days=i) for i in range(7)]

        ws["A1"] = f"{self.room.name or self.room.id}: week of {week_start.isoformat()}"
        ws["A1"].font = FONT_TITLE
        ws.merge_cells(start_row=1, start_column=1, end_row=1, end_column=len(dates) + 1)

        ws.column_dimensions["A"].width = 10.0
        ws.cell(row=HEADER_ROW, column=1, value="Time").font = FONT_HEADER
        for offset, day in enumerate(dates):
            col = offset + 2
            ws.column_dimensions[get_column_letter(col)].width = 18.0
            cell = ws.cell(
                row=HEADER_ROW,
                column=col,
                value=f"{WEEKDAY_NAMES[weekday_of(day)].capitalize()}\n{day.isoformat()}",
            )
            cell.font = FONT_HEADER
            cell.alignment = ALIGN_CENTER
            cell.border = THIN_BORDER

        last_row = self._row_for(day_end - 1, day_start)
        for minutes in range(day_start, day_end, ROW_MINUTES):
            row = self._row_for(minutes, day_start)
            cell = ws.cell(row=row, column=1, value=minutes_to_time(minutes))
            cell.font = FONT_TIME
            cell.alignment = ALIGN_CENTER
            for col in range(1, len(dates) + 2):
                ws.cell(row=row, column=col).border = THIN_BORDER

        for slot in self.room.slots:
            if slot.kind != SlotKind.CLASS or slot.date not in dates:
                continue
            start = max(slot.start_minutes, day_start)
            end = min(slot.end_minutes, day_end)
            if start >= end:
                continue
            col = dates.index(slot.date) + 2
            first = self._row_for(start, day_start)
            last = min(self._row_for(end - 1, day_start), last_row)
            cell = ws.cell(
                row=first,
                column=col,
                value=f"{self._name(slot.member_id)}\n{slot.start}-{slot.end}",
            )
            cell.font = FONT_CELL
            cell.alignment = ALIGN_CENTER
            cell.fill = FILL_CONFIRMED if slot.confirmed_to_calendar else FILL_PENDING
            if last > first:
                ws.merge_cells(start_row=first, start_column=col, end_row=last, end_column=col)

        return wb

    def save(self, wb: Workbook, output_path: Path) -> None:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        wb.save(output_path)


def generate_room_workbook(
    room: Room,
    week_start: date,
    output_path: Path,
    members: dict[str, Member] | None = None,
) -> Path:
    """Generate the weekly grid workbook for a room."""
    generator = RoomWorkbookGenerator(room, members)
    wb = generator.create_workbook(week_start)
    generator.save(wb, Path(output_path))
    return Path(output_path)


def get_exporter(format_type: str) -> BaseExporter:
    """Get appropriate exporter for format type.

    Args:
        format_type: Export format ('json', 'csv', 'excel')

    Returns:
        Exporter instance

    Raises:
        ValueError: If format type is not supported
    """
    exporters = {
        "json": JSONExporter,
        "csv": CSVExporter,
        "excel": ExcelExporter,
    }

    if format_type not in exporters:
        raise ValueError(
            f"Unsupported format: {format_type}. Supported: {', '.join(exporters.keys())}"
        )

    return exporters[format_type]()
