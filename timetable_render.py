"""
Drawing surfaces for a GridLayout.

Both the interactive view and the printable export go through `draw_grid`, which
owns the traversal (rows in slot order, columns in day order) and the skip rule
for spanned cells. A surface only decides how a cell looks, never where it goes,
so the two outputs always have the same shape.
"""

from __future__ import annotations

from html import escape
from typing import Any, Dict, List, Optional, Protocol

from timetable_schema import DAY_NAMES, GridCell, GridLayout, Subject
from timetable_times import format_time_range, format_to_12_hour

FALLBACK_COLOR = "#9CA3AF"


class GridSurface(Protocol):
    def begin(self, layout: GridLayout) -> None: ...

    def begin_row(self, slot_index: int, slot: str) -> None: ...

    def period_cell(self, cell: GridCell, subject: Optional[Subject]) -> None: ...

    def empty_cell(self, cell: GridCell) -> None: ...

    def end_row(self) -> None: ...

    def finish(self) -> Any: ...


def draw_grid(layout: GridLayout, surface: GridSurface) -> Any:
    surface.begin(layout)
    for i, slot in enumerate(layout.time_slots):
        surface.begin_row(i, slot)
        for cell in layout.rows[i]:
            if cell.kind == "spanned" and cell.covered_by is not None:
                continue
            if cell.kind == "start" and cell.period is not None:
                surface.period_cell(cell, layout.subject_for(cell.period))
            else:
                surface.empty_cell(cell)
        surface.end_row()
    return surface.finish()


def cell_content(cell: GridCell, subject: Optional[Subject]) -> Dict[str, Any]:
    p = cell.period
    assert p is not None
    return {
        "period_id": p.id,
        "subject": subject.name if subject else "",
        "color": subject.color if subject else FALLBACK_COLOR,
        "time_range": format_time_range(p.start_time, p.end_time),
        "location": p.location,
    }


class InteractiveSurface:
    """Row models for interactive front-ends (Streamlit page, JSON API)."""

    def __init__(self) -> None:
        self.rows: List[Dict[str, Any]] = []
        self._row: Optional[Dict[str, Any]] = None

    def begin(self, layout: GridLayout) -> None:
        self.rows = []

    def begin_row(self, slot_index: int, slot: str) -> None:
        self._row = {"slot_index": slot_index, "slot": slot, "label": format_to_12_hour(slot), "cells": []}

    def period_cell(self, cell: GridCell, subject: Optional[Subject]) -> None:
        self._row["cells"].append({"kind": "start", "day": cell.day, "row_span": cell.row_span, **cell_content(cell, subject)})

    def empty_cell(self, cell: GridCell) -> None:
        self._row["cells"].append({"kind": "empty", "day": cell.day, "row_span": 1})

    def end_row(self) -> None:
        self.rows.append(self._row)
        self._row = None

    def finish(self) -> List[Dict[str, Any]]:
        return self.rows


PRINT_STYLES = """
<style>
  * { margin: 0; padding: 0; box-sizing: border-box; }
  body { font-family: system-ui, -apple-system, sans-serif; padding: 20px; }
  h1 { text-align: center; margin-bottom: 20px; font-size: 24px; }
  table { width: 100%; border-collapse: collapse; }
  th, td { border: 1px solid #333; padding: 8px; text-align: center; }
  th { background-color: #f0f0f0; font-weight: 600; }
  .period-cell { padding: 6px; border-radius: 4px; text-align: left; }
  .period-name { font-weight: 600; font-size: 12px; }
  .period-time { font-size: 10px; color: #666; margin-top: 2px; }
  .period-location { font-size: 10px; color: #666; }
  @media print {
    body { print-color-adjust: exact; -webkit-print-color-adjust: exact; }
  }
</style>
"""


def _wrap_html_document(title: str, body: str) -> str:
    return (
        "<!DOCTYPE html>\n<html>\n<head>\n<meta charset=\"utf-8\">\n"
        f"<title>{escape(title)}</title>\n{PRINT_STYLES}</head>\n<body>\n"
        f"<h1>{escape(title)}</h1>\n{body}\n</body>\n</html>\n"
    )


class PrintSurface:
    """Standalone HTML table, one <td> per drawn cell with a real rowspan."""

    def __init__(self, title: str = "Class Timetable") -> None:
        self.title = title
        self.parts: List[str] = []

    def begin(self, layout: GridLayout) -> None:
        header = "".join(f"<th>{DAY_NAMES[d]}</th>" for d in layout.active_days)
        self.parts = ["<table>", f"<thead><tr><th>Time</th>{header}</tr></thead>", "<tbody>"]

    def begin_row(self, slot_index: int, slot: str) -> None:
        self.parts.append(f"<tr><td>{format_to_12_hour(slot)}</td>")

    def period_cell(self, cell: GridCell, subject: Optional[Subject]) -> None:
        c = cell_content(cell, subject)
        color = escape(c["color"])
        location = f'<div class="period-location">{escape(c["location"])}</div>' if c["location"] else ""
        self.parts.append(
            f'<td rowspan="{cell.row_span}" data-period-id="{escape(c["period_id"])}">'
            f'<div class="period-cell" style="background-color: {color}20; border-left: 3px solid {color};">'
            f'<div class="period-name">{escape(c["subject"])}</div>'
            f'<div class="period-time">{escape(c["time_range"])}</div>'
            f"{location}</div></td>"
        )

    def empty_cell(self, cell: GridCell) -> None:
        self.parts.append('<td rowspan="1"></td>')

    def end_row(self) -> None:
        self.parts.append("</tr>")

    def finish(self) -> str:
        self.parts += ["</tbody>", "</table>"]
        return _wrap_html_document(self.title, "\n".join(self.parts))


def render_interactive(layout: GridLayout) -> List[Dict[str, Any]]:
    return draw_grid(layout, InteractiveSurface())


def render_printable(layout: GridLayout, title: str = "Class Timetable") -> str:
    return draw_grid(layout, PrintSurface(title))
