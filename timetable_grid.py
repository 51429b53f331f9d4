import argparse
import json
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from timetable_ingest import PeriodIngestor
from timetable_render import render_interactive, render_printable
from timetable_schema import DAY_NAMES, GridCell, GridLayout, OverlapReport, Period, Subject
from timetable_store import JsonFileStore
from timetable_times import default_time_slots, slot_of, slot_start

DEFAULT_DAYS: Tuple[int, ...] = (1, 2, 3, 4, 5)


def _placement_order(p: Period) -> Tuple[str, str]:
    return (p.start_time, p.id)


def generate_time_slots(periods: Sequence[Period]) -> List[str]:
    """Row headers: distinct HH:MM start times, or 14 hourly rows from 07:00 for an empty week."""
    if not periods:
        return default_time_slots()
    return sorted({slot_of(p.start_time) for p in periods})


def active_days_for(periods: Sequence[Period]) -> List[int]:
    if not periods:
        return list(DEFAULT_DAYS)
    return sorted({p.day_of_week for p in periods})


def row_span(period: Period, time_slots: Sequence[str]) -> int:
    start = slot_of(period.start_time)
    if start not in time_slots:
        return 1
    i = time_slots.index(start)
    j = i
    while j < len(time_slots) and slot_start(time_slots[j]) < period.end_time:
        j += 1
    # a period ending before the next recorded slot still takes its own row
    return max(1, j - i)


def covering_period(day_periods: Sequence[Period], slot: str) -> Optional[Period]:
    """First period (by start, id) that started before `slot` and is still running at it."""
    for p in day_periods:
        if slot_of(p.start_time) < slot and slot_start(slot) < p.end_time:
            return p
    return None


def layout(periods: Iterable[Period], subjects: Optional[Iterable[Subject]] = None) -> GridLayout:
    """
    Project a set of periods onto a weekly grid.

    Rows are the distinct start slots, columns the days that have periods.
    Every (day, slot) cell is one of:

    - start:   a period begins here and covers `row_span` rows;
    - spanned: the slot lies strictly inside an earlier period on that day
               and must not be drawn;
    - empty:   nothing starts or runs here.

    Two periods starting in the same cell are ordered by (start_time, id) and
    only the first is placed. Periods that end up with no cell of their own are
    listed in `GridLayout.overlaps` rather than dropped without trace.
    """
    periods = list(periods)
    time_slots = generate_time_slots(periods)
    days = active_days_for(periods)

    by_day: Dict[int, List[Period]] = {d: [] for d in days}
    for p in periods:
        by_day[p.day_of_week].append(p)
    for day_periods in by_day.values():
        day_periods.sort(key=_placement_order)

    rows: List[List[GridCell]] = []
    overlaps: List[OverlapReport] = []
    # day -> (last row index drawn by the placed period, its id)
    drawn_until: Dict[int, Tuple[int, str]] = {}
    for i, slot in enumerate(time_slots):
        row: List[GridCell] = []
        for day in days:
            day_periods = by_day[day]
            starting = [p for p in day_periods if slot_of(p.start_time) == slot]
            covering = covering_period(day_periods, slot)
            if covering is not None:
                last, placed_id = drawn_until.get(day, (-1, None))
                row.append(GridCell(kind="spanned", day=day, slot_index=i, covered_by=placed_id if i <= last else None))
                for p in starting:
                    overlaps.append(
                        OverlapReport(period_id=p.id, day_of_week=day, slot=slot, reason="inside_span", hidden_by=covering.id)
                    )
            elif starting:
                placed = starting[0]
                span = row_span(placed, time_slots)
                row.append(GridCell(kind="start", day=day, slot_index=i, period=placed, row_span=span))
                drawn_until[day] = (i + span - 1, placed.id)
                for p in starting[1:]:
                    overlaps.append(
                        OverlapReport(period_id=p.id, day_of_week=day, slot=slot, reason="same_start", hidden_by=placed.id)
                    )
            else:
                row.append(GridCell(kind="empty", day=day, slot_index=i))
        rows.append(row)

    subject_map = {s.id: s for s in sorted(subjects or [], key=lambda s: s.id)}
    return GridLayout(time_slots=time_slots, active_days=days, rows=rows, subjects=subject_map, overlaps=overlaps)


def main() -> None:
    parser = argparse.ArgumentParser(description="Weekly class timetable grid: import recognizer output and print the grid.")
    parser.add_argument("--input", required=True, help="Path to the timetable data JSON file (created if missing).")
    parser.add_argument("--user", default="local", help="User id whose timetable to use.")
    parser.add_argument("--import", dest="import_path", help="JSON array of recognized periods to import first.")
    parser.add_argument("--print", dest="print_path", help="Write a printable HTML timetable to this path.")
    parser.add_argument("--title", default="Class Timetable", help="Title of the printable timetable.")
    args = parser.parse_args()

    store = JsonFileStore(args.input)

    if args.import_path:
        with open(args.import_path, "r", encoding="utf-8") as f:
            raw = json.load(f)
        result = PeriodIngestor(store, args.user).ingest(raw)
        print(f"Imported {result.created} periods ({len(result.new_subjects)} new subjects)")
        for failure in result.failures:
            print(f"  skipped #{failure.index} {failure.subject or '?'}: {failure.kind}: {failure.message}")
        print()

    grid = layout(store.list_periods(args.user), store.list_subjects(args.user))
    for row in render_interactive(grid):
        cells = []
        for c in row["cells"]:
            if c["kind"] != "start":
                continue
            extra = f" x{c['row_span']}" if c["row_span"] > 1 else ""
            where = f" @ {c['location']}" if c.get("location") else ""
            cells.append(f"{DAY_NAMES[c['day']][:3]}: {c['subject']} ({c['time_range']}){extra}{where}")
        print(f"{row['label']:>9}  " + ("; ".join(cells) if cells else "-"))

    for o in grid.overlaps:
        print(f"Note: period {o.period_id} on {DAY_NAMES[o.day_of_week]} {o.slot} is hidden by {o.hidden_by} ({o.reason})")

    if args.print_path:
        with open(args.print_path, "w", encoding="utf-8") as f:
            f.write(render_printable(grid, title=args.title))
        print(f"Wrote {args.print_path}")


if __name__ == "__main__":
    main()
