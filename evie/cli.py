"""
EVIE Command Line Interface (CLI)
=================================

This file provides the interactive terminal program you run like:

    python -m evie.cli --geojson "path/to/events.geojson"

It demonstrates:
- Argument parsing (argparse), with defaults taken from environment settings
- A REPL loop (Read-Eval-Print Loop) for commands
- Mapping user commands to engine methods (date range, categories, reset)

The slider of a web map becomes the `from` / `to` commands, the category
checkboxes become `toggle`, and the map itself is written with `map`.
"""

from __future__ import annotations
import argparse, logging, shlex, sys
from typing import List, Optional
from .engine import EVIE
from .loader import DatasetLoadError, parse_date_ms
from .indices import position_of
from .models import format_date_ms
from .presentation import render_map
from .settings import Settings, load_settings

HELP = """
EVIE commands (grouped)
----------------------

1) View / Inspect
   help
   stats
   types                            (categories; [x] = selected)
   dates                            (current from/to labels)
   show [n]
   bounds

2) Date range (slider positions into the distinct dates)
   from <pos>                       (example: from 0)
   to <pos>                         (example: to 12)
   from-date <YYYY-MM-DD>           (example: from-date 2020-06-01)
   to-date <YYYY-MM-DD>

3) Categories (empty selection = all)
   toggle "<Event Type>"            (example: toggle "Protests")
   reset

4) Output (current selection)
   export csv "<out.csv>"
   export geojson "<out.geojson>"
   map "<out.html>" [data|visible]  (fit view to all data or to visible points)

5) Data
   reload

6) Exit
   quit
"""


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for the EVIE CLI.

    1) Load dataset (indices are built by the engine)
    2) Start an interactive REPL
    """
    settings = load_settings()
    ap = argparse.ArgumentParser(prog="evie")
    ap.add_argument("--geojson", default=str(settings.data_path) if settings.data_path else None,
                    help="Path to GeoJSON events file (default: $EVIE_DATA_PATH)")
    ap.add_argument("--include-undated", action="store_true", default=settings.include_undated,
                    help="Always show records whose date could not be resolved")
    ap.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = ap.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format="%(levelname)s %(name)s: %(message)s")
    if not args.geojson:
        ap.error("--geojson is required (or set EVIE_DATA_PATH)")

    engine = EVIE(include_undated=args.include_undated)
    print("Loading dataset...")
    try:
        engine.load_dataset(args.geojson)
    except DatasetLoadError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"Loaded {len(engine.records)} events. Type 'help' for commands.")
    if not engine.range_enabled:
        print("Date range disabled (fewer than 2 distinct dates).")
    while True:
        try:
            line = input("evie> ")
        except EOFError:
            break
        line = line.strip()
        if not line:
            continue
        if line.lower() in ("quit", "exit"):
            break
        try:
            handle(engine, line, settings)
        except Exception as e:
            print(f"Error: {e}")
    return 0


def handle(engine: EVIE, line: str, settings: Optional[Settings] = None) -> None:
    """Handle one CLI command line.

    This parses the command and calls the appropriate engine method.
    """
    parts = shlex.split(line)
    cmd = parts[0].lower()

    if cmd == "help":
        print(HELP)
        return

    if cmd == "stats":
        undated = sum(1 for r in engine.records if not r.has_timestamp)
        print(f"Visible: {len(engine.visible_set())} / {len(engine.records)}")
        print(f"Dates: {len(engine.distinct_timestamps)} | Categories: {len(engine.distinct_categories)} | Undated: {undated}")
        return

    if cmd == "types":
        selected = engine.state.selected_categories if engine.state else set()
        for c in engine.distinct_categories:
            print(f"[{'x' if c in selected else ' '}] {c}")
        return

    if cmd == "dates":
        _print_dates(engine); return

    if cmd in ("from", "to"):
        _require_range(engine)
        pos = int(parts[1])
        if cmd == "from":
            engine.set_range_low(pos)
        else:
            engine.set_range_high(pos)
        _print_dates(engine); return

    if cmd in ("from-date", "to-date"):
        _require_range(engine)
        ms = parse_date_ms(parts[1])
        if ms is None:
            raise ValueError(f"Cannot parse date: {parts[1]!r}")
        ts = engine.distinct_timestamps
        if cmd == "from-date" and ms > ts[-1]:
            raise ValueError(f"{parts[1]} is after the last date in the data ({format_date_ms(ts[-1])})")
        if cmd == "to-date" and ms < ts[0]:
            raise ValueError(f"{parts[1]} is before the first date in the data ({format_date_ms(ts[0])})")
        if cmd == "from-date":
            engine.set_range_low(position_of(engine.idx, ms))
        else:
            engine.set_range_high(position_of(engine.idx, ms, upper=True))
        _print_dates(engine); return

    if cmd == "toggle":
        if len(parts) < 2:
            raise ValueError('Usage: toggle "<Event Type>"')
        c = parts[1]
        if c not in engine.distinct_categories:
            print(f"Note: no events of type {c!r} in this dataset.")
        engine.toggle_category(c)
        selected = sorted(engine.state.selected_categories)
        print(f"Categories: {', '.join(selected) if selected else 'all'}. Size={len(engine.visible_set())}")
        return

    if cmd == "reset":
        engine.reset()
        print(f"Filters reset. Size={len(engine.visible_set())}")
        return

    if cmd == "show":
        n = int(parts[1]) if len(parts) >= 2 else 10
        _print_rows(engine.visible_set()[:n]); return

    if cmd == "bounds":
        b = engine.bounds(visible_only=True)
        if b is None:
            print("Nothing visible.")
        else:
            (s, w), (n, e) = b
            print(f"south={s:.4f} west={w:.4f} north={n:.4f} east={e:.4f}")
        return

    if cmd == "export":
        # export <csv|geojson> "<path>"
        if len(parts) < 3:
            print('Usage: export csv "out.csv"  OR  export geojson "out.geojson"')
            return
        fmt, out_path = parts[1].lower(), parts[2]
        if not engine.visible_set():
            print("Nothing to export: current selection is empty.")
            return
        if fmt == "csv":
            engine.export_csv(out_path)
        elif fmt in ("geojson", "json"):
            engine.export_geojson(out_path)
        else:
            print("Unknown export format. Use: csv or geojson")
            return
        print(f"Exported {len(engine.visible_set())} events to {out_path}")
        return

    if cmd == "map":
        if len(parts) < 2:
            raise ValueError('Usage: map "<out.html>" [data|visible]')
        fit = parts[2].lower() if len(parts) >= 3 else "data"
        summary = render_map(engine, parts[1], settings, fit=fit)
        print(f"Map with {summary['markers']} markers written to {parts[1]}")
        return

    if cmd == "reload":
        try:
            engine.reload()
        except DatasetLoadError as e:
            print(f"Reload failed, keeping previous data: {e}")
            return
        print(f"Reloaded {len(engine.records)} events. Filters reset.")
        return

    print("Unknown command. Type 'help'.")
    return


def _require_range(engine: EVIE) -> None:
    if not engine.range_enabled:
        raise ValueError("Date range disabled (fewer than 2 distinct dates)")


def _print_dates(engine: EVIE) -> None:
    labels = engine.date_labels()
    if labels is None:
        print("No dates")
        return
    s = engine.state
    print(f"From {labels[0]} [{s.range_low}] to {labels[1]} [{s.range_high}]. Size={len(engine.visible_set())}")


def _print_rows(rows):
    for r in rows:
        d = r.display_fields
        where = ", ".join(str(v) for v in (d.get("location"), d.get("admin1"), d.get("country")) if v)
        print(f"[{r.record_id}] {r.date_label() or '????-??-??'} | {r.category} | {where or f'{r.latitude:.3f},{r.longitude:.3f}'} | fatalities={d.get('fatalities')}")


if __name__ == "__main__":
    sys.exit(main())
