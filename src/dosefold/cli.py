#!/usr/bin/env python3
"""CLI entry point for dosefold package.

Usage:
    python -m dosefold load <log.yaml> [--db dosefold.db] [--replace]
    python -m dosefold analyze --start YYYY-MM-DD --end YYYY-MM-DD [--db ...] [--config ...]
    python -m dosefold regimen --date YYYY-MM-DD [--compare-to YYYY-MM-DD] [--db ...]
    python -m dosefold timeline [--start ...] [--end ...] [--db ...]
    python -m dosefold export --start ... --end ... [--output ...] [--format markdown|pdf]
    python -m dosefold summary [--db dosefold.db]
    python -m dosefold init-config [--output dosefold.toml]
    python -m dosefold serve-mcp [--db dosefold.db]
"""

import argparse
import json
import logging
import sys

DEFAULT_DB = "dosefold.db"


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="dosefold",
        description="Correlate medication changes with the vitals and symptoms that preceded them.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command")

    # --- load ---
    load_parser = sub.add_parser("load", help="Load a YAML/JSON patient log into SQLite")
    load_parser.add_argument("log_file", help="Patient log file (.yaml, .yml or .json)")
    load_parser.add_argument("--db", default=DEFAULT_DB, help="SQLite database path")
    load_parser.add_argument("--replace", action="store_true",
                             help="Delete records from this source missing in the log")

    # --- analyze ---
    analyze_parser = sub.add_parser("analyze", help="Analyze medication changes in a date range")
    analyze_parser.add_argument("--start", required=True, help="First ISO date (YYYY-MM-DD)")
    analyze_parser.add_argument("--end", required=True, help="Last ISO date (YYYY-MM-DD)")
    analyze_parser.add_argument("--db", default=DEFAULT_DB, help="SQLite database path")
    analyze_parser.add_argument("--config", default="", help="Path to dosefold.toml config file")
    analyze_parser.add_argument("--workers", type=int, default=1,
                                help="Analyze medications on this many threads")
    analyze_parser.add_argument("--json", action="store_true", help="Print insights as JSON")
    analyze_parser.add_argument("--all", action="store_true",
                                help="Include changes with no observations")

    # --- regimen ---
    regimen_parser = sub.add_parser("regimen", help="Show the medication regimen on a date")
    regimen_parser.add_argument("--date", required=True, help="ISO date (YYYY-MM-DD)")
    regimen_parser.add_argument("--compare-to", default="",
                                help="Compare against the regimen on this later date")
    regimen_parser.add_argument("--db", default=DEFAULT_DB, help="SQLite database path")

    # --- timeline ---
    timeline_parser = sub.add_parser("timeline", help="Show medication start/change/stop events")
    timeline_parser.add_argument("--start", default="", help="Earliest ISO date")
    timeline_parser.add_argument("--end", default="", help="Latest ISO date")
    timeline_parser.add_argument("--db", default=DEFAULT_DB, help="SQLite database path")

    # --- export ---
    export_parser = sub.add_parser("export", help="Export the analysis as markdown or PDF")
    export_parser.add_argument("--start", required=True, help="First ISO date (YYYY-MM-DD)")
    export_parser.add_argument("--end", required=True, help="Last ISO date (YYYY-MM-DD)")
    export_parser.add_argument("--db", default=DEFAULT_DB, help="SQLite database path")
    export_parser.add_argument("--config", default="", help="Path to dosefold.toml config file")
    export_parser.add_argument("--output", default="dosefold_export.md", help="Output file path (.md or .pdf)")
    export_parser.add_argument("--format", choices=["markdown", "pdf"], default="markdown", help="Output format")

    # --- summary ---
    summary_parser = sub.add_parser("summary", help="Show database summary")
    summary_parser.add_argument("--db", default=DEFAULT_DB, help="SQLite database path")

    # --- init-config ---
    config_parser = sub.add_parser("init-config", help="Generate a dosefold.toml with default thresholds")
    config_parser.add_argument("--output", default="dosefold.toml", help="Config file output path")

    # --- serve-mcp ---
    mcp_parser = sub.add_parser("serve-mcp", help="Start MCP server for LLM tool access")
    mcp_parser.add_argument("--db", default=DEFAULT_DB, help="SQLite database path")
    mcp_parser.add_argument("--config", default="", help="Path to dosefold.toml config file")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    handlers = {
        "load": _handle_load,
        "analyze": _handle_analyze,
        "regimen": _handle_regimen,
        "timeline": _handle_timeline,
        "export": _handle_export,
        "summary": _handle_summary,
        "init-config": _handle_init_config,
        "serve-mcp": _handle_serve_mcp,
    }
    try:
        handlers[args.command](args)
    except (ValueError, FileNotFoundError) as e:
        # SnapshotIntegrityError and KnowledgeError are ValueErrors
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


def _load_settings(config_path: str):
    """Return (thresholds, knowledge) from a config file, or the defaults."""
    from dosefold.config import DEFAULT_THRESHOLDS, load_config
    from dosefold.knowledge import load_knowledge

    if not config_path:
        return DEFAULT_THRESHOLDS, load_knowledge()
    config = load_config(config_path)
    return config["thresholds"], load_knowledge(config["knowledge_file"] or None)


def _handle_load(args):
    from dosefold.db import DosefoldDB
    from dosefold.log_parser import parse_patient_log

    records = parse_patient_log(args.log_file)
    print(f"\n--- Loading {records.source} from {args.log_file} ---")

    with DosefoldDB(args.db) as db:
        db.init_schema()
        result = db.load_records(records, replace=args.replace)
        if result.skipped:
            print("  Content unchanged since last load, skipped.")
        else:
            for table, stats in result.tables.items():
                if stats["total"] or stats["removed"]:
                    print(f"  {table:<20} {stats['total']:>5}  "
                          f"(new {stats['new']}, updated {stats['existing']}, removed {stats['removed']})")
        _print_db_summary(db)


def _handle_analyze(args):
    from dosefold.analysis.correlation import analyze_changes
    from dosefold.db import DosefoldDB
    from dosefold.formatters.markdown import insight_title
    from dosefold.models import format_display_date

    thresholds, knowledge = _load_settings(args.config)

    with DosefoldDB(args.db) as db:
        db.init_schema()
        snapshot = db.fetch_snapshot(args.start, args.end, thresholds.lookback_days)

    insights = analyze_changes(
        snapshot, args.start, args.end, knowledge, thresholds, max_workers=args.workers,
    )
    if not args.all:
        insights = [i for i in insights if i.has_observations]

    if args.json:
        print(json.dumps([i.to_dict() for i in insights], indent=2))
        return

    if not insights:
        print("No medication changes with preceding observations in this period.")
        return

    print(f"\n{'='*60}")
    print(f"Medication Changes & Clinical Context ({args.start} to {args.end})")
    print(f"{'='*60}")
    for insight in insights:
        print(f"\n  {insight_title(insight, knowledge)}")
        print(f"  Changed: {format_display_date(insight.change_date)} — {insight.change_description}")
        if insight.observations:
            print(f"  Observations in the {thresholds.lookback_days} days before this change:")
            for obs in insight.observations:
                print(f"    [{obs.severity:<13}] {obs.description}")
        if insight.context_message:
            print(f"  Note: {insight.context_message}")
    print(f"\n({len(insights)} changes)")


def _handle_regimen(args):
    from dosefold.analysis.history import compare_regimens, regimen_as_of
    from dosefold.db import DosefoldDB
    from dosefold.knowledge import load_knowledge

    knowledge = load_knowledge()
    with DosefoldDB(args.db) as db:
        db.init_schema()
        medications = db.medications()

    start = regimen_as_of(medications, args.date, knowledge)

    if args.compare_to:
        end = regimen_as_of(medications, args.compare_to, knowledge)
        comparisons = compare_regimens(start, end)
        if not comparisons:
            print("No medications on either date.")
            return
        print(f"\n  Regimen {args.date} -> {args.compare_to}")
        print(f"  {'':<2} {'Medication':<25} {args.date:<20} {args.compare_to:<20}")
        print(f"  {'-'*2} {'-'*25} {'-'*20} {'-'*20}")
        for c in comparisons:
            print(f"  {c.symbol:<2} {c.medication_name:<25} {c.start_dosage:<20} {c.end_dosage:<20}")
        return

    if not start:
        print(f"No medications active on {args.date}.")
        return
    print(f"\n  Regimen as of {args.date}")
    print(f"  {'Medication':<25} {'Dosage':<15} {'Schedule':<20} {'Since':<10}")
    print(f"  {'-'*25} {'-'*15} {'-'*20} {'-'*10}")
    for e in start:
        print(f"  {e.medication_name:<25} {e.short_dosage:<15} {e.schedule:<20} {e.period_start:<10}")


def _handle_timeline(args):
    from dosefold.analysis.history import medication_timeline
    from dosefold.db import DosefoldDB

    with DosefoldDB(args.db) as db:
        db.init_schema()
        medications = db.medications()

    events = medication_timeline(medications, args.start or None, args.end or None)
    if not events:
        print("No medication changes recorded.")
        return
    for e in events:
        print(f"  {e.date}  {e.medication_name:<25} {e.description}")
    print(f"\n({len(events)} events)")


def _handle_export(args):
    from dosefold.db import DosefoldDB
    from dosefold.export import export_markdown, export_pdf

    thresholds, knowledge = _load_settings(args.config)

    with DosefoldDB(args.db) as db:
        db.init_schema()
        if args.format == "pdf":
            output = args.output if args.output.endswith(".pdf") else args.output.replace(".md", ".pdf")
            path = export_pdf(db, output, args.start, args.end, thresholds, knowledge)
        else:
            path = export_markdown(db, args.output, args.start, args.end, thresholds, knowledge)

    print(f"Exported to {path}")


def _handle_summary(args):
    from dosefold.db import DosefoldDB

    with DosefoldDB(args.db) as db:
        db.init_schema()
        _print_db_summary(db)


def _print_db_summary(db):
    counts = db.summary()
    sources = db.sources()

    print(f"\n{'='*50}")
    print("Database Summary")
    print(f"{'='*50}")
    for table, count in counts.items():
        if count > 0:
            print(f"  {table:<25} {count:>6}")
    print(f"{'='*50}")

    if sources:
        print("\nLoad History:")
        for s in sources:
            print(f"  {s['source']:<25} loaded {s['loaded_at'][:19]}")


def _handle_init_config(args):
    from dosefold.config import generate_config

    path = generate_config(args.output)
    print(f"Config generated at {path}")


def _handle_serve_mcp(args):
    import os

    os.environ["DOSEFOLD_DB"] = args.db
    if args.config:
        os.environ["DOSEFOLD_CONFIG"] = args.config

    from dosefold.mcp.server import mcp

    mcp.run()


if __name__ == "__main__":
    main()
