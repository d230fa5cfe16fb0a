"""MCP server for dosefold — LLM clients query medication change analyses as tools.

Run with: python -m dosefold.mcp.server
Configure env: DOSEFOLD_DB=/path/to/dosefold.db, DOSEFOLD_CONFIG=/path/to/dosefold.toml
"""

from __future__ import annotations

import os
import re

from mcp.server.fastmcp import FastMCP

from dosefold.analysis.correlation import analyze_changes
from dosefold.analysis.history import compare_regimens, medication_timeline, regimen_as_of
from dosefold.config import DEFAULT_THRESHOLDS, load_config
from dosefold.db import DosefoldDB
from dosefold.knowledge import load_knowledge

DB_PATH = os.environ.get("DOSEFOLD_DB", "dosefold.db")
CONFIG_PATH = os.environ.get("DOSEFOLD_CONFIG", "")

mcp = FastMCP(
    "dosefold",
    instructions=(
        "Medication change analysis server backed by a SQLite store of medication "
        "dosage histories, daily vitals, symptom reports and alerts.\n\n"
        "Key capabilities:\n"
        "- analyze_medication_changes: For each medication change in a date range, "
        "what the vitals, symptoms and alerts looked like in the days before it\n"
        "- get_medication_regimen: What was being taken on a given date\n"
        "- compare_medication_regimens: How the regimen differs between two dates\n"
        "- get_medication_timeline: Start/change/stop events, most recent first\n"
        "- run_sql: Direct SQL access (read-only)\n"
        "- get_database_summary: Table counts and load history\n\n"
        "Observations are descriptive only: they never say a change was right or wrong."
    ),
)


def _get_db() -> DosefoldDB:
    db = DosefoldDB(DB_PATH)
    db.init_schema()
    return db


def _settings():
    if not CONFIG_PATH:
        return DEFAULT_THRESHOLDS, load_knowledge()
    config = load_config(CONFIG_PATH)
    return config["thresholds"], load_knowledge(config["knowledge_file"] or None)


@mcp.tool()
def analyze_medication_changes(
    start_date: str,
    end_date: str,
    include_empty: bool = False,
) -> list[dict] | str:
    """Correlate medication changes in a date range with preceding clinical data.

    Each result has the medication, the change (type, previous/new dosage),
    severity-tagged observations from the lookback window before the change,
    and a category-specific context message. Most recent changes first.

    Args:
        start_date: First ISO date (YYYY-MM-DD) of the range.
        end_date: Last ISO date of the range.
        include_empty: Also return changes with no observations.
    """
    thresholds, knowledge = _settings()
    db = _get_db()
    try:
        snapshot = db.fetch_snapshot(start_date, end_date, thresholds.lookback_days)
        insights = analyze_changes(snapshot, start_date, end_date, knowledge, thresholds)
    except ValueError as e:
        return f"Error: {e}"
    finally:
        db.close()

    return [i.to_dict() for i in insights if include_empty or i.has_observations]


@mcp.tool()
def get_medication_regimen(date: str) -> list[dict]:
    """Get the medications being taken on a date, diuretics first.

    Args:
        date: ISO date (YYYY-MM-DD).
    """
    db = _get_db()
    try:
        medications = db.medications()
    finally:
        db.close()

    return [
        {
            "medication_name": e.medication_name,
            "dosage": e.dosage,
            "unit": e.unit,
            "schedule": e.schedule,
            "is_diuretic": e.is_diuretic,
            "category": e.category,
            "since": e.period_start,
        }
        for e in regimen_as_of(medications, date, load_knowledge())
    ]


@mcp.tool()
def compare_medication_regimens(start_date: str, end_date: str) -> list[dict]:
    """Compare the regimen on two dates. Changed medications are listed first.

    Change values: no_change, increased, decreased, changed, started, discontinued.

    Args:
        start_date: Earlier ISO date.
        end_date: Later ISO date.
    """
    knowledge = load_knowledge()
    db = _get_db()
    try:
        medications = db.medications()
    finally:
        db.close()

    comparisons = compare_regimens(
        regimen_as_of(medications, start_date, knowledge),
        regimen_as_of(medications, end_date, knowledge),
    )
    return [
        {
            "medication_name": c.medication_name,
            "start_dosage": c.start_dosage,
            "end_dosage": c.end_dosage,
            "change": c.change,
        }
        for c in comparisons
    ]


@mcp.tool()
def get_medication_timeline(start_date: str = "", end_date: str = "") -> list[dict]:
    """Get medication start, dose change, stop and restart events, most recent first.

    Args:
        start_date: ISO date filter (events on or after).
        end_date: ISO date filter (events on or before).
    """
    db = _get_db()
    try:
        medications = db.medications()
    finally:
        db.close()

    return [
        {
            "date": e.date,
            "medication_name": e.medication_name,
            "event_type": e.event_type,
            "previous_dosage": e.previous_dosage,
            "new_dosage": e.new_dosage,
            "description": e.description,
        }
        for e in medication_timeline(medications, start_date or None, end_date or None)
    ]


@mcp.tool()
def run_sql(query: str) -> list[dict] | str:
    """Execute a read-only SQL query against the dosefold database.

    Only SELECT/WITH statements and read-only PRAGMAs (no assignment) are
    allowed. The query runs on a read-only connection. Returns results as
    a list of dicts.

    Key tables: medications, dosage_periods, vitals, symptoms, alerts, load_log.
    Dates are ISO text; dosage_periods.end_date is NULL for the current dose.
    """
    cleaned = query.strip().upper()
    if (
        not cleaned.startswith("SELECT")
        and not cleaned.startswith("PRAGMA")
        and not cleaned.startswith("WITH")
    ):
        return "Error: Only SELECT/WITH/PRAGMA statements are allowed."

    if cleaned.startswith("PRAGMA") and "=" in cleaned:
        return "Error: PRAGMA assignments are not allowed."

    dangerous = re.search(
        r"\b(INSERT|UPDATE|DELETE|DROP|ALTER|CREATE|ATTACH|DETACH)\b",
        cleaned,
    )
    if dangerous:
        return f"Error: {dangerous.group()} statements are not allowed."

    # Create the file and schema first; the read-only connection cannot
    _get_db().close()
    db = DosefoldDB(DB_PATH, read_only=True)
    try:
        return db.query(query)
    except Exception as e:
        return f"SQL Error: {e}"
    finally:
        db.close()


@mcp.tool()
def get_database_summary() -> dict:
    """Get table row counts and load history."""
    db = _get_db()
    try:
        return {"tables": db.summary(), "sources": db.sources()}
    finally:
        db.close()


def main():
    mcp.run()


if __name__ == "__main__":
    main()
