"""SQLite database layer for dosefold.

DosefoldDB wraps a SQLite database with:
- Schema initialization from schema.sql
- UPSERT-based loading of patient logs (stable IDs across re-imports)
- Snapshot fetching for the analysis engine
- Read-only query helper returning list[dict]
- Load logging for audit trail
"""

from __future__ import annotations

import hashlib
import json
import logging
import sqlite3
import time
from dataclasses import asdict, dataclass, fields
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import TypedDict

from dosefold.models import (
    AlertRecord,
    DosagePeriod,
    MedicationRecord,
    Snapshot,
    SnapshotRecords,
    SymptomReport,
    VitalsReading,
)

logger = logging.getLogger(__name__)

# Natural key UNIQUE constraints (as declared in schema.sql).
# Used for UPSERT conflict detection and stale-record cleanup.
_UNIQUE_KEYS: dict[str, tuple[str, ...]] = {
    "medications": ("source", "name"),
    "dosage_periods": ("source", "medication_name", "start_date"),
    "vitals": ("source", "reading_date"),
    "symptoms": ("source", "report_date", "symptom_type", "seq"),
    "alerts": ("source", "alert_type", "triggered_at"),
}

# Clinical stream tables: (attr on SnapshotRecords, table, dataclass type)
_STREAM_TABLES: list[tuple[str, str, type]] = [
    ("vitals", "vitals", VitalsReading),
    ("symptoms", "symptoms", SymptomReport),
    ("alerts", "alerts", AlertRecord),
]


class TableStats(TypedDict):
    """Per-table load statistics."""

    new: int  # Records whose natural key didn't exist before
    existing: int  # Records whose natural key already existed (upserted)
    removed: int  # Stale records deleted (only in replace=True mode)
    total: int  # Total records in the import


@dataclass
class LoadResult:
    """Result of a load_records operation."""

    tables: dict[str, TableStats]
    content_hash: str  # SHA-256 hex of the imported records
    skipped: bool  # True when content matched the source's last load


def _medication_row(med: MedicationRecord, source: str) -> dict:
    return {
        "source": source,
        "name": med.name,
        "category": med.category,
        "is_active": int(med.is_active),
        "is_diuretic": int(med.is_diuretic),
    }


def _period_row(period: DosagePeriod, medication_id: int, med_name: str, source: str) -> dict:
    row = {"medication_id": medication_id, "source": source, "medication_name": med_name}
    row.update(asdict(period))
    return row


def _stream_row(record, source: str) -> dict:
    row = {"source": source}
    row.update(asdict(record))
    return row


def _symptom_rows(reports: list[SymptomReport], source: str) -> list[dict]:
    """Rows for symptom reports, numbering same-day reports of one type.

    Several reports of one symptom on one day are all kept; `seq` is their
    position in the import, so re-importing the same log upserts in place.
    """
    seen: dict[tuple[str, str], int] = {}
    rows = []
    for report in reports:
        key = (report.report_date, report.symptom_type)
        row = _stream_row(report, source)
        row["seq"] = seen.get(key, 0)
        seen[key] = row["seq"] + 1
        rows.append(row)
    return rows


def _content_hash(records: SnapshotRecords) -> str:
    """Compute SHA-256 hash of serialized records for dedup/provenance.

    Produces a stable hash by sorting every record list before serializing.
    """
    h = hashlib.sha256()
    h.update(records.source.encode())

    meds = sorted((asdict(m) for m in records.medications), key=lambda m: m["name"])
    for m in meds:
        m["periods"].sort(key=lambda p: p["start_date"])
    h.update(json.dumps(meds, sort_keys=True).encode())

    for attr, table, _dc_type in _STREAM_TABLES:
        natural_key_cols = [c for c in _UNIQUE_KEYS[table] if c != "source"]
        rows = [asdict(r) for r in getattr(records, attr)]
        rows.sort(key=lambda row: tuple(str(row.get(c, "")) for c in natural_key_cols))
        h.update(json.dumps(rows, sort_keys=True).encode())

    return h.hexdigest()


def _get_existing_keys(
    conn: sqlite3.Connection, table: str, source: str, unique_cols: tuple[str, ...]
) -> set[tuple]:
    """Get the set of natural keys currently in the DB for this source/table."""
    natural_key_cols = [c for c in unique_cols if c != "source"]
    select_cols = ", ".join(natural_key_cols)
    rows = conn.execute(
        f"SELECT {select_cols} FROM {table} WHERE source = ?", (source,)
    ).fetchall()
    return {tuple(row[c] for c in natural_key_cols) for row in rows}


def _get_schema_sql() -> str:
    """Read the schema.sql file bundled with the package."""
    schema_path = Path(__file__).parent / "schema.sql"
    return schema_path.read_text()


def _build_upsert_sql(
    table: str, columns: list[str], unique_cols: tuple[str, ...]
) -> str:
    """Build INSERT ... ON CONFLICT ... DO UPDATE SET SQL."""
    col_names = ", ".join(columns)
    placeholders = ", ".join("?" for _ in columns)
    conflict_cols = ", ".join(unique_cols)

    update_cols = [c for c in columns if c not in unique_cols]
    if not update_cols:
        # All columns are part of the unique key; ignore duplicates
        return f"INSERT OR IGNORE INTO {table} ({col_names}) VALUES ({placeholders})"

    update_clause = ", ".join(f"{c} = excluded.{c}" for c in update_cols)
    return (
        f"INSERT INTO {table} ({col_names}) VALUES ({placeholders}) "
        f"ON CONFLICT({conflict_cols}) DO UPDATE SET {update_clause}"
    )


def _cleanup_stale_records(
    conn: sqlite3.Connection,
    table: str,
    source: str,
    unique_cols: tuple[str, ...],
    imported_keys: set[tuple],
) -> int:
    """Delete records for this source whose natural key wasn't in the import.

    Returns the number of deleted rows.
    """
    natural_key_cols = [c for c in unique_cols if c != "source"]
    select_cols = ", ".join(["id"] + natural_key_cols)
    existing = conn.execute(
        f"SELECT {select_cols} FROM {table} WHERE source = ?", (source,)
    ).fetchall()

    stale_ids = [
        row["id"] for row in existing
        if tuple(row[c] for c in natural_key_cols) not in imported_keys
    ]
    if stale_ids:
        placeholders = ", ".join("?" for _ in stale_ids)
        conn.execute(f"DELETE FROM {table} WHERE id IN ({placeholders})", stale_ids)

    return len(stale_ids)


def _upsert_rows(
    conn: sqlite3.Connection,
    table: str,
    source: str,
    rows: list[dict],
    replace: bool,
    existing_keys: set[tuple] | None = None,
) -> TableStats:
    """UPSERT a batch of rows into one table and report what changed."""
    unique_cols = _UNIQUE_KEYS[table]
    natural_key_cols = [c for c in unique_cols if c != "source"]
    if existing_keys is None:
        existing_keys = _get_existing_keys(conn, table, source, unique_cols)

    imported_keys = {tuple(r[c] for c in natural_key_cols) for r in rows}
    if rows:
        cols = list(rows[0].keys())
        sql = _build_upsert_sql(table, cols, unique_cols)
        conn.executemany(sql, [list(r.values()) for r in rows])

    removed = 0
    if replace:
        removed = _cleanup_stale_records(conn, table, source, unique_cols, imported_keys)

    new_keys = imported_keys - existing_keys
    return TableStats(
        new=len(new_keys),
        existing=len(imported_keys) - len(new_keys),
        removed=removed,
        total=len(rows),
    )


class DosefoldDB:
    """SQLite-backed store for medication timelines and clinical signals."""

    def __init__(self, db_path: str = "dosefold.db", read_only: bool = False):
        """Open (or create) the database.

        With read_only=True the file must already exist and every write,
        including write-capable PRAGMAs, fails with sqlite3.OperationalError.
        """
        self.db_path = db_path
        self.read_only = read_only
        # Analysis may run on worker threads; the store itself is read serially
        if read_only:
            uri = Path(db_path).resolve().as_uri() + "?mode=ro"
            self.conn = sqlite3.connect(uri, uri=True, check_same_thread=False)
        else:
            self.conn = sqlite3.connect(db_path, check_same_thread=False)
            self.conn.execute("PRAGMA journal_mode=WAL")
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys=ON")

    def init_schema(self) -> None:
        """Create all tables from schema.sql (IF NOT EXISTS)."""
        self.conn.executescript(_get_schema_sql())

    def load_records(self, records: SnapshotRecords, replace: bool = False) -> LoadResult:
        """Load everything from one patient log using UPSERT.

        Args:
            records: Records from a single source.
            replace: If True, also delete records for this source that are
                     not in the import. If False (default), only add/update.

        Returns:
            LoadResult with per-table diff stats and content hash. Loading
            data identical to the source's last load is skipped.
        """
        source = records.source
        start = time.monotonic()
        chash = _content_hash(records)

        last_load = self.conn.execute(
            "SELECT content_hash FROM load_log WHERE source = ? ORDER BY id DESC LIMIT 1",
            (source,),
        ).fetchone()
        if last_load and last_load["content_hash"] == chash:
            logger.info("Skipping load of '%s': content unchanged", source)
            return LoadResult(tables={}, content_hash=chash, skipped=True)

        table_stats: dict[str, TableStats] = {}

        with self.conn:
            existing_periods = _get_existing_keys(
                self.conn, "dosage_periods", source, _UNIQUE_KEYS["dosage_periods"]
            )
            table_stats["medications"] = _upsert_rows(
                self.conn, "medications", source,
                [_medication_row(m, source) for m in records.medications],
                replace,
            )

            # Periods reference their medication by row ID, so resolve IDs after the upsert
            med_ids = {
                row["name"]: row["id"]
                for row in self.conn.execute(
                    "SELECT id, name FROM medications WHERE source = ?", (source,)
                )
            }
            period_rows = [
                _period_row(p, med_ids[m.name], m.name, source)
                for m in records.medications
                for p in m.periods
            ]
            table_stats["dosage_periods"] = _upsert_rows(
                self.conn, "dosage_periods", source, period_rows, replace, existing_periods
            )

            for attr, table, _dc_type in _STREAM_TABLES:
                if table == "symptoms":
                    rows = _symptom_rows(records.symptoms, source)
                else:
                    rows = [_stream_row(r, source) for r in getattr(records, attr)]
                table_stats[table] = _upsert_rows(self.conn, table, source, rows, replace)

            duration = time.monotonic() - start
            now = datetime.now(timezone.utc).isoformat()
            counts = {t: s["total"] for t, s in table_stats.items()}
            self.conn.execute(
                """INSERT INTO load_log (
                    source, loaded_at, duration_seconds, content_hash,
                    medications_count, dosage_periods_count, vitals_count,
                    symptoms_count, alerts_count
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    source,
                    now,
                    duration,
                    chash,
                    counts.get("medications", 0),
                    counts.get("dosage_periods", 0),
                    counts.get("vitals", 0),
                    counts.get("symptoms", 0),
                    counts.get("alerts", 0),
                ),
            )

        logger.info("Loaded '%s': %s", source, counts)
        return LoadResult(tables=table_stats, content_hash=chash, skipped=False)

    def medications(self) -> list[MedicationRecord]:
        """All medications ordered by name, each with periods ordered by start date."""
        meds = self.query(
            "SELECT id, name, category, is_active, is_diuretic "
            "FROM medications ORDER BY name, source"
        )
        period_cols = [f.name for f in fields(DosagePeriod)]
        periods: dict[int, list[DosagePeriod]] = {}
        for row in self.query(
            f"SELECT medication_id, {', '.join(period_cols)} "
            "FROM dosage_periods ORDER BY start_date"
        ):
            periods.setdefault(row["medication_id"], []).append(
                DosagePeriod(**{c: row[c] for c in period_cols})
            )

        return [
            MedicationRecord(
                name=m["name"],
                category=m["category"],
                is_active=bool(m["is_active"]),
                is_diuretic=bool(m["is_diuretic"]),
                periods=periods.get(m["id"], []),
            )
            for m in meds
        ]

    def fetch_snapshot(self, start_date: str, end_date: str, lookback_days: int) -> Snapshot:
        """Snapshot for analyzing changes in [start_date, end_date].

        Clinical streams cover [start_date - lookback_days, end_date] so every
        change in range has its full lookback window.
        """
        window_start = (date.fromisoformat(start_date) - timedelta(days=lookback_days)).isoformat()

        def rows_to(dc_type: type, table: str, date_expr: str) -> tuple:
            cols = [f.name for f in fields(dc_type)]
            rows = self.query(
                f"SELECT {', '.join(cols)} FROM {table} "
                f"WHERE {date_expr} BETWEEN ? AND ? ORDER BY {date_expr}, id",
                (window_start, end_date),
            )
            return tuple(dc_type(**r) for r in rows)

        snapshot = Snapshot(
            medications=tuple(self.medications()),
            vitals=rows_to(VitalsReading, "vitals", "reading_date"),
            symptoms=rows_to(SymptomReport, "symptoms", "report_date"),
            alerts=rows_to(AlertRecord, "alerts", "substr(triggered_at, 1, 10)"),
        )
        logger.debug(
            "Fetched snapshot %s..%s: %d medications, %d vitals, %d symptoms, %d alerts",
            window_start, end_date, len(snapshot.medications), len(snapshot.vitals),
            len(snapshot.symptoms), len(snapshot.alerts),
        )
        return snapshot

    def query(self, sql: str, params: tuple = ()) -> list[dict]:
        """Execute a read-only SQL query and return results as list of dicts."""
        cursor = self.conn.execute(sql, params)
        columns = [desc[0] for desc in cursor.description] if cursor.description else []
        return [dict(zip(columns, row, strict=False)) for row in cursor.fetchall()]

    def summary(self) -> dict[str, int]:
        """Return row counts for all main tables (auto-discovered from schema)."""
        rows = self.query(
            "SELECT name FROM sqlite_master WHERE type='table' AND name NOT LIKE 'sqlite_%' "
            "ORDER BY name"
        )
        result = {}
        for r in rows:
            table = r["name"]
            if table == "load_log":
                continue  # Exclude audit log from summary display
            row = self.conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()
            result[table] = row[0]
        return result

    def sources(self) -> list[dict]:
        """Return load history for all sources."""
        return self.query(
            "SELECT source, loaded_at, duration_seconds, "
            "medications_count, vitals_count, symptoms_count, alerts_count "
            "FROM load_log ORDER BY loaded_at DESC"
        )

    def close(self) -> None:
        self.conn.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
