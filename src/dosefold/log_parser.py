"""YAML/JSON patient-log importer.

A patient log looks like:

    source: home_log
    medications:
      - name: Furosemide
        category: loop_diuretic
        active: true
        periods:
          - {start: 2025-01-01, end: 2025-01-10, dosage: "40", unit: mg, schedule: Once daily}
          - {start: 2025-01-10, dosage: "20", unit: mg, schedule: Once daily}
    vitals:
      - {date: 2025-01-05, systolic: 98, diastolic: 60, heart_rate: 58}
    symptoms:
      - {date: 2025-01-06, type: dizziness, severity: 3}
    alerts:
      - {type: low_blood_pressure, triggered_at: 2025-01-06T08:15:00}

Missing sections are empty. The source name defaults to the file stem.
"""

from __future__ import annotations

import json
from datetime import date, datetime
from pathlib import Path

try:
    import yaml
except ImportError as e:
    raise ImportError(
        "PyYAML is required for patient log parsing. Install with: pip install pyyaml"
    ) from e

from dosefold.models import (
    ALERT_TYPES,
    CATEGORIES,
    MAX_SEVERITY,
    MIN_SEVERITY,
    SYMPTOM_TYPES,
    AlertRecord,
    DosagePeriod,
    MedicationRecord,
    SnapshotRecords,
    SymptomReport,
    VitalsReading,
    is_canonical_date,
)


def _iso_date(value, where: str) -> str:
    """YAML turns bare dates into date objects; normalize everything to ISO strings.

    Strings must be YYYY-MM-DD, optionally followed by a time part.
    """
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, str) and _has_canonical_date(value):
        return value[:10]
    raise ValueError(f"{where}: missing or invalid date {value!r} (expected YYYY-MM-DD)")


def _iso_datetime(value, where: str) -> str:
    if isinstance(value, datetime):
        return value.replace(tzinfo=None).isoformat(timespec="seconds")
    if isinstance(value, date):
        return f"{value.isoformat()}T00:00:00"
    if isinstance(value, str) and _has_canonical_date(value):
        return value
    raise ValueError(f"{where}: missing or invalid timestamp {value!r}")


def _has_canonical_date(text: str) -> bool:
    if len(text) > 10 and text[10] not in "T ":
        return False
    return is_canonical_date(text[:10])


def _opt_int(value) -> int | None:
    if value is None or value == "":
        return None
    return int(value)


def _text(value) -> str:
    return "" if value is None else str(value)


def _parse_medication(entry: dict, index: int) -> MedicationRecord:
    name = entry.get("name")
    if not name:
        raise ValueError(f"medications[{index}]: missing name")

    category = entry.get("category")
    if category is not None and category not in CATEGORIES:
        raise ValueError(f"medications[{index}] ({name}): unknown category '{category}'")

    periods = []
    for j, p in enumerate(entry.get("periods") or []):
        where = f"medications[{index}] ({name}) periods[{j}]"
        end = p.get("end")
        periods.append(DosagePeriod(
            start_date=_iso_date(p.get("start"), where),
            dosage=_text(p.get("dosage")),
            unit=_text(p.get("unit")),
            schedule=_text(p.get("schedule")),
            end_date=_iso_date(end, where) if end is not None else None,
        ))

    return MedicationRecord(
        name=str(name),
        category=category,
        is_active=bool(entry.get("active", True)),
        is_diuretic=bool(entry.get("diuretic", False)),
        periods=periods,
    )


def _parse_symptom(entry: dict, index: int) -> SymptomReport:
    symptom_type = entry.get("type")
    if symptom_type not in SYMPTOM_TYPES:
        raise ValueError(f"symptoms[{index}]: unknown symptom type '{symptom_type}'")
    severity = int(entry.get("severity", MIN_SEVERITY))
    if not MIN_SEVERITY <= severity <= MAX_SEVERITY:
        raise ValueError(
            f"symptoms[{index}]: severity {severity} outside {MIN_SEVERITY}-{MAX_SEVERITY}"
        )
    return SymptomReport(
        report_date=_iso_date(entry.get("date"), f"symptoms[{index}]"),
        symptom_type=symptom_type,
        severity=severity,
    )


def _parse_alert(entry: dict, index: int) -> AlertRecord:
    alert_type = entry.get("type")
    if alert_type not in ALERT_TYPES:
        raise ValueError(f"alerts[{index}]: unknown alert type '{alert_type}'")
    return AlertRecord(
        alert_type=alert_type,
        triggered_at=_iso_datetime(entry.get("triggered_at"), f"alerts[{index}]"),
    )


def parse_patient_log_data(data: dict, source: str) -> SnapshotRecords:
    """Build SnapshotRecords from an already-decoded patient log mapping."""
    if not isinstance(data, dict):
        raise ValueError("Patient log must be a mapping with medications/vitals/symptoms/alerts")

    vitals = [
        VitalsReading(
            reading_date=_iso_date(v.get("date"), f"vitals[{i}]"),
            systolic_bp=_opt_int(v.get("systolic")),
            diastolic_bp=_opt_int(v.get("diastolic")),
            heart_rate=_opt_int(v.get("heart_rate")),
            oxygen_saturation=_opt_int(v.get("oxygen_saturation")),
        )
        for i, v in enumerate(data.get("vitals") or [])
    ]

    return SnapshotRecords(
        source=str(data.get("source") or source),
        medications=[_parse_medication(m, i) for i, m in enumerate(data.get("medications") or [])],
        vitals=vitals,
        symptoms=[_parse_symptom(s, i) for i, s in enumerate(data.get("symptoms") or [])],
        alerts=[_parse_alert(a, i) for i, a in enumerate(data.get("alerts") or [])],
    )


def parse_patient_log(path: str | Path) -> SnapshotRecords:
    """Parse a .yaml/.yml or .json patient log file into SnapshotRecords."""
    path = Path(path)
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() == ".json":
        data = json.loads(text)
    else:
        data = yaml.safe_load(text) or {}
    return parse_patient_log_data(data, source=path.stem)
