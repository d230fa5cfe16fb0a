"""Shared test fixtures for dosefold tests."""

import pytest

from dosefold.db import DosefoldDB
from dosefold.knowledge import load_knowledge
from dosefold.models import (
    AlertRecord,
    DosagePeriod,
    MedicationRecord,
    Snapshot,
    SnapshotRecords,
    SymptomReport,
    VitalsReading,
)


@pytest.fixture
def tmp_db(tmp_path):
    """Create a temporary SQLite database with schema initialized."""
    db_path = str(tmp_path / "test.db")
    db = DosefoldDB(db_path)
    db.init_schema()
    yield db
    db.close()


@pytest.fixture
def kb():
    """The bundled knowledge table."""
    return load_knowledge()


@pytest.fixture
def sample_records():
    """A small heart-failure regimen with two weeks of home readings.

    Changes in January 2025:
      01-01 Furosemide started        01-10 Furosemide 40 -> 20 mg
      01-15 Metoprolol 25 -> 50 mg    01-20 Spironolactone discontinued
      01-05 Vitamin D started (no effects, no category: never analyzed)
    """
    return SnapshotRecords(
        source="test_source",
        medications=[
            MedicationRecord(
                name="Spironolactone",
                category="mra",
                is_active=False,
                periods=[
                    DosagePeriod("2024-11-01", "25", "mg", "Once daily", end_date="2025-01-20"),
                ],
            ),
            MedicationRecord(
                name="Furosemide",
                category="loop_diuretic",
                is_diuretic=True,
                periods=[
                    DosagePeriod("2025-01-01", "40", "mg", "Once daily", end_date="2025-01-10"),
                    DosagePeriod("2025-01-10", "20", "mg", "Once daily"),
                ],
            ),
            MedicationRecord(
                name="Metoprolol Succinate",
                category="beta_blocker",
                periods=[
                    DosagePeriod("2024-12-01", "25", "mg", "Once daily", end_date="2025-01-15"),
                    DosagePeriod("2025-01-15", "50", "mg", "Once daily"),
                ],
            ),
            MedicationRecord(
                name="Vitamin D",
                periods=[DosagePeriod("2025-01-05", "1000", "units", "Once daily")],
            ),
        ],
        vitals=[
            VitalsReading("2025-01-03", systolic_bp=98, diastolic_bp=60, heart_rate=58),
            VitalsReading("2025-01-05", systolic_bp=95, diastolic_bp=58, heart_rate=56),
            VitalsReading("2025-01-07", systolic_bp=110, diastolic_bp=70, heart_rate=64),
            VitalsReading("2025-01-12", systolic_bp=87, diastolic_bp=45, heart_rate=55),
        ],
        symptoms=[
            SymptomReport("2025-01-05", "dizziness", 3),
            SymptomReport("2025-01-12", "dizziness", 2),
        ],
        alerts=[
            AlertRecord("low_blood_pressure", "2025-01-05T08:15:00"),
            AlertRecord("heart_rate_low", "2025-01-12T07:00:00"),
        ],
    )


@pytest.fixture
def sample_snapshot(sample_records):
    return Snapshot.from_records(sample_records)


@pytest.fixture
def loaded_db(tmp_db, sample_records):
    """tmp_db with sample_records loaded."""
    tmp_db.load_records(sample_records)
    return tmp_db
