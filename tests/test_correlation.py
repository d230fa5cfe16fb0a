"""Tests for dosefold.analysis.correlation (end-to-end engine)."""

import pytest

from dosefold.analysis.correlation import analyze_changes, validate_snapshot
from dosefold.config import AnalysisThresholds
from dosefold.knowledge import knowledge_from_dict
from dosefold.models import (
    CHANGE_DISCONTINUED,
    CHANGE_DOSE_INCREASE,
    CHANGE_DOSE_REDUCTION,
    CHANGE_STARTED,
    AlertRecord,
    DosagePeriod,
    MedicationRecord,
    Snapshot,
    SnapshotIntegrityError,
    SymptomReport,
    VitalsReading,
)


@pytest.fixture
def insights(sample_snapshot, kb):
    return analyze_changes(sample_snapshot, "2025-01-01", "2025-01-31", kb)


class TestAnalyzeChanges:
    def test_sorted_most_recent_first(self, insights):
        assert [(i.medication_name, i.change_date, i.change_event.kind) for i in insights] == [
            ("Spironolactone", "2025-01-20", CHANGE_DISCONTINUED),
            ("Metoprolol Succinate", "2025-01-15", CHANGE_DOSE_INCREASE),
            ("Furosemide", "2025-01-10", CHANGE_DOSE_REDUCTION),
            ("Furosemide", "2025-01-01", CHANGE_STARTED),
        ]

    def test_unclassified_medication_skipped(self, insights):
        assert "Vitamin D" not in {i.medication_name for i in insights}

    def test_empty_window_has_no_context(self, insights):
        started = insights[3]
        assert started.observations == ()
        assert started.context_message is None
        assert started.change_event.previous_dosage is None

    def test_furosemide_reduction(self, insights):
        furosemide = insights[2]
        assert [(o.type, o.severity) for o in furosemide.observations] == [
            ("average_bp", "informational"),
            ("low_blood_pressure", "notable"),
            ("dizziness", "notable"),
            ("alert", "notable"),
        ]
        assert furosemide.observations[0].description == (
            "Blood pressure readings averaged 101/62 mmHg (3 readings)"
        )
        assert furosemide.context_message.startswith("Diuretic dosing")

    def test_beta_blocker_increase(self, insights):
        metoprolol = insights[1]
        assert [(o.type, o.severity) for o in metoprolol.observations] == [
            ("average_bp", "notable"),
            ("low_blood_pressure", "significant"),
            ("low_map", "significant"),
            ("average_hr", "notable"),
            ("low_heart_rate", "significant"),
            ("dizziness", "notable"),
            ("alert", "notable"),
            ("alert", "notable"),
        ]
        assert metoprolol.observations[6].description.startswith("Low heart rate alert")
        assert metoprolol.highest_severity == "significant"
        assert metoprolol.change_description == "25 mg Once daily → 50 mg Once daily"

    def test_mra_discontinued(self, insights):
        spiro = insights[0]
        assert [o.type for o in spiro.observations] == ["average_bp", "low_blood_pressure", "low_map"]
        assert spiro.change_description == "25 mg Once daily → Discontinued"
        assert "lab values" in spiro.context_message

    def test_workers_give_same_result(self, sample_snapshot, kb, insights):
        parallel = analyze_changes(sample_snapshot, "2025-01-01", "2025-01-31", kb, max_workers=4)
        assert parallel == insights

    def test_ties_keep_medication_order(self, kb):
        snapshot = Snapshot(medications=(
            MedicationRecord("Bisoprolol", "beta_blocker", periods=[DosagePeriod("2025-01-10", "5")]),
            MedicationRecord("Lisinopril", "ace_inhibitor", periods=[DosagePeriod("2025-01-10", "10")]),
            MedicationRecord("Losartan", "arb", periods=[DosagePeriod("2025-01-01", "25")]),
        ))
        result = analyze_changes(snapshot, "2025-01-01", "2025-01-31", kb, max_workers=3)
        assert [i.medication_name for i in result] == ["Bisoprolol", "Lisinopril", "Losartan"]

    def test_date_order(self, kb):
        snapshot = Snapshot(medications=(
            MedicationRecord("A", "arb", periods=[DosagePeriod("2025-01-01", "25")]),
            MedicationRecord("B", "arb", periods=[DosagePeriod("2025-01-15", "25")]),
            MedicationRecord("C", "arb", periods=[DosagePeriod("2025-01-10", "25")]),
        ))
        result = analyze_changes(snapshot, "2025-01-01", "2025-01-31", kb)
        assert [i.change_date for i in result] == ["2025-01-15", "2025-01-10", "2025-01-01"]

    def test_mra_without_signals(self, kb):
        snapshot = Snapshot(medications=(
            MedicationRecord("Eplerenone", "mra", periods=[DosagePeriod("2025-01-10", "25", "mg")]),
        ))
        [insight] = analyze_changes(snapshot, "2025-01-01", "2025-01-31", kb)
        assert len(insight.observations) == 1
        assert insight.observations[0].severity == "informational"
        assert insight.observations[0].type == "untracked_labs"

    def test_custom_thresholds(self, sample_snapshot, kb):
        t = AnalysisThresholds(low_systolic_bp=80, low_map=50, low_heart_rate=50)
        result = analyze_changes(sample_snapshot, "2025-01-01", "2025-01-31", kb, t)
        types = [o.type for o in result[1].observations]
        assert "low_blood_pressure" not in types
        assert "low_map" not in types
        assert "low_heart_rate" not in types

    def test_injected_knowledge(self, sample_snapshot):
        kb = knowledge_from_dict({})
        result = analyze_changes(sample_snapshot, "2025-01-01", "2025-01-31", kb)
        # Categories still classify; no templates means no context messages
        assert len(result) == 4
        assert all(i.context_message is None for i in result)

    def test_empty_snapshot(self, kb):
        assert analyze_changes(Snapshot(), "2025-01-01", "2025-01-31", kb) == []


class TestValidateSnapshot:
    def test_start_after_end(self, kb):
        snapshot = Snapshot(medications=(
            MedicationRecord("Carvedilol", periods=[
                DosagePeriod("2025-02-01", "3.125", end_date="2025-01-01"),
            ]),
        ))
        with pytest.raises(SnapshotIntegrityError, match="Carvedilol period #1"):
            analyze_changes(snapshot, "2025-01-01", "2025-01-31", kb)

    def test_malformed_date(self):
        snapshot = Snapshot(medications=(
            MedicationRecord("Carvedilol", periods=[DosagePeriod("01/05/2025", "3.125")]),
        ))
        with pytest.raises(SnapshotIntegrityError, match="not an ISO date"):
            validate_snapshot(snapshot)

    def test_bad_range(self, kb):
        with pytest.raises(SnapshotIntegrityError):
            analyze_changes(Snapshot(), "January", "2025-01-31", kb)

    def test_is_value_error(self):
        assert issubclass(SnapshotIntegrityError, ValueError)

    def test_valid_snapshot(self, sample_snapshot):
        validate_snapshot(sample_snapshot)

    @pytest.mark.parametrize("start", ["20250110", "2025-W02-5", "2025-1-10"])
    def test_non_canonical_period_date(self, start, kb):
        snapshot = Snapshot(medications=(
            MedicationRecord("Carvedilol", "beta_blocker", periods=[DosagePeriod(start, "3.125")]),
        ))
        with pytest.raises(SnapshotIntegrityError, match="Carvedilol period #1 start date"):
            analyze_changes(snapshot, "2025-01-01", "2025-01-31", kb)

    def test_non_canonical_stream_dates(self):
        with pytest.raises(SnapshotIntegrityError, match="Vitals reading date"):
            validate_snapshot(Snapshot(vitals=(VitalsReading("20250105", 90, 60),)))
        with pytest.raises(SnapshotIntegrityError, match="dizziness report date"):
            validate_snapshot(Snapshot(symptoms=(SymptomReport("2025-W01-7", "dizziness", 3),)))
        with pytest.raises(SnapshotIntegrityError, match="heart_rate_low alert date"):
            validate_snapshot(Snapshot(alerts=(AlertRecord("heart_rate_low", "20250105T07:00:00"),)))

    def test_non_canonical_range(self, kb):
        with pytest.raises(SnapshotIntegrityError, match="Analysis end date"):
            analyze_changes(Snapshot(), "2025-01-01", "20250131", kb)

    def test_inverted_range(self, kb):
        with pytest.raises(SnapshotIntegrityError, match="starts 2025-01-31 after it ends 2025-01-01"):
            analyze_changes(Snapshot(), "2025-01-31", "2025-01-01", kb)
