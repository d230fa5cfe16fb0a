"""Tests for dosefold.log_parser patient-log importer."""

import json

import pytest

from dosefold.log_parser import parse_patient_log, parse_patient_log_data

SAMPLE_LOG = """\
source: home_log
medications:
  - name: Furosemide
    category: loop_diuretic
    diuretic: true
    periods:
      - {start: 2025-01-01, end: 2025-01-10, dosage: 40, unit: mg, schedule: Once daily}
      - {start: 2025-01-10, dosage: "20", unit: mg, schedule: Once daily}
  - name: Spironolactone
    category: mra
    active: false
    periods:
      - {start: 2024-11-01, end: 2025-01-20, dosage: "25", unit: mg}
vitals:
  - {date: 2025-01-05, systolic: 98, diastolic: 60, heart_rate: 58}
  - {date: 2025-01-06, heart_rate: 61}
symptoms:
  - {date: 2025-01-06, type: dizziness, severity: 3}
alerts:
  - type: low_blood_pressure
    triggered_at: 2025-01-06T08:15:00
"""


@pytest.fixture
def log_file(tmp_path):
    path = tmp_path / "patient.yaml"
    path.write_text(SAMPLE_LOG)
    return path


class TestParsePatientLog:
    def test_medications(self, log_file):
        records = parse_patient_log(log_file)
        assert records.source == "home_log"
        furosemide, spiro = records.medications
        assert furosemide.is_diuretic and furosemide.is_active
        assert [(p.start_date, p.end_date, p.dosage) for p in furosemide.periods] == [
            ("2025-01-01", "2025-01-10", "40"),
            ("2025-01-10", None, "20"),
        ]
        assert not spiro.is_active
        assert spiro.periods[0].schedule == ""

    def test_vitals_optional_fields(self, log_file):
        records = parse_patient_log(log_file)
        assert records.vitals[0].systolic_bp == 98
        assert records.vitals[1].systolic_bp is None
        assert records.vitals[1].heart_rate == 61

    def test_symptoms_and_alerts(self, log_file):
        records = parse_patient_log(log_file)
        assert records.symptoms[0].symptom_type == "dizziness"
        assert records.symptoms[0].severity == 3
        assert records.alerts[0].triggered_at == "2025-01-06T08:15:00"
        assert records.alerts[0].triggered_date == "2025-01-06"

    def test_counts(self, log_file):
        assert parse_patient_log(log_file).counts() == {
            "medications": 2,
            "dosage_periods": 3,
            "vitals": 2,
            "symptoms": 1,
            "alerts": 1,
        }

    def test_json(self, tmp_path):
        path = tmp_path / "clinic_export.json"
        path.write_text(json.dumps({
            "medications": [{"name": "Carvedilol", "periods": [{"start": "2025-01-02", "dosage": "3.125"}]}],
        }))
        records = parse_patient_log(path)
        assert records.source == "clinic_export"
        assert records.medications[0].category is None
        assert records.vitals == []

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        records = parse_patient_log(path)
        assert records.source == "empty"
        assert records.counts()["medications"] == 0


class TestValidation:
    def test_unknown_symptom(self):
        with pytest.raises(ValueError, match="symptoms\\[0\\].*headache"):
            parse_patient_log_data({"symptoms": [{"date": "2025-01-01", "type": "headache"}]}, "s")

    def test_unknown_alert(self):
        with pytest.raises(ValueError, match="alerts\\[0\\]"):
            parse_patient_log_data(
                {"alerts": [{"type": "fever", "triggered_at": "2025-01-01T00:00:00"}]}, "s",
            )

    def test_severity_range(self):
        with pytest.raises(ValueError, match="severity 7"):
            parse_patient_log_data(
                {"symptoms": [{"date": "2025-01-01", "type": "dizziness", "severity": 7}]}, "s",
            )

    def test_unknown_category(self):
        with pytest.raises(ValueError, match="unknown category 'statin'"):
            parse_patient_log_data({"medications": [{"name": "Atorvastatin", "category": "statin"}]}, "s")

    def test_missing_date(self):
        with pytest.raises(ValueError, match="vitals\\[0\\]"):
            parse_patient_log_data({"vitals": [{"systolic": 120}]}, "s")

    def test_not_a_mapping(self):
        with pytest.raises(ValueError):
            parse_patient_log_data(["not", "a", "mapping"], "s")

    @pytest.mark.parametrize("value", ["20250110", "2025-W02-5"])
    def test_non_canonical_period_date(self, value):
        with pytest.raises(ValueError, match="expected YYYY-MM-DD"):
            parse_patient_log_data(
                {"medications": [{"name": "Carvedilol", "periods": [{"start": value}]}]}, "s",
            )

    def test_non_canonical_stream_dates(self):
        with pytest.raises(ValueError, match="vitals\\[0\\]"):
            parse_patient_log_data({"vitals": [{"date": "20250105", "systolic": 90}]}, "s")
        with pytest.raises(ValueError, match="symptoms\\[0\\]"):
            parse_patient_log_data(
                {"symptoms": [{"date": "2025-W01-7", "type": "dizziness", "severity": 2}]}, "s",
            )
        with pytest.raises(ValueError, match="alerts\\[0\\]"):
            parse_patient_log_data(
                {"alerts": [{"type": "heart_rate_low", "triggered_at": "20250105T07:00:00"}]}, "s",
            )

    def test_unquoted_compact_date_in_yaml(self, tmp_path):
        # YAML reads 20250110 as an integer
        path = tmp_path / "log.yaml"
        path.write_text("vitals:\n  - {date: 20250110, heart_rate: 60}\n")
        with pytest.raises(ValueError, match="vitals\\[0\\]"):
            parse_patient_log(path)

    def test_timestamp_string_keeps_date(self):
        records = parse_patient_log_data(
            {"vitals": [{"date": "2025-01-05T07:30:00", "heart_rate": 60}]}, "s",
        )
        assert records.vitals[0].reading_date == "2025-01-05"
