"""Data model for medication timelines, clinical signals and derived insights.

Stored records (medications, dosage periods, vitals, symptoms, alerts) map
1:1 to SQLite tables. Derived records (change events, relevance profiles,
observations, insights) are recomputed on every analysis run and never
persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date

# --- Change kinds ---

CHANGE_STARTED = "started"
CHANGE_DOSE_INCREASE = "dose_increase"
CHANGE_DOSE_REDUCTION = "dose_reduction"
CHANGE_SCHEDULE = "schedule_change"
CHANGE_DISCONTINUED = "discontinued"

CHANGE_KINDS = (
    CHANGE_STARTED,
    CHANGE_DOSE_INCREASE,
    CHANGE_DOSE_REDUCTION,
    CHANGE_SCHEDULE,
    CHANGE_DISCONTINUED,
)

CHANGE_LABELS = {
    CHANGE_STARTED: "Started",
    CHANGE_DOSE_INCREASE: "Dose increase",
    CHANGE_DOSE_REDUCTION: "Dose reduction",
    CHANGE_SCHEDULE: "Schedule change",
    CHANGE_DISCONTINUED: "Discontinued",
}

# --- Medication categories ---

CATEGORY_LOOP_DIURETIC = "loop_diuretic"
CATEGORY_THIAZIDE_DIURETIC = "thiazide_diuretic"
CATEGORY_BETA_BLOCKER = "beta_blocker"
CATEGORY_ACE_INHIBITOR = "ace_inhibitor"
CATEGORY_ARB = "arb"
CATEGORY_ARNI = "arni"
CATEGORY_MRA = "mra"
CATEGORY_SGLT2_INHIBITOR = "sglt2_inhibitor"
CATEGORY_OTHER = "other"

CATEGORIES = (
    CATEGORY_LOOP_DIURETIC,
    CATEGORY_THIAZIDE_DIURETIC,
    CATEGORY_BETA_BLOCKER,
    CATEGORY_ACE_INHIBITOR,
    CATEGORY_ARB,
    CATEGORY_ARNI,
    CATEGORY_MRA,
    CATEGORY_SGLT2_INHIBITOR,
    CATEGORY_OTHER,
)

# --- Symptoms (severity 1-5: none, mild, moderate, significant, severe) ---

SYMPTOM_TYPES = {
    "dyspnea_at_rest": "Shortness of breath at rest",
    "dyspnea_on_exertion": "Shortness of breath with activity",
    "orthopnea": "Difficulty breathing lying flat",
    "pnd": "Waking up short of breath",
    "chest_pain": "Chest discomfort",
    "dizziness": "Feeling dizzy or lightheaded",
    "syncope": "Fainting or near-fainting",
    "reduced_urine_output": "Less urine than usual",
}

MIN_SEVERITY = 1
MAX_SEVERITY = 5

# --- Alerts ---

ALERT_TYPES = {
    "weight_gain_24h": "Weight change in 24 hours",
    "weight_gain_7d": "Weight change over 7 days",
    "heart_rate_low": "Low heart rate",
    "heart_rate_high": "High heart rate",
    "severe_symptom": "Symptom needs attention",
    "dizziness_bp_check": "Blood pressure check suggested",
    "low_oxygen_saturation": "Low oxygen level",
    "low_blood_pressure": "Low blood pressure",
    "low_map": "Low blood pressure",
}

# --- Observations ---

OBS_AVERAGE_BP = "average_bp"
OBS_AVERAGE_HR = "average_hr"
OBS_LOW_BP = "low_blood_pressure"
OBS_LOW_HR = "low_heart_rate"
OBS_LOW_MAP = "low_map"
OBS_DIZZINESS = "dizziness"
OBS_SYNCOPE = "syncope"
OBS_REDUCED_URINE = "reduced_urine_output"
OBS_ALERT = "alert"
OBS_LAB_DISCLOSURE = "untracked_labs"

SEVERITY_INFORMATIONAL = "informational"
SEVERITY_NOTABLE = "notable"
SEVERITY_SIGNIFICANT = "significant"

SEVERITY_RANK = {
    SEVERITY_INFORMATIONAL: 1,
    SEVERITY_NOTABLE: 2,
    SEVERITY_SIGNIFICANT: 3,
}


def mean_arterial_pressure(systolic: int, diastolic: int) -> int:
    """MAP = DBP + (SBP - DBP) / 3 with truncating integer division.

    120/80 -> 93, 87/45 -> 59.
    """
    return diastolic + int((systolic - diastolic) / 3)


class SnapshotIntegrityError(ValueError):
    """Raised when a snapshot violates a data-integrity rule (e.g. start > end)."""


@dataclass
class DosagePeriod:
    """One continuous interval a medication was taken at a fixed dosage."""

    start_date: str  # ISO YYYY-MM-DD
    dosage: str = ""  # "40", "49/51", "0.5"
    unit: str = ""  # mg, mcg, mL, g, units
    schedule: str = ""  # Once daily, Twice daily, ...
    end_date: str | None = None  # None = currently active

    @property
    def dosage_display(self) -> str:
        """Dosage with unit and schedule, e.g. "40 mg Twice daily"."""
        return " ".join(p for p in (self.dosage, self.unit, self.schedule) if p)

    @property
    def is_current(self) -> bool:
        return self.end_date is None


@dataclass
class MedicationRecord:
    """A tracked medication and its dosage history."""

    name: str
    category: str | None = None  # one of CATEGORIES
    is_active: bool = True
    is_diuretic: bool = False
    periods: list[DosagePeriod] = field(default_factory=list)


@dataclass
class VitalsReading:
    """One day's vital signs. Any field may be missing."""

    reading_date: str  # ISO YYYY-MM-DD
    systolic_bp: int | None = None
    diastolic_bp: int | None = None
    heart_rate: int | None = None
    oxygen_saturation: int | None = None

    @property
    def mean_arterial_pressure(self) -> int | None:
        if self.systolic_bp is None or self.diastolic_bp is None:
            return None
        return mean_arterial_pressure(self.systolic_bp, self.diastolic_bp)

    @property
    def has_blood_pressure(self) -> bool:
        return self.systolic_bp is not None and self.diastolic_bp is not None


@dataclass
class SymptomReport:
    """A symptom severity report (1-5)."""

    report_date: str  # ISO YYYY-MM-DD
    symptom_type: str  # key of SYMPTOM_TYPES
    severity: int = MIN_SEVERITY


@dataclass
class AlertRecord:
    """An entry from the append-only alert log."""

    alert_type: str  # key of ALERT_TYPES
    triggered_at: str  # ISO YYYY-MM-DDTHH:MM:SS

    @property
    def triggered_date(self) -> str:
        return self.triggered_at[:10]


@dataclass
class SnapshotRecords:
    """Container for everything a single import produces.

    Pass to DosefoldDB.load_records() to insert into the database.
    """

    source: str
    medications: list[MedicationRecord] = field(default_factory=list)
    vitals: list[VitalsReading] = field(default_factory=list)
    symptoms: list[SymptomReport] = field(default_factory=list)
    alerts: list[AlertRecord] = field(default_factory=list)

    def counts(self) -> dict[str, int]:
        """Return record counts per table, matching the keys from db.load_records()."""
        return {
            "medications": len(self.medications),
            "dosage_periods": sum(len(m.periods) for m in self.medications),
            "vitals": len(self.vitals),
            "symptoms": len(self.symptoms),
            "alerts": len(self.alerts),
        }


@dataclass(frozen=True)
class Snapshot:
    """Immutable, already-fetched input for one analysis run.

    Medications are ordered by name; clinical streams are queried by
    inclusive ISO date range.
    """

    medications: tuple[MedicationRecord, ...] = ()
    vitals: tuple[VitalsReading, ...] = ()
    symptoms: tuple[SymptomReport, ...] = ()
    alerts: tuple[AlertRecord, ...] = ()

    @classmethod
    def from_records(cls, records: SnapshotRecords) -> Snapshot:
        return cls(
            medications=tuple(sorted(records.medications, key=lambda m: m.name)),
            vitals=tuple(records.vitals),
            symptoms=tuple(records.symptoms),
            alerts=tuple(records.alerts),
        )

    def vitals_between(self, start: str, end: str) -> list[VitalsReading]:
        return [v for v in self.vitals if start <= v.reading_date <= end]

    def symptoms_between(self, start: str, end: str) -> list[SymptomReport]:
        return [s for s in self.symptoms if start <= s.report_date <= end]

    def alerts_between(self, start: str, end: str) -> list[AlertRecord]:
        return [a for a in self.alerts if start <= a.triggered_date <= end]


@dataclass(frozen=True)
class ChangeEvent:
    """A detected transition in a medication's dosage timeline."""

    date: str  # ISO YYYY-MM-DD
    kind: str  # one of CHANGE_KINDS
    previous_dosage: str | None = None
    new_dosage: str | None = None

    @property
    def label(self) -> str:
        return CHANGE_LABELS[self.kind]

    @property
    def description(self) -> str:
        if self.kind in (CHANGE_DOSE_INCREASE, CHANGE_DOSE_REDUCTION):
            if self.previous_dosage and self.new_dosage:
                return f"{self.previous_dosage} → {self.new_dosage}"
            return self.label
        if self.kind == CHANGE_DISCONTINUED:
            if self.previous_dosage:
                return f"{self.previous_dosage} → Discontinued"
            return "Discontinued"
        if self.kind == CHANGE_STARTED:
            if self.new_dosage:
                return f"Started at {self.new_dosage}"
            return "Started"
        return "Schedule changed"


@dataclass(frozen=True)
class Effects:
    """Pharmacological effects relevant to vital-sign monitoring."""

    lowers_bp: bool = False
    lowers_hr: bool = False
    diuretic: bool = False

    @property
    def description(self) -> str:
        names = [n for n, on in (("BP", self.lowers_bp), ("HR", self.lowers_hr),
                                 ("diuretic", self.diuretic)) if on]
        return ", ".join(names) if names else "none"


@dataclass(frozen=True)
class RelevanceProfile:
    """Which physiological parameters are worth checking for a medication."""

    check_bp: bool = False
    check_hr: bool = False
    check_urine_output: bool = False

    @property
    def is_empty(self) -> bool:
        return not (self.check_bp or self.check_hr or self.check_urine_output)


@dataclass(frozen=True)
class ClinicalObservation:
    """One severity-tagged finding from a lookback window."""

    type: str  # one of the OBS_* constants
    description: str
    severity: str  # informational, notable, significant

    @property
    def rank(self) -> int:
        return SEVERITY_RANK[self.severity]


@dataclass(frozen=True)
class MedicationChangeInsight:
    """A change event paired with the clinical context that preceded it."""

    medication_name: str
    category: str | None
    change_event: ChangeEvent
    observations: tuple[ClinicalObservation, ...] = ()
    context_message: str | None = None

    @property
    def change_date(self) -> str:
        return self.change_event.date

    @property
    def change_description(self) -> str:
        return self.change_event.description

    @property
    def has_observations(self) -> bool:
        return bool(self.observations)

    @property
    def highest_severity(self) -> str | None:
        if not self.observations:
            return None
        return max(self.observations, key=lambda o: o.rank).severity

    def to_dict(self) -> dict:
        """Plain dict for JSON output (MCP tools, CLI --json)."""
        return {
            "medication_name": self.medication_name,
            "category": self.category,
            "change_date": self.change_event.date,
            "change_type": self.change_event.kind,
            "previous_dosage": self.change_event.previous_dosage,
            "new_dosage": self.change_event.new_dosage,
            "change_description": self.change_description,
            "observations": [
                {"type": o.type, "description": o.description, "severity": o.severity}
                for o in self.observations
            ],
            "context_message": self.context_message,
        }


def is_canonical_date(value) -> bool:
    """True only for a valid date spelled YYYY-MM-DD.

    date.fromisoformat also takes "20250110" and "2025-W02-5", which break
    string ordering against other ISO dates.
    """
    if not isinstance(value, str):
        return False
    try:
        return date.fromisoformat(value).isoformat() == value
    except ValueError:
        return False


def format_display_date(iso_date: str) -> str:
    """'2025-01-15' -> 'Jan 15, 2025'."""
    d = date.fromisoformat(iso_date[:10])
    return f"{d.strftime('%b')} {d.day}, {d.year}"
