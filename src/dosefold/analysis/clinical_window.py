"""Clinical window aggregation — summarize the days leading up to a change.

For a change on date D and a lookback of N days, only records dated in
[D - N, D] (inclusive) are considered. The window bounds are enforced here,
whatever the data source hands back.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Protocol

from dosefold.config import DEFAULT_THRESHOLDS, AnalysisThresholds
from dosefold.models import (
    ALERT_TYPES,
    SYMPTOM_TYPES,
    AlertRecord,
    SymptomReport,
    VitalsReading,
    format_display_date,
    mean_arterial_pressure,
)

logger = logging.getLogger(__name__)


class ClinicalSource(Protocol):
    """Anything that can answer inclusive date-range queries for clinical signals."""

    def vitals_between(self, start: str, end: str) -> list[VitalsReading]: ...

    def symptoms_between(self, start: str, end: str) -> list[SymptomReport]: ...

    def alerts_between(self, start: str, end: str) -> list[AlertRecord]: ...


@dataclass(frozen=True)
class VitalsSummary:
    """Averages and low-value day counts over a window."""

    average_systolic: int | None = None
    average_diastolic: int | None = None
    average_heart_rate: int | None = None
    bp_reading_count: int = 0
    hr_reading_count: int = 0
    low_bp_days: int = 0
    low_hr_days: int = 0
    low_map_days: int = 0

    @property
    def reading_count(self) -> int:
        return max(self.bp_reading_count, self.hr_reading_count)

    @property
    def formatted_average_bp(self) -> str | None:
        if self.average_systolic is None or self.average_diastolic is None:
            return None
        return f"{self.average_systolic}/{self.average_diastolic} mmHg"

    @property
    def formatted_average_hr(self) -> str | None:
        if self.average_heart_rate is None:
            return None
        return f"{self.average_heart_rate} bpm"


@dataclass(frozen=True)
class SymptomSummary:
    """Per-symptom aggregate over a window."""

    symptom_type: str
    days_reported: int
    max_severity: int
    average_severity: float

    @property
    def display_name(self) -> str:
        return SYMPTOM_TYPES.get(self.symptom_type, self.symptom_type)

    def is_notable(self, thresholds: AnalysisThresholds = DEFAULT_THRESHOLDS) -> bool:
        if self.max_severity >= thresholds.notable_symptom_severity:
            return True
        return (
            self.days_reported >= thresholds.notable_symptom_days
            and self.max_severity >= thresholds.min_reported_severity
        )

    def is_severe(self, thresholds: AnalysisThresholds = DEFAULT_THRESHOLDS) -> bool:
        return self.max_severity >= thresholds.severe_symptom_severity


@dataclass(frozen=True)
class AlertSummary:
    """Alerts of one type within a window."""

    alert_type: str
    count: int
    most_recent: str  # ISO datetime

    @property
    def display_name(self) -> str:
        return ALERT_TYPES.get(self.alert_type, self.alert_type)

    @property
    def formatted_date(self) -> str:
        return format_display_date(self.most_recent)


@dataclass(frozen=True)
class ClinicalWindow:
    """Everything aggregated for one change event."""

    start_date: str
    end_date: str
    vitals: VitalsSummary = field(default_factory=VitalsSummary)
    symptoms: dict[str, SymptomSummary] = field(default_factory=dict)
    alerts: list[AlertSummary] = field(default_factory=list)

    def symptom(self, symptom_type: str) -> SymptomSummary | None:
        return self.symptoms.get(symptom_type)


def window_bounds(event_date: str, lookback_days: int) -> tuple[str, str]:
    """Return the inclusive (start, end) ISO dates of the lookback window."""
    end = date.fromisoformat(event_date)
    start = end - timedelta(days=lookback_days)
    return start.isoformat(), end.isoformat()


def _int_mean(values: list[int]) -> int | None:
    if not values:
        return None
    return int(sum(values) / len(values))


def summarize_vitals(
    readings: list[VitalsReading],
    thresholds: AnalysisThresholds = DEFAULT_THRESHOLDS,
) -> VitalsSummary:
    """Average BP/HR and count low-value days. Missing fields are skipped, never zero."""
    systolic: list[int] = []
    diastolic: list[int] = []
    heart_rates: list[int] = []
    low_bp_days = low_hr_days = low_map_days = 0

    for r in readings:
        if r.systolic_bp is not None and r.diastolic_bp is not None:
            systolic.append(r.systolic_bp)
            diastolic.append(r.diastolic_bp)
            if r.systolic_bp < thresholds.low_systolic_bp:
                low_bp_days += 1
            if mean_arterial_pressure(r.systolic_bp, r.diastolic_bp) < thresholds.low_map:
                low_map_days += 1

        if r.heart_rate is not None:
            heart_rates.append(r.heart_rate)
            if r.heart_rate < thresholds.low_heart_rate:
                low_hr_days += 1

    return VitalsSummary(
        average_systolic=_int_mean(systolic),
        average_diastolic=_int_mean(diastolic),
        average_heart_rate=_int_mean(heart_rates),
        bp_reading_count=len(systolic),
        hr_reading_count=len(heart_rates),
        low_bp_days=low_bp_days,
        low_hr_days=low_hr_days,
        low_map_days=low_map_days,
    )


def summarize_symptoms(reports: list[SymptomReport]) -> dict[str, SymptomSummary]:
    """Group reports by symptom type: distinct days, max and mean severity."""
    days: dict[str, set[str]] = {}
    severities: dict[str, list[int]] = {}
    for r in reports:
        days.setdefault(r.symptom_type, set()).add(r.report_date)
        severities.setdefault(r.symptom_type, []).append(r.severity)

    return {
        symptom_type: SymptomSummary(
            symptom_type=symptom_type,
            days_reported=len(days[symptom_type]),
            max_severity=max(values),
            average_severity=sum(values) / len(values),
        )
        for symptom_type, values in severities.items()
    }


def summarize_alerts(alerts: list[AlertRecord]) -> list[AlertSummary]:
    """Group alerts by type keeping the most recent timestamp, newest first."""
    grouped: dict[str, list[str]] = {}
    for a in alerts:
        grouped.setdefault(a.alert_type, []).append(a.triggered_at)

    summaries = [
        AlertSummary(alert_type=alert_type, count=len(stamps), most_recent=max(stamps))
        for alert_type, stamps in grouped.items()
    ]
    summaries.sort(key=lambda s: s.most_recent, reverse=True)
    return summaries


def aggregate_window(
    source: ClinicalSource,
    event_date: str,
    thresholds: AnalysisThresholds = DEFAULT_THRESHOLDS,
) -> ClinicalWindow:
    """Fetch and summarize vitals, symptoms and alerts preceding a change."""
    start, end = window_bounds(event_date, thresholds.lookback_days)

    vitals = [v for v in source.vitals_between(start, end) if start <= v.reading_date <= end]
    symptoms = [s for s in source.symptoms_between(start, end) if start <= s.report_date <= end]
    alerts = [a for a in source.alerts_between(start, end) if start <= a.triggered_date <= end]

    logger.debug(
        "Window %s..%s: %d vitals, %d symptom reports, %d alerts",
        start, end, len(vitals), len(symptoms), len(alerts),
    )

    return ClinicalWindow(
        start_date=start,
        end_date=end,
        vitals=summarize_vitals(vitals, thresholds),
        symptoms=summarize_symptoms(symptoms),
        alerts=summarize_alerts(alerts),
    )
