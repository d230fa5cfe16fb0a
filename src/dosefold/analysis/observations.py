"""Observation generation — turn a clinical window into severity-tagged findings."""

from __future__ import annotations

from dosefold.analysis.clinical_window import ClinicalWindow, SymptomSummary
from dosefold.config import DEFAULT_THRESHOLDS, AnalysisThresholds
from dosefold.knowledge import KnowledgeBase
from dosefold.models import (
    CATEGORY_MRA,
    OBS_ALERT,
    OBS_AVERAGE_BP,
    OBS_AVERAGE_HR,
    OBS_DIZZINESS,
    OBS_LAB_DISCLOSURE,
    OBS_LOW_BP,
    OBS_LOW_HR,
    OBS_LOW_MAP,
    OBS_REDUCED_URINE,
    OBS_SYNCOPE,
    SEVERITY_INFORMATIONAL,
    SEVERITY_NOTABLE,
    SEVERITY_SIGNIFICANT,
    ClinicalObservation,
    RelevanceProfile,
)

BP_ALERT_TYPES = frozenset({"low_blood_pressure", "low_map", "dizziness_bp_check"})
HR_ALERT_TYPES = frozenset({"heart_rate_low"})

LAB_DISCLOSURE = "Lab values (potassium, kidney function) are not tracked by this tool"


def _days(n: int) -> str:
    return f"{n} day{'' if n == 1 else 's'}"


def _symptom_description(label: str, summary: SymptomSummary) -> str:
    return (
        f"{label} reported at severity {summary.max_severity} "
        f"on {_days(summary.days_reported)}"
    )


def _vitals_observations(
    window: ClinicalWindow,
    profile: RelevanceProfile,
    t: AnalysisThresholds,
) -> list[ClinicalObservation]:
    vitals = window.vitals
    observations = []

    if profile.check_bp:
        avg_bp = vitals.formatted_average_bp
        if avg_bp and vitals.bp_reading_count > 0:
            low = vitals.average_systolic < t.low_systolic_bp
            n = vitals.bp_reading_count
            observations.append(ClinicalObservation(
                type=OBS_AVERAGE_BP,
                description=(
                    f"Blood pressure readings averaged {avg_bp} "
                    f"({n} reading{'' if n == 1 else 's'})"
                ),
                severity=SEVERITY_NOTABLE if low else SEVERITY_INFORMATIONAL,
            ))

        if vitals.low_bp_days > 0:
            observations.append(ClinicalObservation(
                type=OBS_LOW_BP,
                description=(
                    f"Systolic BP below {t.low_systolic_bp} mmHg on {_days(vitals.low_bp_days)}"
                ),
                severity=(
                    SEVERITY_SIGNIFICANT
                    if vitals.low_bp_days >= t.significant_day_count
                    else SEVERITY_NOTABLE
                ),
            ))

        if vitals.low_map_days > 0:
            observations.append(ClinicalObservation(
                type=OBS_LOW_MAP,
                description=(
                    f"Mean arterial pressure below {t.low_map} mmHg on {_days(vitals.low_map_days)}"
                ),
                severity=SEVERITY_SIGNIFICANT,
            ))

    if profile.check_hr:
        avg_hr = vitals.formatted_average_hr
        if avg_hr and vitals.hr_reading_count > 0:
            low = vitals.average_heart_rate < t.low_heart_rate
            observations.append(ClinicalObservation(
                type=OBS_AVERAGE_HR,
                description=f"Heart rate averaged {avg_hr}",
                severity=SEVERITY_NOTABLE if low else SEVERITY_INFORMATIONAL,
            ))

        if vitals.low_hr_days > 0:
            observations.append(ClinicalObservation(
                type=OBS_LOW_HR,
                description=(
                    f"Heart rate below {t.low_heart_rate} bpm on {_days(vitals.low_hr_days)}"
                ),
                severity=(
                    SEVERITY_SIGNIFICANT
                    if vitals.low_hr_days >= t.significant_day_count
                    else SEVERITY_NOTABLE
                ),
            ))

    return observations


def _symptom_observations(
    window: ClinicalWindow,
    profile: RelevanceProfile,
    t: AnalysisThresholds,
) -> list[ClinicalObservation]:
    observations = []

    if profile.check_bp or profile.check_hr:
        dizziness = window.symptom("dizziness")
        if dizziness and dizziness.is_notable(t):
            observations.append(ClinicalObservation(
                type=OBS_DIZZINESS,
                description=_symptom_description("Dizziness", dizziness),
                severity=SEVERITY_SIGNIFICANT if dizziness.is_severe(t) else SEVERITY_NOTABLE,
            ))

        syncope = window.symptom("syncope")
        if syncope and syncope.days_reported > 0 and syncope.max_severity >= t.syncope_min_severity:
            observations.append(ClinicalObservation(
                type=OBS_SYNCOPE,
                description=_symptom_description("Fainting/near-fainting", syncope),
                severity=SEVERITY_SIGNIFICANT,
            ))

    if profile.check_urine_output:
        urine = window.symptom("reduced_urine_output")
        if urine and urine.is_notable(t):
            observations.append(ClinicalObservation(
                type=OBS_REDUCED_URINE,
                description=_symptom_description("Reduced urine output", urine),
                severity=SEVERITY_SIGNIFICANT if urine.is_severe(t) else SEVERITY_NOTABLE,
            ))

    return observations


def _alert_observations(window: ClinicalWindow, profile: RelevanceProfile) -> list[ClinicalObservation]:
    observations = []
    for summary in window.alerts:
        if summary.alert_type in BP_ALERT_TYPES:
            relevant = profile.check_bp
        elif summary.alert_type in HR_ALERT_TYPES:
            relevant = profile.check_hr
        else:
            relevant = False

        if relevant:
            observations.append(ClinicalObservation(
                type=OBS_ALERT,
                description=f"{summary.display_name} alert triggered on {summary.formatted_date}",
                severity=SEVERITY_NOTABLE,
            ))
    return observations


def generate_observations(
    window: ClinicalWindow,
    profile: RelevanceProfile,
    category: str | None = None,
    thresholds: AnalysisThresholds = DEFAULT_THRESHOLDS,
) -> list[ClinicalObservation]:
    """Build the ordered observation list for one change event.

    Order: vitals (BP, MAP, HR), symptoms (dizziness, syncope, urine
    output), alerts. An MRA with nothing to report gets a single
    informational note that its lab values are not tracked.
    """
    observations = (
        _vitals_observations(window, profile, thresholds)
        + _symptom_observations(window, profile, thresholds)
        + _alert_observations(window, profile)
    )

    if category == CATEGORY_MRA and not observations:
        observations.append(ClinicalObservation(
            type=OBS_LAB_DISCLOSURE,
            description=LAB_DISCLOSURE,
            severity=SEVERITY_INFORMATIONAL,
        ))

    return observations


def context_message_for(
    observations: list[ClinicalObservation],
    category: str | None,
    medication_name: str,
    knowledge: KnowledgeBase,
) -> str | None:
    """Category (or effects) template, attached only when there is something to discuss."""
    if not observations:
        return None
    return knowledge.context_message(category, medication_name)
