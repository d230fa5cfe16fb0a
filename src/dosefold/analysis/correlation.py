"""Medication change correlation: the analysis entry point.

For every medication and every dosage change in the requested range, look
at the lookback window before the change and report what the patient's
vitals, symptoms and alerts looked like. Works on an already-fetched
Snapshot and performs no I/O.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor

from dosefold.analysis.changes import detect_changes
from dosefold.analysis.clinical_window import ClinicalSource, aggregate_window
from dosefold.analysis.observations import context_message_for, generate_observations
from dosefold.analysis.relevance import classify_medication, has_classification_signal
from dosefold.config import DEFAULT_THRESHOLDS, AnalysisThresholds
from dosefold.knowledge import KnowledgeBase, load_knowledge
from dosefold.models import (
    ChangeEvent,
    MedicationChangeInsight,
    MedicationRecord,
    Snapshot,
    SnapshotIntegrityError,
    is_canonical_date,
)

logger = logging.getLogger(__name__)


def _check_iso_date(value: str, what: str) -> None:
    # Dates are compared as strings, so only YYYY-MM-DD itself is accepted
    if not is_canonical_date(value):
        raise SnapshotIntegrityError(f"{what}: '{value}' is not an ISO date (YYYY-MM-DD)")


def validate_snapshot(snapshot: Snapshot) -> None:
    """Reject snapshots that would produce misleading output.

    Raises SnapshotIntegrityError naming the offending record when a date
    is not in YYYY-MM-DD form or a dosage period starts after it ends.
    """
    for v in snapshot.vitals:
        _check_iso_date(v.reading_date, "Vitals reading date")
    for s in snapshot.symptoms:
        _check_iso_date(s.report_date, f"{s.symptom_type} report date")
    for a in snapshot.alerts:
        _check_iso_date(a.triggered_date, f"{a.alert_type} alert date")

    for med in snapshot.medications:
        for i, period in enumerate(med.periods):
            where = f"{med.name} period #{i + 1}"
            _check_iso_date(period.start_date, f"{where} start date")
            if period.end_date is None:
                continue
            _check_iso_date(period.end_date, f"{where} end date")
            if period.start_date > period.end_date:
                raise SnapshotIntegrityError(
                    f"{where} starts {period.start_date} after it ends {period.end_date}; "
                    f"the medication store holds an inconsistent dosage history"
                )


def analyze_change(
    medication: MedicationRecord,
    event: ChangeEvent,
    source: ClinicalSource,
    knowledge: KnowledgeBase,
    thresholds: AnalysisThresholds = DEFAULT_THRESHOLDS,
) -> MedicationChangeInsight:
    """Correlate one change event with the clinical window before it."""
    profile = classify_medication(medication, knowledge)
    window = aggregate_window(source, event.date, thresholds)
    observations = generate_observations(window, profile, medication.category, thresholds)

    return MedicationChangeInsight(
        medication_name=medication.name,
        category=medication.category,
        change_event=event,
        observations=tuple(observations),
        context_message=context_message_for(
            observations, medication.category, medication.name, knowledge
        ),
    )


def analyze_medication(
    medication: MedicationRecord,
    source: ClinicalSource,
    start_date: str,
    end_date: str,
    knowledge: KnowledgeBase,
    thresholds: AnalysisThresholds = DEFAULT_THRESHOLDS,
) -> list[MedicationChangeInsight]:
    """All insights for one medication, in change-detection order."""
    if not has_classification_signal(medication, knowledge):
        logger.debug("Skipping %s: no known effects and no category", medication.name)
        return []

    return [
        analyze_change(medication, event, source, knowledge, thresholds)
        for event in detect_changes(medication, start_date, end_date)
    ]


def analyze_changes(
    snapshot: Snapshot,
    start_date: str,
    end_date: str,
    knowledge: KnowledgeBase | None = None,
    thresholds: AnalysisThresholds | None = None,
    max_workers: int = 1,
) -> list[MedicationChangeInsight]:
    """Analyze every medication change in [start_date, end_date].

    Args:
        snapshot: Medications (ordered by name) and clinical signals.
        start_date: First ISO date of the analysis range.
        end_date: Last ISO date of the analysis range.
        knowledge: Knowledge table; the bundled one if omitted.
        thresholds: Analysis thresholds; defaults if omitted.
        max_workers: Fan out per-medication analyses over this many threads.

    Returns insights sorted by change date, most recent first. Ties keep
    medication order.
    """
    _check_iso_date(start_date, "Analysis start date")
    _check_iso_date(end_date, "Analysis end date")
    if start_date > end_date:
        raise SnapshotIntegrityError(
            f"Analysis range starts {start_date} after it ends {end_date}"
        )
    validate_snapshot(snapshot)

    knowledge = knowledge or load_knowledge()
    thresholds = thresholds or DEFAULT_THRESHOLDS

    def run(med: MedicationRecord) -> list[MedicationChangeInsight]:
        return analyze_medication(med, snapshot, start_date, end_date, knowledge, thresholds)

    if max_workers > 1 and len(snapshot.medications) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            per_medication = list(executor.map(run, snapshot.medications))
    else:
        per_medication = [run(med) for med in snapshot.medications]

    # Merge in medication order, then stable sort by date
    insights = [insight for group in per_medication for insight in group]
    insights.sort(key=lambda i: i.change_event.date, reverse=True)

    logger.info(
        "Analyzed %d medication(s) for %s..%s: %d insight(s)",
        len(snapshot.medications), start_date, end_date, len(insights),
    )
    return insights
