"""Change detection — turn a dosage timeline into discrete change events."""

from __future__ import annotations

import logging
import math

from dosefold.models import (
    CHANGE_DISCONTINUED,
    CHANGE_DOSE_INCREASE,
    CHANGE_DOSE_REDUCTION,
    CHANGE_SCHEDULE,
    CHANGE_STARTED,
    ChangeEvent,
    DosagePeriod,
    MedicationRecord,
)

logger = logging.getLogger(__name__)


def parse_dosage_value(dosage: str) -> float | None:
    """Parse dosage text as a number for comparison.

    Combination dosages like "49/51" compare on the first component.
    Returns None if not parseable.
    """
    if not dosage:
        return None
    text = dosage.strip()
    if "/" in text:
        first = text.split("/", 1)[0].strip()
        value = _to_float(first)
        if value is not None:
            return value
    return _to_float(text)


def _to_float(text: str) -> float | None:
    try:
        value = float(text)
    except (ValueError, TypeError):
        return None
    return value if math.isfinite(value) else None


def classify_transition(previous: DosagePeriod, current: DosagePeriod) -> str:
    """Decide the change kind between two consecutive periods.

    1. Both dosages numeric and different -> increase / reduction.
    2. Dosage text or unit differs -> lexical comparison of the dosage text.
       This is a text ordering, not a clinical one ("9" sorts after "10").
    3. Otherwise -> schedule change.
    """
    prev_value = parse_dosage_value(previous.dosage)
    curr_value = parse_dosage_value(current.dosage)

    if prev_value is not None and curr_value is not None:
        if curr_value < prev_value:
            return CHANGE_DOSE_REDUCTION
        if curr_value > prev_value:
            return CHANGE_DOSE_INCREASE

    if previous.dosage != current.dosage or previous.unit != current.unit:
        if current.dosage < previous.dosage:
            return CHANGE_DOSE_REDUCTION
        if current.dosage > previous.dosage:
            return CHANGE_DOSE_INCREASE

    return CHANGE_SCHEDULE


def detect_changes(
    medication: MedicationRecord,
    start_date: str,
    end_date: str,
) -> list[ChangeEvent]:
    """Find every change event of a medication within [start_date, end_date].

    Periods are expected to be disjoint and chronologically ordered; they
    are sorted by start date here but overlaps are not checked.

    - First period starting in range -> started
    - Later period starting in range -> increase / reduction / schedule change
    - Last period ending in range on an inactive medication -> discontinued
    """
    if not medication.periods:
        return []

    periods = sorted(medication.periods, key=lambda p: p.start_date)
    last_index = len(periods) - 1
    events: list[ChangeEvent] = []

    for index, period in enumerate(periods):
        if start_date <= period.start_date <= end_date:
            if index == 0:
                events.append(ChangeEvent(
                    date=period.start_date,
                    kind=CHANGE_STARTED,
                    previous_dosage=None,
                    new_dosage=period.dosage_display,
                ))
            else:
                previous = periods[index - 1]
                events.append(ChangeEvent(
                    date=period.start_date,
                    kind=classify_transition(previous, period),
                    previous_dosage=previous.dosage_display,
                    new_dosage=period.dosage_display,
                ))

        ended_in_range = (
            period.end_date is not None and start_date <= period.end_date <= end_date
        )
        if ended_in_range and index == last_index and not medication.is_active:
            events.append(ChangeEvent(
                date=period.end_date,
                kind=CHANGE_DISCONTINUED,
                previous_dosage=period.dosage_display,
                new_dosage=None,
            ))

    logger.debug("%s: %d change event(s) in %s..%s", medication.name, len(events),
                 start_date, end_date)
    return events
