"""Medication history — regimen at a date, regimen comparison, change timeline."""

from __future__ import annotations

from dataclasses import dataclass

from dosefold.analysis.changes import parse_dosage_value
from dosefold.knowledge import KnowledgeBase
from dosefold.models import MedicationRecord

EVENT_STARTED = "started"
EVENT_DOSE_CHANGED = "dose_changed"
EVENT_DISCONTINUED = "discontinued"
EVENT_REACTIVATED = "reactivated"

COMPARE_NO_CHANGE = "no_change"
COMPARE_INCREASED = "increased"
COMPARE_DECREASED = "decreased"
COMPARE_CHANGED = "changed"
COMPARE_STARTED = "started"
COMPARE_DISCONTINUED = "discontinued"

COMPARE_SYMBOLS = {
    COMPARE_NO_CHANGE: "—",
    COMPARE_INCREASED: "↑",
    COMPARE_DECREASED: "↓",
    COMPARE_CHANGED: "↔",
    COMPARE_STARTED: "+",
    COMPARE_DISCONTINUED: "−",
}


@dataclass(frozen=True)
class RegimenEntry:
    """A single medication as it was being taken on some date."""

    medication_name: str
    dosage: str
    unit: str
    schedule: str
    is_diuretic: bool
    category: str | None
    period_start: str

    @property
    def short_dosage(self) -> str:
        return " ".join(p for p in (self.dosage, self.unit) if p)


@dataclass(frozen=True)
class RegimenComparison:
    """How one medication differs between two regimens."""

    medication_name: str
    start_dosage: str
    end_dosage: str
    change: str  # one of the COMPARE_* constants
    category: str | None = None

    @property
    def has_changed(self) -> bool:
        return self.change != COMPARE_NO_CHANGE

    @property
    def symbol(self) -> str:
        return COMPARE_SYMBOLS[self.change]


@dataclass(frozen=True)
class TimelineEvent:
    """One entry in a medication's start/change/stop history."""

    date: str
    medication_name: str
    event_type: str  # one of the EVENT_* constants
    previous_dosage: str | None = None
    new_dosage: str | None = None
    category: str | None = None

    @property
    def description(self) -> str:
        if self.event_type == EVENT_STARTED:
            return f"Started at {self.new_dosage}" if self.new_dosage else "Started"
        if self.event_type == EVENT_DOSE_CHANGED:
            if self.previous_dosage and self.new_dosage:
                return f"{self.previous_dosage} → {self.new_dosage}"
            return "Dose changed"
        if self.event_type == EVENT_DISCONTINUED:
            return f"Stopped ({self.previous_dosage})" if self.previous_dosage else "Discontinued"
        return f"Resumed at {self.new_dosage}" if self.new_dosage else "Reactivated"


def _is_diuretic(med: MedicationRecord, knowledge: KnowledgeBase | None) -> bool:
    if med.is_diuretic:
        return True
    return knowledge is not None and knowledge.is_known_diuretic(med.name)


def regimen_as_of(
    medications: list[MedicationRecord] | tuple[MedicationRecord, ...],
    as_of: str,
    knowledge: KnowledgeBase | None = None,
) -> list[RegimenEntry]:
    """Medications being taken on a date, diuretics first, then by name."""
    entries = []
    for med in medications:
        period = next(
            (p for p in med.periods
             if p.start_date <= as_of and (p.end_date is None or p.end_date >= as_of)),
            None,
        )
        if period is None:
            continue
        entries.append(RegimenEntry(
            medication_name=med.name,
            dosage=period.dosage,
            unit=period.unit,
            schedule=period.schedule,
            is_diuretic=_is_diuretic(med, knowledge),
            category=med.category,
            period_start=period.start_date,
        ))

    entries.sort(key=lambda e: (not e.is_diuretic, e.medication_name.lower()))
    return entries


def compare_regimens(start: list[RegimenEntry], end: list[RegimenEntry]) -> list[RegimenComparison]:
    """Diff two regimens by medication name; changed entries sort first."""
    start_by_name = {e.medication_name: e for e in start}
    end_by_name = {e.medication_name: e for e in end}

    comparisons = []
    for name in sorted(set(start_by_name) | set(end_by_name)):
        before = start_by_name.get(name)
        after = end_by_name.get(name)

        if before and after:
            if before.dosage == after.dosage and before.unit == after.unit:
                change = COMPARE_NO_CHANGE
            else:
                v0 = parse_dosage_value(before.dosage)
                v1 = parse_dosage_value(after.dosage)
                if v0 is not None and v1 is not None and v0 != v1:
                    change = COMPARE_INCREASED if v1 > v0 else COMPARE_DECREASED
                else:
                    change = COMPARE_CHANGED
            comparisons.append(RegimenComparison(
                medication_name=name,
                start_dosage=before.short_dosage,
                end_dosage=after.short_dosage,
                change=change,
                category=before.category or after.category,
            ))
        elif after:
            comparisons.append(RegimenComparison(
                medication_name=name,
                start_dosage="Not taking",
                end_dosage=after.short_dosage,
                change=COMPARE_STARTED,
                category=after.category,
            ))
        else:
            comparisons.append(RegimenComparison(
                medication_name=name,
                start_dosage=before.short_dosage,
                end_dosage="Discontinued",
                change=COMPARE_DISCONTINUED,
                category=before.category,
            ))

    comparisons.sort(key=lambda c: (not c.has_changed, c.medication_name.lower()))
    return comparisons


def _timeline_for(med: MedicationRecord) -> list[TimelineEvent]:
    periods = sorted(med.periods, key=lambda p: p.start_date)
    if not periods:
        return []

    def short(p) -> str:
        return " ".join(x for x in (p.dosage, p.unit) if x)

    events = [TimelineEvent(
        date=periods[0].start_date,
        medication_name=med.name,
        event_type=EVENT_STARTED,
        new_dosage=short(periods[0]),
        category=med.category,
    )]

    for previous, period in zip(periods, periods[1:]):
        if previous.end_date is not None and previous.end_date != period.start_date:
            # Gap between periods: stopped, then resumed
            events.append(TimelineEvent(
                date=previous.end_date,
                medication_name=med.name,
                event_type=EVENT_DISCONTINUED,
                previous_dosage=short(previous),
                category=med.category,
            ))
            events.append(TimelineEvent(
                date=period.start_date,
                medication_name=med.name,
                event_type=EVENT_REACTIVATED,
                new_dosage=short(period),
                category=med.category,
            ))
        else:
            events.append(TimelineEvent(
                date=period.start_date,
                medication_name=med.name,
                event_type=EVENT_DOSE_CHANGED,
                previous_dosage=short(previous),
                new_dosage=short(period),
                category=med.category,
            ))

    last = periods[-1]
    if not med.is_active and last.end_date is not None:
        events.append(TimelineEvent(
            date=last.end_date,
            medication_name=med.name,
            event_type=EVENT_DISCONTINUED,
            previous_dosage=short(last),
            category=med.category,
        ))

    return events


def medication_timeline(
    medications: list[MedicationRecord] | tuple[MedicationRecord, ...],
    start_date: str | None = None,
    end_date: str | None = None,
) -> list[TimelineEvent]:
    """Start/change/stop events across all medications, most recent first.

    Args:
        medications: Medications with their dosage periods.
        start_date: Keep events on or after this ISO date.
        end_date: Keep events on or before this ISO date.
    """
    events = [e for med in medications for e in _timeline_for(med)]
    if start_date:
        events = [e for e in events if e.date >= start_date]
    if end_date:
        events = [e for e in events if e.date <= end_date]
    events.sort(key=lambda e: e.date, reverse=True)
    return events
