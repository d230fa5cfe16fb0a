"""Markdown output formatter for medication change analyses."""

from __future__ import annotations

from dosefold.analysis.history import RegimenComparison, RegimenEntry, TimelineEvent
from dosefold.knowledge import KnowledgeBase, load_knowledge
from dosefold.models import MedicationChangeInsight, format_display_date

SECTION_TITLE = "Medication Changes & Clinical Context"


class MarkdownWriter:
    """Builds markdown output incrementally."""

    def __init__(self):
        self._lines: list[str] = []

    def w(self, line: str = "") -> None:
        self._lines.append(line)

    def heading(self, text: str, level: int = 2) -> None:
        self.w(f"{'#' * level} {text}")
        self.w()

    def table(self, headers: list[str], rows: list[list[str]]) -> None:
        self.w("| " + " | ".join(headers) + " |")
        self.w("|" + "|".join("---" for _ in headers) + "|")
        for row in rows:
            self.w("| " + " | ".join(str(c) for c in row) + " |")
        self.w()

    def separator(self) -> None:
        self.w("---")
        self.w()

    def text(self) -> str:
        return "\n".join(self._lines)

    def write_to_file(self, filepath: str) -> int:
        content = self.text()
        with open(filepath, "w", encoding="utf-8") as f:
            f.write(content)
        return len(self._lines)


def insight_title(insight: MedicationChangeInsight, knowledge: KnowledgeBase) -> str:
    """'Metoprolol (Beta-blocker)', or just the name when uncategorized."""
    if insight.category:
        return f"{insight.medication_name} ({knowledge.category_display_name(insight.category)})"
    return insight.medication_name


def format_insights_markdown(
    insights: list[MedicationChangeInsight],
    lookback_days: int,
    knowledge: KnowledgeBase | None = None,
    level: int = 2,
) -> str:
    """Render the clinical-context section for a list of insights.

    Insights without observations are left out; an empty string is returned
    when nothing remains.
    """
    knowledge = knowledge or load_knowledge()
    shown = [i for i in insights if i.has_observations]
    if not shown:
        return ""

    md = MarkdownWriter()
    md.heading(SECTION_TITLE, level=level)
    for insight in shown:
        md.heading(insight_title(insight, knowledge), level=level + 1)
        md.w(
            f"**Changed:** {format_display_date(insight.change_date)} — "
            f"{insight.change_description}"
        )
        md.w()
        md.w(f"Observations in the {lookback_days} days before this change:")
        md.w()
        for obs in insight.observations:
            md.w(f"- **[{obs.severity.title()}]** {obs.description}")
        md.w()
        if insight.context_message:
            md.w(f"*{insight.context_message}*")
            md.w()
    return md.text()


def format_regimen_markdown(as_of: str, regimen: list[RegimenEntry]) -> str:
    md = MarkdownWriter()
    md.heading(f"Medication Regimen as of {format_display_date(as_of)}", level=2)
    if not regimen:
        md.w("*No medications active on this date.*")
        md.w()
        return md.text()
    md.table(
        ["Medication", "Dosage", "Schedule", "Since"],
        [[e.medication_name, e.short_dosage, e.schedule, e.period_start] for e in regimen],
    )
    return md.text()


def format_comparison_markdown(
    start_date: str, end_date: str, comparisons: list[RegimenComparison]
) -> str:
    md = MarkdownWriter()
    md.heading(
        f"Regimen Changes: {format_display_date(start_date)} → {format_display_date(end_date)}",
        level=2,
    )
    md.table(
        ["", "Medication", start_date, end_date],
        [[c.symbol, c.medication_name, c.start_dosage, c.end_dosage] for c in comparisons],
    )
    return md.text()


def format_timeline_markdown(events: list[TimelineEvent]) -> str:
    md = MarkdownWriter()
    md.heading("Medication Timeline", level=2)
    if not events:
        md.w("*No medication changes recorded.*")
        md.w()
        return md.text()
    md.table(
        ["Date", "Medication", "Event"],
        [[e.date, e.medication_name, e.description] for e in events],
    )
    return md.text()
