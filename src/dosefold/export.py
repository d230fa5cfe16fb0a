"""Export a medication change analysis as markdown or PDF.

Generates a printable document (current regimen, regimen changes over the
range, and the clinical context preceding each change) suitable for
bringing to a clinic visit.
"""

from __future__ import annotations

import logging
import subprocess

from dosefold.analysis.correlation import analyze_changes
from dosefold.analysis.history import compare_regimens, regimen_as_of
from dosefold.config import DEFAULT_THRESHOLDS, AnalysisThresholds
from dosefold.db import DosefoldDB
from dosefold.formatters.markdown import (
    MarkdownWriter,
    format_comparison_markdown,
    format_insights_markdown,
    format_regimen_markdown,
)
from dosefold.knowledge import KnowledgeBase, load_knowledge

logger = logging.getLogger(__name__)


def export_markdown(
    db: DosefoldDB,
    output_path: str = "dosefold_export.md",
    start_date: str = "",
    end_date: str = "",
    thresholds: AnalysisThresholds | None = None,
    knowledge: KnowledgeBase | None = None,
) -> str:
    """Export the analysis of [start_date, end_date] as structured markdown.

    Args:
        db: Database connection.
        output_path: Where to write the markdown file.
        start_date: First ISO date of the analysis range.
        end_date: Last ISO date of the analysis range.
        thresholds: Analysis thresholds; defaults if omitted.
        knowledge: Knowledge table; the bundled one if omitted.

    Returns the output file path.
    """
    thresholds = thresholds or DEFAULT_THRESHOLDS
    knowledge = knowledge or load_knowledge()

    snapshot = db.fetch_snapshot(start_date, end_date, thresholds.lookback_days)
    insights = analyze_changes(snapshot, start_date, end_date, knowledge, thresholds)

    md = MarkdownWriter()
    md.heading("Medication Change Report", level=1)
    md.w(f"*Period: {start_date} to {end_date}*")
    sources = [r["source"] for r in db.query("SELECT DISTINCT source FROM load_log ORDER BY source")]
    if sources:
        md.w(f"*Data from: {', '.join(sources)}*")
    md.w()

    end_regimen = regimen_as_of(snapshot.medications, end_date, knowledge)
    md.separator()
    md.w(format_regimen_markdown(end_date, end_regimen))

    comparisons = [
        c for c in compare_regimens(
            regimen_as_of(snapshot.medications, start_date, knowledge), end_regimen
        )
        if c.has_changed
    ]
    if comparisons:
        md.separator()
        md.w(format_comparison_markdown(start_date, end_date, comparisons))

    section = format_insights_markdown(insights, thresholds.lookback_days, knowledge)
    md.separator()
    if section:
        md.w(section)
    else:
        md.w("*No clinical observations preceded the medication changes in this period.*")
        md.w()

    md.write_to_file(output_path)
    logger.info("Wrote %d insight(s) to %s", len(insights), output_path)
    return output_path


def export_pdf(
    db: DosefoldDB,
    output_path: str = "dosefold_export.pdf",
    start_date: str = "",
    end_date: str = "",
    thresholds: AnalysisThresholds | None = None,
    knowledge: KnowledgeBase | None = None,
) -> str:
    """Export the analysis as PDF via pandoc.

    Requires pandoc to be installed. Falls back to markdown if pandoc is unavailable.

    Returns the output file path (may be .md if pandoc unavailable).
    """
    md_path = output_path.replace(".pdf", ".md")
    export_markdown(db, md_path, start_date, end_date, thresholds, knowledge)

    try:
        subprocess.run(
            ["pandoc", md_path, "-o", output_path,
             "--pdf-engine=xelatex",
             "-V", "geometry:margin=1in",
             "-V", "fontsize=10pt"],
            check=True, capture_output=True,
        )
        return output_path
    except FileNotFoundError:
        logger.warning("pandoc not found. Markdown file generated instead.")
        return md_path
    except subprocess.CalledProcessError:
        try:
            subprocess.run(
                ["pandoc", md_path, "-o", output_path, "--pdf-engine=weasyprint"],
                check=True, capture_output=True,
            )
            return output_path
        except (FileNotFoundError, subprocess.CalledProcessError):
            logger.warning("PDF generation failed. Markdown file at %s", md_path)
            return md_path
