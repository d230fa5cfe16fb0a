"""Relevance classification: which vital signs matter for a medication."""

from __future__ import annotations

from dosefold.knowledge import KnowledgeBase
from dosefold.models import (
    CATEGORY_ACE_INHIBITOR,
    CATEGORY_ARB,
    CATEGORY_ARNI,
    CATEGORY_BETA_BLOCKER,
    CATEGORY_LOOP_DIURETIC,
    CATEGORY_MRA,
    CATEGORY_SGLT2_INHIBITOR,
    CATEGORY_THIAZIDE_DIURETIC,
    Effects,
    MedicationRecord,
    RelevanceProfile,
)

BP_CATEGORIES = frozenset({
    CATEGORY_BETA_BLOCKER,
    CATEGORY_ARNI,
    CATEGORY_ACE_INHIBITOR,
    CATEGORY_ARB,
    CATEGORY_MRA,
    CATEGORY_SGLT2_INHIBITOR,
    CATEGORY_LOOP_DIURETIC,
    CATEGORY_THIAZIDE_DIURETIC,
})
HR_CATEGORIES = frozenset({CATEGORY_BETA_BLOCKER})
URINE_CATEGORIES = frozenset({CATEGORY_SGLT2_INHIBITOR})


def has_classification_signal(medication: MedicationRecord, knowledge: KnowledgeBase) -> bool:
    """True when the medication has a known effects entry or a category."""
    return medication.category is not None or knowledge.effects_for(medication.name) is not None


def build_profile(
    effects: Effects | None,
    category: str | None,
    flagged_diuretic: bool = False,
) -> RelevanceProfile:
    """Combine effects, category and the diuretic flag into a profile."""
    return RelevanceProfile(
        check_bp=bool(effects and effects.lowers_bp) or category in BP_CATEGORIES,
        check_hr=bool(effects and effects.lowers_hr) or category in HR_CATEGORIES,
        check_urine_output=(
            bool(effects and effects.diuretic)
            or flagged_diuretic
            or category in URINE_CATEGORIES
        ),
    )


def classify_medication(medication: MedicationRecord, knowledge: KnowledgeBase) -> RelevanceProfile:
    """Relevance profile for a medication.

    Medications with neither an effects entry nor a category get an empty
    profile, whatever their diuretic flag says.
    """
    effects = knowledge.effects_for(medication.name)
    if effects is None and medication.category is None:
        return RelevanceProfile()
    flagged_diuretic = medication.is_diuretic or knowledge.is_known_diuretic(medication.name)
    return build_profile(effects, medication.category, flagged_diuretic)
