"""Tests for dosefold.analysis.relevance."""

from dosefold.analysis.relevance import build_profile, classify_medication, has_classification_signal
from dosefold.knowledge import knowledge_from_dict
from dosefold.models import Effects, MedicationRecord, RelevanceProfile


class TestBuildProfile:
    def test_effects_without_category(self):
        profile = build_profile(Effects(lowers_bp=True, lowers_hr=True), None)
        assert profile == RelevanceProfile(check_bp=True, check_hr=True, check_urine_output=False)

    def test_category_fallback(self):
        assert build_profile(None, "beta_blocker") == RelevanceProfile(check_bp=True, check_hr=True)
        assert build_profile(None, "sglt2_inhibitor") == RelevanceProfile(
            check_bp=True, check_urine_output=True,
        )
        assert build_profile(None, "mra") == RelevanceProfile(check_bp=True)

    def test_other_category(self):
        assert build_profile(None, "other").is_empty

    def test_flagged_diuretic(self):
        assert build_profile(None, "loop_diuretic", flagged_diuretic=True).check_urine_output

    def test_effects_and_category_combine(self):
        profile = build_profile(Effects(lowers_hr=True), "arb")
        assert profile.check_bp and profile.check_hr


class TestClassifyMedication:
    def test_known_by_name(self, kb):
        profile = classify_medication(MedicationRecord("Coreg"), kb)
        assert profile == RelevanceProfile(check_bp=True, check_hr=True)

    def test_known_diuretic_name(self, kb):
        profile = classify_medication(MedicationRecord("Bumex"), kb)
        assert profile.check_bp and profile.check_urine_output
        assert not profile.check_hr

    def test_unknown_without_category(self, kb):
        med = MedicationRecord("Vitamin D", is_diuretic=True)
        assert classify_medication(med, kb).is_empty
        assert not has_classification_signal(med, kb)

    def test_unknown_with_category(self, kb):
        med = MedicationRecord("Investigational X", category="arni")
        assert has_classification_signal(med, kb)
        assert classify_medication(med, kb) == RelevanceProfile(check_bp=True)

    def test_injected_table(self):
        kb = knowledge_from_dict({"effects": {"widget": ["diuretic"]}})
        assert classify_medication(MedicationRecord("Widget"), kb) == RelevanceProfile(
            check_urine_output=True,
        )
