"""Tests for dosefold.config module."""

import logging

import pytest

from dosefold.config import (
    DEFAULT_THRESHOLDS,
    AnalysisThresholds,
    generate_config,
    load_config,
)


class TestLoadConfig:
    def test_missing_file_returns_defaults(self, tmp_path, capsys):
        config = load_config(str(tmp_path / "nonexistent.toml"))
        assert config["thresholds"] == DEFAULT_THRESHOLDS
        assert config["knowledge_file"] == ""
        assert "not found" in capsys.readouterr().err

    def test_loads_toml_file(self, tmp_path):
        toml_path = tmp_path / "test.toml"
        toml_path.write_text("""
[analysis]
lookback_days = 7
low_systolic_bp = 95
""")
        config = load_config(str(toml_path))
        assert config["thresholds"].lookback_days == 7
        assert config["thresholds"].low_systolic_bp == 95
        assert config["thresholds"].low_map == 65

    def test_unknown_keys_ignored(self, tmp_path, caplog):
        toml_path = tmp_path / "test.toml"
        toml_path.write_text("[analysis]\nlookback_weeks = 2\nlow_map = \"sixty\"\n")
        with caplog.at_level(logging.WARNING, logger="dosefold.config"):
            config = load_config(str(toml_path))
        assert config["thresholds"] == DEFAULT_THRESHOLDS
        assert "lookback_weeks" in caplog.text
        assert "low_map" in caplog.text

    def test_knowledge_file_relative_to_config(self, tmp_path):
        toml_path = tmp_path / "conf" / "dosefold.toml"
        toml_path.parent.mkdir()
        toml_path.write_text('[analysis]\nknowledge_file = "kb.toml"\n')
        config = load_config(str(toml_path))
        assert config["knowledge_file"] == str(tmp_path / "conf" / "kb.toml")

    def test_empty_file(self, tmp_path):
        toml_path = tmp_path / "empty.toml"
        toml_path.write_text("")
        assert load_config(str(toml_path))["thresholds"] == DEFAULT_THRESHOLDS


class TestGenerateConfig:
    def test_round_trip_defaults(self, tmp_path):
        path = generate_config(str(tmp_path / "dosefold.toml"))
        assert load_config(path)["thresholds"] == DEFAULT_THRESHOLDS

    def test_template_is_commented(self, tmp_path):
        path = generate_config(str(tmp_path / "dosefold.toml"))
        text = (tmp_path / "dosefold.toml").read_text()
        assert path.endswith("dosefold.toml")
        assert "[analysis]" in text
        assert "# knowledge_file" in text


class TestThresholds:
    def test_defaults(self):
        t = AnalysisThresholds()
        assert (t.lookback_days, t.low_systolic_bp, t.low_heart_rate, t.low_map) == (14, 100, 60, 65)
        assert t.notable_symptom_severity == 3
        assert t.severe_symptom_severity == 4
        assert t.syncope_min_severity == 2

    def test_frozen(self):
        with pytest.raises(AttributeError):
            DEFAULT_THRESHOLDS.lookback_days = 7
