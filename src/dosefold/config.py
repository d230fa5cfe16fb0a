"""Configuration management for dosefold.

Handles loading and generating TOML config files for the analysis
thresholds and the optional knowledge-table override.
"""

from __future__ import annotations

import logging
import sys
import tomllib
from dataclasses import dataclass, fields, replace
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "dosefold.toml"


@dataclass(frozen=True)
class AnalysisThresholds:
    """Named, tunable constants used by the clinical window analysis."""

    lookback_days: int = 14
    low_systolic_bp: int = 100  # mmHg
    low_heart_rate: int = 60  # bpm
    low_map: int = 65  # mmHg
    significant_day_count: int = 3  # low BP/HR days escalating to significant
    notable_symptom_severity: int = 3  # "moderate" tier
    notable_symptom_days: int = 2
    min_reported_severity: int = 2  # repeated reports below this are ignored
    severe_symptom_severity: int = 4
    syncope_min_severity: int = 2


DEFAULT_THRESHOLDS = AnalysisThresholds()

DEFAULT_CONFIG_TEMPLATE = """\
# dosefold configuration
# Edit freely. Missing keys fall back to the built-in defaults.

[analysis]
# Days of clinical data examined before each medication change
lookback_days = {lookback_days}

# Vital-sign thresholds
low_systolic_bp = {low_systolic_bp}
low_heart_rate = {low_heart_rate}
low_map = {low_map}
# Low BP / low HR day counts at or above this are marked significant
significant_day_count = {significant_day_count}

# Symptom thresholds (severity scale 1-5)
notable_symptom_severity = {notable_symptom_severity}
notable_symptom_days = {notable_symptom_days}
min_reported_severity = {min_reported_severity}
severe_symptom_severity = {severe_symptom_severity}
syncope_min_severity = {syncope_min_severity}

# Optional path to a replacement knowledge table (TOML)
# knowledge_file = "my_knowledge.toml"
"""


def load_config(config_path: str = DEFAULT_CONFIG_PATH) -> dict:
    """Load configuration from a TOML file.

    Returns a dict with:
    - thresholds: AnalysisThresholds instance
    - knowledge_file: path string, or "" for the bundled table

    Falls back to defaults if the config file doesn't exist.
    """
    path = Path(config_path)
    if not path.exists():
        print(
            f"Warning: Config file '{config_path}' not found, using defaults. "
            f"Run 'python -m dosefold init-config' to generate one.",
            file=sys.stderr,
        )
        return _default_config()

    with open(path, "rb") as f:
        raw = tomllib.load(f)

    config = _default_config()
    analysis = dict(raw.get("analysis", {}))

    knowledge_file = analysis.pop("knowledge_file", "")
    if knowledge_file:
        # Relative paths are resolved against the config file's directory
        kpath = Path(knowledge_file)
        if not kpath.is_absolute():
            kpath = path.parent / kpath
        config["knowledge_file"] = str(kpath)

    known = {f.name for f in fields(AnalysisThresholds)}
    overrides = {}
    for key, value in analysis.items():
        if key not in known:
            logger.warning("Ignoring unknown [analysis] key '%s' in %s", key, config_path)
            continue
        if not isinstance(value, int) or isinstance(value, bool):
            logger.warning("Ignoring non-integer [analysis] %s = %r", key, value)
            continue
        overrides[key] = value

    config["thresholds"] = replace(DEFAULT_THRESHOLDS, **overrides)
    return config


def _default_config() -> dict:
    """Return default configuration."""
    return {
        "thresholds": DEFAULT_THRESHOLDS,
        "knowledge_file": "",
    }


def generate_config(config_path: str = DEFAULT_CONFIG_PATH) -> str:
    """Write a commented config file with the default thresholds.

    Returns the path of the written config file.
    """
    values = {f.name: getattr(DEFAULT_THRESHOLDS, f.name) for f in fields(AnalysisThresholds)}
    Path(config_path).write_text(DEFAULT_CONFIG_TEMPLATE.format(**values))
    return config_path
