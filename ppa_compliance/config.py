"""
config.py — YAML configuration loading.

All thresholds used by the rule engine default to the values below and can
be overridden under the `analysis:` section of config.yaml.
"""

import logging
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLDS: dict[str, float] = {
    # Rule 1: budget anomaly (ratio of actual to estimated value)
    "budget_variance_ratio": 1.1,
    "budget_high_ratio": 1.3,
    "budget_critical_ratio": 1.5,
    # Rule 2: local content
    "local_content_min_pct": 40,
    # Rule 3: direct procurement ceiling (currency units)
    "direct_procurement_limit": 50_000,
    # Rule 4: days from tender closing to award
    "award_delay_days": 90,
    # Rule 5: contracts per supplier before concentration is flagged
    "supplier_concentration_max": 3,
    # Rule 6: minimum days between awards to the same supplier
    "successive_award_gap_days": 30,
    # Rule 7: award-date span within which similar procurements are duplicates
    "duplicate_window_days": 365,
    # Rule 8: high-value oversight threshold (not currency-aware)
    "high_value_threshold": 100_000_000,
}


def load_config(config_path: str = "config.yaml") -> dict[str, Any]:
    """Load YAML configuration file.

    Args:
        config_path: Path to config.yaml relative to project root.

    Returns:
        Parsed configuration dictionary.

    Raises:
        FileNotFoundError: If config file does not exist.
        yaml.YAMLError: If config file is malformed.
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")
    with open(config_path, "r") as fh:
        config = yaml.safe_load(fh) or {}
    logger.debug("Configuration loaded from %s", config_path)
    return config


def analysis_thresholds(cfg: dict[str, Any] | None = None) -> dict[str, float]:
    """Merge the `analysis` section of a config dict over DEFAULT_THRESHOLDS.

    Unknown keys are rejected so a typo in config.yaml cannot silently leave
    a rule on its default.
    """
    thresholds = dict(DEFAULT_THRESHOLDS)
    overrides = (cfg or {}).get("analysis") or {}
    unknown = set(overrides) - set(DEFAULT_THRESHOLDS)
    if unknown:
        raise ValueError(f"Unknown analysis thresholds in config: {sorted(unknown)}")
    thresholds.update(overrides)
    return thresholds
