from __future__ import annotations

"""Configuration loading and validation.

This module loads YAML configuration, applies defaults, and validates
that numeric limits and thresholds are sane before a session starts.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)


ALLOWED_MOCK_EXAM_COUNTS = {1, 2, 3, 4, 5, 6}


class ConfigError(Exception):
    """Raised when a configuration file cannot be read or parsed."""


def _load_yaml(path: Path) -> Dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError as exc:
        raise ConfigError(f"Config file not found: {path}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Config file is not valid YAML: {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config file must hold a mapping at top level: {path}")
    return data


def load_config(path: Optional[str] = None) -> Dict[str, Any]:
    """Load configuration from YAML or defaults.

    Args:
        path: Optional path to a YAML config. If None, use package defaults.

    Returns:
        A dictionary with configuration values.
    """
    if path:
        cfg = _load_yaml(Path(path))
    else:
        default_path = Path(__file__).with_name("defaults.yml")
        cfg = _load_yaml(default_path)
    return cfg


def _positive_int(section: Dict[str, Any], key: str, default: int) -> None:
    try:
        value = int(section.get(key, default))
    except (TypeError, ValueError):
        value = 0
    if value <= 0:
        logger.warning("Invalid %s=%r, using %s.", key, section.get(key), default)
        value = default
    section[key] = value


def _ratio(section: Dict[str, Any], key: str, default: float) -> None:
    try:
        value = float(section.get(key, default))
    except (TypeError, ValueError):
        value = -1.0
    if not (0.0 <= value <= 1.0):
        logger.warning("Invalid %s=%r, using %s.", key, section.get(key), default)
        value = default
    section[key] = value


def validate_config(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """Apply defaults and validate configuration values.

    Args:
        cfg: The raw configuration dictionary.

    Returns:
        The validated and merged configuration dictionary.
    """
    # Shallow defaults for missing sections
    cfg.setdefault("session", {})
    cfg.setdefault("selection", {})
    cfg.setdefault("scoring", {})
    cfg.setdefault("storage", {})
    cfg.setdefault("results", {})
    cfg.setdefault("catalog", {})

    session = cfg["session"]
    selection = cfg["selection"]
    scoring = cfg["scoring"]
    storage = cfg["storage"]
    results = cfg["results"]
    catalog = cfg["catalog"]

    # Apply section defaults
    session.setdefault("seconds_per_question", 60)
    session.setdefault("tick_seconds", 1)
    session.setdefault("autosave_interval_ticks", 5)

    selection.setdefault("mock_exam_size", 20)
    selection.setdefault("mock_exam_count", 3)
    selection.setdefault("mock_require_full", True)
    selection.setdefault("smart_revision_limit", 20)

    scoring.setdefault("mba_min_selections", 2)
    scoring.setdefault("distinction_threshold", 0.8)
    scoring.setdefault("weak_topic_threshold", 0.7)

    storage.setdefault("data_dir", "./data")
    storage.setdefault("session_key", "quizStateV3")
    storage.setdefault("flagged_key", "akt-flagged-questions")
    storage.setdefault("weak_topics_key", "weakTopics")
    storage.setdefault("debounce_ms", 500)

    results.setdefault("enabled", True)
    results.setdefault("data_dir", "./data/results")

    catalog.setdefault("path", "./questions.json")

    # Numeric sanity
    _positive_int(session, "seconds_per_question", 60)
    _positive_int(session, "autosave_interval_ticks", 5)
    _positive_int(selection, "mock_exam_size", 20)
    _positive_int(selection, "smart_revision_limit", 20)
    _positive_int(scoring, "mba_min_selections", 2)
    _ratio(scoring, "distinction_threshold", 0.8)
    _ratio(scoring, "weak_topic_threshold", 0.7)

    try:
        tick = float(session.get("tick_seconds", 1))
    except (TypeError, ValueError):
        tick = 0.0
    if tick <= 0:
        logger.warning("Invalid tick_seconds=%r, using 1.", session.get("tick_seconds"))
        tick = 1.0
    session["tick_seconds"] = tick

    try:
        debounce = int(storage.get("debounce_ms", 500))
    except (TypeError, ValueError):
        debounce = -1
    if debounce < 0:
        logger.warning("Invalid debounce_ms=%r, using 500.", storage.get("debounce_ms"))
        debounce = 500
    storage["debounce_ms"] = debounce

    mock_count = selection.get("mock_exam_count")
    if mock_count not in ALLOWED_MOCK_EXAM_COUNTS:
        logger.warning("Unsupported mock_exam_count %r, using 3.", mock_count)
        selection["mock_exam_count"] = 3

    selection["mock_require_full"] = bool(selection.get("mock_require_full", True))
    results["enabled"] = bool(results.get("enabled", True))

    for key in ("session_key", "flagged_key", "weak_topics_key"):
        storage[key] = str(storage[key])

    return cfg


def default_config() -> Dict[str, Any]:
    """Validated package defaults."""
    return validate_config(load_config())
