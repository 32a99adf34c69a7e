"""
Configuration loading and validation.

This module loads the YAML configuration, fills in defaults for missing
sections, and reports (without raising) values that are out of range.
"""

import copy
import logging
from pathlib import Path
from typing import Dict, Any, List, Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG: Dict[str, Any] = {
    "global": {"log_level": "INFO"},
    "recalibration": {
        "mode": "unbounded",
        "min_weight": 0.1,
        "max_weight": 10.0,
        "decay_rate": 0.1,
    },
    "matching": {
        "top_k": 20,
        "fast_path": True,
        "n_workers": None,
        "batch_size": 64,
        "page_size": None,
    },
    "embeddings": {
        "enabled": True,
        "provider": "hashing",
        "dimension": 768,
        "max_workers": 4,
    },
    "feedback": {"log_size": 10000},
    "index": {"enabled": True, "snapshot_path": None},
    "store": {"type": "memory", "path": None},
}


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def with_defaults(config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Return ``config`` layered over DEFAULT_CONFIG (inputs are not modified)."""
    return _deep_merge(DEFAULT_CONFIG, config or {})


def load_config(filepath: str) -> Dict[str, Any]:
    """
    Load configuration from a YAML file and apply defaults.

    Args:
        filepath: Path to the YAML configuration file

    Returns:
        Configuration dictionary with every section present

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If the file is empty or not a mapping
        yaml.YAMLError: If YAML is invalid
    """
    path = Path(filepath)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {filepath}")

    logger.info(f"Loading configuration from {filepath}")
    with open(path, "r") as f:
        config = yaml.safe_load(f)

    if config is None:
        raise ValueError(f"Configuration file is empty: {filepath}")
    if not isinstance(config, dict):
        raise ValueError(f"Configuration root must be a mapping: {filepath}")

    return with_defaults(config)


def validate_config(config: Dict[str, Any]) -> List[str]:
    """
    Validate configuration and return list of warnings/errors.

    Args:
        config: Configuration dictionary

    Returns:
        List of issue messages (empty if valid)
    """
    issues = []

    recalibration = config.get("recalibration", {}) or {}
    mode = recalibration.get("mode", "unbounded")
    if mode not in ("unbounded", "clamp", "decay"):
        issues.append(f"Unknown recalibration.mode: {mode}")
    min_w = recalibration.get("min_weight", 0.1)
    max_w = recalibration.get("max_weight", 10.0)
    if not 0 <= min_w <= max_w:
        issues.append(f"Recalibration bounds must satisfy 0 <= min <= max, got [{min_w}, {max_w}]")
    decay_rate = recalibration.get("decay_rate", 0.1)
    if not 0 < decay_rate < 1:
        issues.append(f"recalibration.decay_rate must be in (0, 1), got {decay_rate}")

    matching = config.get("matching", {}) or {}
    for key in ("top_k", "batch_size"):
        value = matching.get(key, 1)
        if not isinstance(value, int) or value <= 0:
            issues.append(f"matching.{key} must be a positive integer, got {value}")
    n_workers = matching.get("n_workers")
    if n_workers is not None and (not isinstance(n_workers, int) or n_workers <= 0):
        issues.append(f"matching.n_workers must be a positive integer or null, got {n_workers}")

    embeddings = config.get("embeddings", {}) or {}
    if embeddings.get("provider", "hashing") != "hashing":
        issues.append(f"Unknown embeddings.provider: {embeddings.get('provider')}")
    dimension = embeddings.get("dimension", 768)
    if not isinstance(dimension, int) or dimension <= 0:
        issues.append(f"embeddings.dimension must be a positive integer, got {dimension}")

    log_size = (config.get("feedback", {}) or {}).get("log_size", 10000)
    if not isinstance(log_size, int) or log_size <= 0:
        issues.append(f"feedback.log_size must be a positive integer, got {log_size}")

    store = config.get("store", {}) or {}
    store_type = store.get("type", "memory")
    if store_type not in ("memory", "json"):
        issues.append(f"Unknown store.type: {store_type}")
    elif store_type == "json" and not store.get("path"):
        issues.append("store.path is required when store.type is json")

    level = (config.get("global", {}) or {}).get("log_level", "INFO")
    if str(level).upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        issues.append(f"Unknown global.log_level: {level}")

    return issues


def get_config_value(config: Dict[str, Any], path: str, default: Any = None) -> Any:
    """
    Get a nested configuration value using dot notation.

    Args:
        config: Configuration dictionary
        path: Dot-separated path (e.g., "matching.top_k")
        default: Default value if path doesn't exist

    Returns:
        Configuration value or default
    """
    value = config
    for key in path.split("."):
        if isinstance(value, dict) and key in value:
            value = value[key]
        else:
            return default
    return value
