"""Engine configuration.

Settings live in an optional ``dashformula.yaml``; anything not set there
falls back to ``DEFAULT_CONFIG``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml


CONFIG_FILENAME = "dashformula.yaml"

DEFAULT_CONFIG: dict[str, Any] = {
    "max_formula_length": 500,
    "max_complexity": 50,
    "require_numeric_result": True,
    "check_division_by_zero": True,
    "type_sample_rows": 100,
    "zero_sample_rows": 1000,
    "test_sample_rows": 10,
    "large_value_threshold": 1e15,
    "log_dir": None,  # events are discarded unless set
    "logging_fsync": False,
}

# Config keys that map one-to-one onto ValidationOptions fields.
_VALIDATION_KEYS = (
    "max_formula_length",
    "require_numeric_result",
    "check_division_by_zero",
    "max_complexity",
    "type_sample_rows",
    "zero_sample_rows",
    "test_sample_rows",
    "large_value_threshold",
)


def load_config(path: Path | None = None) -> dict[str, Any]:
    """Load configuration, merging a YAML file over the defaults.

    Args:
        path: A YAML file, or a directory containing ``dashformula.yaml``.
            ``None`` returns the defaults.

    Returns:
        Merged config dict.  Unknown keys are kept.

    Raises:
        ValueError: If the file does not contain a mapping.
    """
    config = dict(DEFAULT_CONFIG)
    if path is None:
        return config

    path = Path(path)
    if path.is_dir():
        path = path / CONFIG_FILENAME
    if not path.exists():
        return config

    with open(path) as f:
        user_config = yaml.safe_load(f)
    if user_config is None:
        return config
    if not isinstance(user_config, dict):
        raise ValueError(f"{path}: expected a mapping at top level, got {type(user_config).__name__}")

    config.update(user_config)
    return config


def validation_options_from_config(config: dict[str, Any]) -> dict[str, Any]:
    """Extract the validator options from a loaded config."""
    return {key: config[key] for key in _VALIDATION_KEYS if key in config}
