"""
Configuration management for robustcore
"""

import copy
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from robustcore.errors import PreconditionError


USE_PARALLEL_ENV = "ROBUSTCORE_USE_PARALLEL"
TEST_MODE_ENV = "ROBUSTCORE_TEST_MODE"

DEFAULT_CONFIG = {
    "ransac": {
        "max_distance": 1.0,
        "confidence": 0.99,
        "max_trials": 1000,
        "max_skip_trials": None,
        "recompute_from_inliers": False
    },
    "kmeans": {
        "max_iterations": 100,
        "threshold": 1e-4,
        "num_trials": 1,
        "initialization": "kmeans++",
        "use_parallel": None,
        "num_workers": None,
        "verbose": False,
        "index": {
            "type": "kdtree",
            "eps": 0.0,
            "leafsize": 16
        }
    },
    "logging": {
        "level": "INFO",
        "file": None
    }
}

_TRUE_STRINGS = {"1", "true", "yes", "on"}


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in _TRUE_STRINGS


def use_parallel_preference() -> bool:
    """Default for the K-Means ``use_parallel`` option, read from the environment."""
    return _env_flag(USE_PARALLEL_ENV)


def is_test_mode() -> bool:
    """Whether random sources should fall back to a fixed seed."""
    return _env_flag(TEST_MODE_ENV)


def _merge(base: Dict[str, Any], override: Dict[str, Any], path: str = "") -> Dict[str, Any]:
    for key, value in override.items():
        where = f"{path}.{key}" if path else key
        if key not in base:
            raise PreconditionError(f"Unknown configuration key '{where}'")
        if isinstance(base[key], dict):
            if not isinstance(value, dict):
                raise PreconditionError(f"Configuration section '{where}' must be a mapping")
            _merge(base[key], value, where)
        else:
            base[key] = value
    return base


def merge_config(overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Return a copy of DEFAULT_CONFIG with ``overrides`` deep-merged in."""
    config = copy.deepcopy(DEFAULT_CONFIG)
    if overrides:
        _merge(config, overrides)
    return config


def load_config(path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """
    Load configuration from a YAML file.

    Args:
        path: YAML file to read. ``None`` returns the defaults.

    Returns:
        Full configuration dictionary with defaults filled in
    """
    if path is None:
        return merge_config()

    with open(path, 'r') as f:
        overrides = yaml.safe_load(f) or {}

    if not isinstance(overrides, dict):
        raise PreconditionError(f"Configuration file {path} must contain a mapping")

    return merge_config(overrides)


def save_config(config: Dict[str, Any], path: Union[str, Path]):
    """Write configuration to a YAML file."""
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w') as f:
        yaml.safe_dump(config, f, default_flow_style=False, sort_keys=False)
