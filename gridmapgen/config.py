"""Application settings and their loading from a YAML file."""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Callable

import yaml

log = logging.getLogger(__name__)

_TRUE_WORDS = frozenset({"y", "yes", "true", "on"})
_FALSE_WORDS = frozenset({"n", "no", "false", "off"})


class ConfigError(Exception):
    """Raised when a configuration file cannot be read or parsed."""


@dataclass
class Config:
    """Settings that drive the map generation."""

    map_resolution: float = 0.05
    robot_height: float = 0.5
    normal_estimation_radius: float = 0.1
    ground_normal_z_threshold: float = 0.9
    block_size: float = 10.0

    min_cluster_size: int = 50
    max_cluster_size: int = 25000

    outlier_removal_enable: bool = True
    outlier_removal_mean_k: int = 50
    outlier_removal_std_dev_mul_thresh: float = 1.0

    preview_map_on_exit: bool = False

    free_space_kernel_size: int = 3
    obstacle_space_kernel_size: int = 3


def _to_float(value: Any) -> float:
    if isinstance(value, bool):
        raise ValueError(f"expected a number, got boolean {value!r}")
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        return float(value.strip())
    raise ValueError(f"expected a number, got {value!r}")


def _to_int(value: Any) -> int:
    if isinstance(value, bool) or isinstance(value, float):
        raise ValueError(f"expected an integer, got {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        return int(value.strip())
    raise ValueError(f"expected an integer, got {value!r}")


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        word = value.strip().lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
    raise ValueError(f"expected a boolean, got {value!r}")


def _converter_for(default: Any) -> Callable[[Any], Any]:
    if isinstance(default, bool):
        return _to_bool
    if isinstance(default, int):
        return _to_int
    return _to_float


def load_config(path: str | Path) -> Config:
    """Read settings from a YAML file.

    Keys that are missing or hold a value of the wrong type keep their
    defaults. An unreadable file or invalid YAML raises ConfigError.
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigError(f"cannot read configuration file {path}: {exc}") from exc

    try:
        root = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"invalid YAML in configuration file {path}: {exc}") from exc

    if root is None:
        root = {}
    if not isinstance(root, dict):
        raise ConfigError(
            f"configuration file {path} must hold a mapping at top level, "
            f"not {type(root).__name__}"
        )

    config = Config()
    for field in fields(Config):
        default = getattr(config, field.name)
        if field.name not in root:
            log.info("'%s' not set in %s; using default %r", field.name, path, default)
            continue
        raw = root[field.name]
        try:
            value = _converter_for(default)(raw)
        except (TypeError, ValueError) as exc:
            log.warning(
                "cannot convert '%s' value %r (%s); using default %r",
                field.name,
                raw,
                exc,
                default,
            )
            continue
        setattr(config, field.name, value)

    log.info(
        "outlier removal %s (mean_k=%d, std_mul=%g); preview on exit %s; "
        "free kernel %d; obstacle kernel %d",
        "enabled" if config.outlier_removal_enable else "disabled",
        config.outlier_removal_mean_k,
        config.outlier_removal_std_dev_mul_thresh,
        "enabled" if config.preview_map_on_exit else "disabled",
        config.free_space_kernel_size,
        config.obstacle_space_kernel_size,
    )
    return config