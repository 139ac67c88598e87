"""
DIVSTAB Configuration
=====================

Run parameters for divide stability analysis, validated against a JSON
schema and loadable from YAML.
"""

import logging
from dataclasses import asdict, dataclass, fields
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Union

import jsonschema
import yaml

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class BaseLevelPolicy(Enum):
    """How stream outlets are brought to a common base level."""

    NONE = "none"
    ELEVATION = "elevation"
    DRAIN_AREA = "drain_area"
    MAX_OUT_ELEVATION = "max_out_elevation"
    MIN_OUT_DRAIN_AREA = "min_out_drain_area"

    @property
    def requires_threshold(self) -> bool:
        return self in (BaseLevelPolicy.ELEVATION, BaseLevelPolicy.DRAIN_AREA)


@dataclass(frozen=True)
class BaseLevelControl:
    """
    Base level policy together with its threshold.

    ``threshold`` is the minimum elevation for ``ELEVATION`` and the maximum
    drainage area for ``DRAIN_AREA``; the other policies derive theirs from
    the network outlets and take none.
    """

    policy: BaseLevelPolicy = BaseLevelPolicy.NONE
    threshold: Optional[float] = None

    def __post_init__(self):
        if not isinstance(self.policy, BaseLevelPolicy):
            object.__setattr__(self, "policy", parse_policy(self.policy))

        if self.policy is BaseLevelPolicy.ELEVATION and self.threshold is None:
            raise ConfigurationError(
                'Selected method "elevation" requires that you provide an input '
                'for parameter "min_elevation"'
            )
        if self.policy is BaseLevelPolicy.DRAIN_AREA and self.threshold is None:
            raise ConfigurationError(
                'Selected method "drain_area" requires that you provide an input '
                'for parameter "max_drainage_area"'
            )
        if not self.policy.requires_threshold and self.threshold is not None:
            logger.debug(f"Ignoring threshold {self.threshold} for policy {self.policy.value}")
            object.__setattr__(self, "threshold", None)

    @classmethod
    def none(cls) -> "BaseLevelControl":
        return cls(BaseLevelPolicy.NONE)

    @classmethod
    def elevation(cls, min_elevation: float) -> "BaseLevelControl":
        return cls(BaseLevelPolicy.ELEVATION, float(min_elevation))

    @classmethod
    def drain_area(cls, max_drainage_area: float) -> "BaseLevelControl":
        return cls(BaseLevelPolicy.DRAIN_AREA, float(max_drainage_area))

    @classmethod
    def max_out_elevation(cls) -> "BaseLevelControl":
        return cls(BaseLevelPolicy.MAX_OUT_ELEVATION)

    @classmethod
    def min_out_drain_area(cls) -> "BaseLevelControl":
        return cls(BaseLevelPolicy.MIN_OUT_DRAIN_AREA)


def parse_policy(name: Union[str, BaseLevelPolicy]) -> BaseLevelPolicy:
    """Policy from its name; raises ConfigurationError for unknown names."""
    if isinstance(name, BaseLevelPolicy):
        return name
    try:
        return BaseLevelPolicy(str(name).lower())
    except ValueError:
        valid = [p.value for p in BaseLevelPolicy]
        raise ConfigurationError(f"Unknown base level control '{name}'. Available: {valid}")


CONFIG_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "ref_area": {"type": "number", "exclusiveMinimum": 0},
        "relief_radius": {"type": "number", "minimum": 0},
        "chi_ref_area": {"type": "number", "exclusiveMinimum": 0},
        "theta_ref": {"type": "number"},
        "base_level_control": {"type": "string", "enum": [p.value for p in BaseLevelPolicy]},
        "min_elevation": {"type": ["number", "null"]},
        "max_drainage_area": {"type": ["number", "null"]},
        "shape_name": {"type": "string", "minLength": 1},
        "verbose": {"type": "boolean"},
        "segment_length_cells": {"type": "number", "exclusiveMinimum": 0},
        "output_dir": {"type": "string"},
        "export_shapefile": {"type": "boolean"},
    },
    "additionalProperties": False,
}


@dataclass(frozen=True)
class DivideStabilityConfig:
    """
    Parameters of a divide stability run.

    Attributes:
        ref_area (float): Minimum upstream area defining streams (map units²),
            also reported as the reference area of the result
        relief_radius (float): Radius for local relief (map units)
        chi_ref_area (float): Reference area for chi
        theta_ref (float): Reference concavity for chi
        base_level_control (str): Base level policy name
        min_elevation (float): Required by the "elevation" policy
        max_drainage_area (float): Required by the "drain_area" policy
        shape_name (str): Output shapefile name, without extension
        verbose (bool): Report progress
        segment_length_cells (float): Exported segment length in cells
        output_dir (str): Directory for output files
        export_shapefile (bool): Whether to write the shapefile
    """

    ref_area: float = 1e6
    relief_radius: float = 500.0
    chi_ref_area: float = 1.0
    theta_ref: float = 0.5
    base_level_control: str = "none"
    min_elevation: Optional[float] = None
    max_drainage_area: Optional[float] = None
    shape_name: str = "div_stabil"
    verbose: bool = False
    segment_length_cells: float = 3.0
    output_dir: str = "."
    export_shapefile: bool = True

    def __post_init__(self):
        # Fails fast on out-of-range values and a policy missing its threshold
        _validate(asdict(self))
        self.base_level()

    def base_level(self) -> BaseLevelControl:
        """Tagged base level control for this configuration."""
        policy = parse_policy(self.base_level_control)
        if policy is BaseLevelPolicy.ELEVATION:
            return BaseLevelControl(policy, self.min_elevation)
        if policy is BaseLevelPolicy.DRAIN_AREA:
            return BaseLevelControl(policy, self.max_drainage_area)
        return BaseLevelControl(policy)

    @property
    def shapefile_path(self) -> Path:
        name = self.shape_name
        if not name.lower().endswith(".shp"):
            name = f"{name}.shp"
        return Path(self.output_dir) / name

    @classmethod
    def from_dict(cls, values: Optional[Dict[str, Any]] = None) -> "DivideStabilityConfig":
        """
        Validate a parameter dictionary and build a configuration.

        Raises:
            ConfigurationError: If the dictionary violates the schema or a
                base level policy lacks its threshold
        """
        values = _coerce_numbers(dict(values or {}))
        _validate(values)
        return cls(**values)

    @classmethod
    def from_yaml(
        cls, path: Union[str, Path], overrides: Optional[Dict[str, Any]] = None
    ) -> "DivideStabilityConfig":
        """
        Load configuration from a YAML file, applying ``overrides`` on top.
        """
        values = load_yaml_file(path)
        if overrides:
            values.update({k: v for k, v in overrides.items() if v is not None})
        return cls.from_dict(values)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def replace(self, **changes: Any) -> "DivideStabilityConfig":
        values = self.to_dict()
        unknown = set(changes) - {f.name for f in fields(self)}
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {sorted(unknown)}")
        values.update(changes)
        return DivideStabilityConfig.from_dict(values)

    def save(self, path: Union[str, Path]) -> None:
        """Write configuration as YAML."""
        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump(self.to_dict(), f, sort_keys=False)


def _coerce_numbers(values: Dict[str, Any]) -> Dict[str, Any]:
    """Convert numeric strings such as YAML's ``1e6`` for number-typed keys."""
    for key, value in values.items():
        schema = CONFIG_SCHEMA["properties"].get(key, {})
        types = schema.get("type", [])
        if isinstance(value, str) and "number" in (types if isinstance(types, list) else [types]):
            try:
                values[key] = float(value)
            except ValueError:
                raise ConfigurationError(f"{key}: '{value}' is not a number")
    return values


def _validate(values: Dict[str, Any]) -> None:
    """Check a parameter dictionary against the configuration schema."""
    try:
        jsonschema.validate(values, CONFIG_SCHEMA)
    except jsonschema.ValidationError as e:
        location = ".".join(str(p) for p in e.absolute_path) or "config"
        raise ConfigurationError(f"Invalid configuration at {location}: {e.message}")


def load_yaml_file(file_path: Union[str, Path]) -> Dict[str, Any]:
    """Load and parse a YAML mapping."""
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            content = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {file_path}: {e}")
    except OSError as e:
        raise ConfigurationError(f"Failed to load {file_path}: {e}")

    if content is None:
        return {}
    if not isinstance(content, dict):
        raise ConfigurationError(f"Configuration file {file_path} must contain a mapping")
    return content
