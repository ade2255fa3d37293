"""Populator configuration loading."""

from collections.abc import Mapping
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from .core.types import RegistryConfig
from .exceptions import ValidationError
from .populate.copy import DEFAULT_BUFFER_SIZE

DEFAULT_STORE_PATH = "/tmp"
DEFAULT_DEVICE_PATH = "/dev/block"
DEFAULT_PROGRESS_INTERVAL = 5.0


@dataclass(frozen=True)
class PopulatorConfig:
    """Settings of a populate run."""

    store_path: str = DEFAULT_STORE_PATH
    device_path: str = DEFAULT_DEVICE_PATH
    buffer_size: int = DEFAULT_BUFFER_SIZE
    progress_interval: Optional[float] = DEFAULT_PROGRESS_INTERVAL
    registry: RegistryConfig = field(default_factory=RegistryConfig)

    def __post_init__(self) -> None:
        if isinstance(self.buffer_size, bool) or not isinstance(self.buffer_size, int):
            raise ValidationError(f"buffer_size must be an integer, got {self.buffer_size!r}")
        if self.buffer_size <= 0:
            raise ValidationError(f"buffer_size must be positive, got {self.buffer_size}")
        if self.progress_interval is not None and self.progress_interval <= 0:
            raise ValidationError(
                f"progress_interval must be positive, got {self.progress_interval}"
            )
        if not self.store_path or not self.device_path:
            raise ValidationError("store_path and device_path must not be empty")

    @classmethod
    def from_mapping(cls, data: Mapping) -> "PopulatorConfig":
        """Build a configuration from a mapping, e.g. a parsed YAML file.

        Raises:
            ValidationError: On unknown keys or invalid values
        """
        values = dict(data)
        registry = values.pop("registry", None) or {}
        if not isinstance(registry, Mapping):
            raise ValidationError("registry must be a mapping")

        _check_keys("config", values, cls)
        _check_keys("registry", registry, RegistryConfig)

        registry_values = dict(registry)
        if "insecure_registries" in registry_values:
            hosts = registry_values["insecure_registries"] or []
            if not isinstance(hosts, (list, tuple)):
                raise ValidationError("registry.insecure_registries must be a list")
            registry_values["insecure_registries"] = tuple(str(host) for host in hosts)

        try:
            return cls(registry=RegistryConfig(**registry_values), **values)
        except TypeError as e:
            raise ValidationError(f"invalid configuration: {e}") from e

    def with_overrides(self, **overrides: Any) -> "PopulatorConfig":
        """Return a copy with the non-None ``overrides`` applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


def _check_keys(section: str, values: Mapping, target) -> None:
    known = {f.name for f in fields(target)}
    unknown = sorted(set(values) - known)
    if unknown:
        raise ValidationError(f"unknown {section} keys: {', '.join(map(str, unknown))}")


def _load_yaml_mapping(path: Union[str, Path]) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as handle:
            payload = yaml.safe_load(handle)
    except OSError as e:
        raise ValidationError(f"Cannot read config file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ValidationError(f"Invalid YAML in {path}: {e}") from e

    if payload is None:
        payload = {}
    if not isinstance(payload, Mapping):
        raise ValidationError(f"Config file must contain a YAML mapping: {path}")
    return dict(payload)


def load_config(path: Optional[Union[str, Path]] = None) -> PopulatorConfig:
    """Load a PopulatorConfig from a YAML file, or the defaults without one.

    Examples:
        # populator.yaml
        # store_path: /var/lib/populator
        # buffer_size: 8388608
        # registry:
        #   insecure_registries: ["registry.local:5000"]
        config = load_config("populator.yaml")
    """
    if path is None:
        return PopulatorConfig()
    return PopulatorConfig.from_mapping(_load_yaml_mapping(path))
