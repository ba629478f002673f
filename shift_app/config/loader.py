"""Configuration loader with layered parameter precedence."""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import yaml

from ..errors import ConfigurationError
from .defaults import (
    ApprovalParams,
    DecompositionParams,
    DefaultConfig,
    ExecutorParams,
    LoggingParams,
    NotificationParams,
    ShiftWindow,
    ShiftWindowParams,
    StoreParams,
    WorkParams,
    get_default_config,
)

CONFIG_FILENAME = "shifts.yaml"


@dataclass(frozen=True)
class ConfigLoader:
    """Manages configuration loading with layered precedence."""

    config_dir: Path
    defaults: DefaultConfig

    @classmethod
    def create(cls, config_dir: Optional[Path] = None) -> "ConfigLoader":
        """Create a ConfigLoader instance."""
        if config_dir is None:
            config_dir = Path(__file__).parent.parent.parent / "config"

        return cls(
            config_dir=Path(config_dir),
            defaults=get_default_config(),
        )

    def _load_file(self) -> dict[str, Any]:
        config_file = self.config_dir / CONFIG_FILENAME

        if not config_file.exists():
            return {}

        try:
            with open(config_file) as f:
                loaded = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Cannot parse {config_file}: {e}") from e

        if loaded is None:
            return {}
        if not isinstance(loaded, dict):
            raise ConfigurationError(f"{config_file} must contain a mapping")
        return loaded

    def load_shift_config(self, shift_name: Optional[str]) -> dict[str, Any]:
        """Load file-level defaults merged with shift-specific overrides."""
        file_config = self._load_file()
        config = file_config.get("defaults") or {}

        if shift_name:
            shift_config = (file_config.get("shifts") or {}).get(shift_name) or {}
            config = self._deep_merge(config, shift_config)

        return config

    def merge_config(
        self,
        shift_name: Optional[str] = None,
        overrides: Optional[dict[str, Any]] = None
    ) -> dict[str, Any]:
        """
        Merge configuration with layered precedence.

        Priority order:
        1. Explicit overrides (highest priority)
        2. ``shifts.<name>`` section of shifts.yaml
        3. ``defaults`` section of shifts.yaml
        4. Built-in defaults (lowest priority)
        """
        config = self._dataclass_to_dict(self.defaults)
        config = self._deep_merge(config, self.load_shift_config(shift_name))

        if overrides:
            config = self._deep_merge(config, overrides)

        return config

    def load(
        self,
        shift_name: Optional[str] = None,
        overrides: Optional[dict[str, Any]] = None
    ) -> DefaultConfig:
        """Merge configuration and build the typed config object."""
        return self.build(self.merge_config(shift_name, overrides))

    @staticmethod
    def build(config: dict[str, Any]) -> DefaultConfig:
        """Build a typed ``DefaultConfig`` from a merged dictionary."""
        try:
            windows = tuple(
                window if isinstance(window, ShiftWindow) else ShiftWindow(**window)
                for window in config["shifts"]["windows"]
            )
            return DefaultConfig(
                executor=ExecutorParams(**config["executor"]),
                decomposition=DecompositionParams(**config["decomposition"]),
                approval=ApprovalParams(**config["approval"]),
                shifts=ShiftWindowParams(windows=windows),
                store=StoreParams(**config["store"]),
                notifications=NotificationParams(**config["notifications"]),
                work=WorkParams(**config["work"]),
                logging=LoggingParams(**config["logging"]),
            )
        except (KeyError, TypeError) as e:
            raise ConfigurationError(f"Invalid configuration structure: {e}") from e

    def _dataclass_to_dict(self, obj: Any) -> dict[str, Any]:
        """Convert nested dataclasses to dictionary."""
        if hasattr(obj, '__dataclass_fields__'):
            result = {}
            for field_name in obj.__dataclass_fields__:
                value = getattr(obj, field_name)
                if hasattr(value, '__dataclass_fields__'):
                    result[field_name] = self._dataclass_to_dict(value)
                elif isinstance(value, tuple):
                    result[field_name] = [self._dataclass_to_dict(item) for item in value]
                else:
                    result[field_name] = value
            return result
        return obj  # type: ignore[no-any-return]

    def _deep_merge(self, base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
        """Deep merge two dictionaries."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result
