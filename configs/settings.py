"""Configuration loading for the QR capture scanner."""

from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path

import yaml

from app.events.error_bus import ErrorCategory, ErrorSeverity, publish_error
from configs.validator import validate_config
from exceptions import ConfigError, InvalidConfigError
from log_config.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class CaptureConfig:
    canvas_width: int = 640
    canvas_height: int = 480
    facing: str = "environment"
    mirror: bool = False
    square: bool = True  # Crop the live preview to the raster aspect
    update_time_ms: int = 500
    stop_after_scan: bool = True
    debug: bool = False
    preview_width: int = 600
    preview_height: int = 500
    ideal_width: int = 1920  # Resolution hint passed to the capture provider
    ideal_height: int = 1080

    def __post_init__(self) -> None:
        for name in ("canvas_width", "canvas_height", "preview_width", "preview_height",
                     "ideal_width", "ideal_height"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive, got {getattr(self, name)}")
        if self.update_time_ms <= 0:
            raise ConfigError(f"update_time_ms must be positive, got {self.update_time_ms}")

    @property
    def update_interval_s(self) -> float:
        return self.update_time_ms / 1000.0

    def with_overrides(self, **changes) -> "CaptureConfig":
        """Return a copy with the non-None ``changes`` applied."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})


def _read_config(path: Path) -> CaptureConfig:
    """Read, validate and build the config; raises ``ConfigError`` subclasses."""
    try:
        logger.info(f"Loading configuration from {path}")
        if not path.exists():
            raise InvalidConfigError(f"Configuration file not found: {path}")

        data = yaml.safe_load(path.read_text()) or {}

        # Validate against JSON Schema (fills defaults in place)
        validate_config(data)

    except yaml.YAMLError as e:
        logger.error(f"Failed to parse YAML configuration: {e}")
        raise InvalidConfigError(f"Failed to parse configuration file: {e}")
    except (TypeError, ValueError) as e:
        logger.error(f"Invalid configuration value: {e}")
        raise InvalidConfigError(f"Invalid configuration value: {e}")

    try:
        config = CaptureConfig(**data.get("scanner", {}))
    except (TypeError, ConfigError) as e:
        logger.error(f"Failed to construct configuration objects: {e}")
        raise InvalidConfigError(f"Failed to construct configuration: {e}")

    logger.info(
        f"Configuration loaded successfully: {config.canvas_width}x{config.canvas_height} raster, "
        f"facing={config.facing}, every {config.update_time_ms}ms"
    )
    return config


def load_config(path: Path) -> CaptureConfig:
    """Load and validate scanner configuration from YAML file.

    Failures are also reported on the error bus under ``ErrorCategory.CONFIG``.

    Raises:
        ConfigError: If configuration is invalid or cannot be loaded
    """
    try:
        return _read_config(path)
    except ConfigError as e:
        publish_error(
            category=ErrorCategory.CONFIG,
            severity=ErrorSeverity.ERROR,
            message=str(e),
            source="load_config",
            exception=e,
            path=str(path),
        )
        raise
