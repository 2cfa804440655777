"""Configuration validation using JSON Schema."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict

import jsonschema
import yaml
from jsonschema import Draft7Validator, validators

from exceptions import ConfigValidationError
from log_config.logger import get_logger

logger = get_logger(__name__)

# JSON Schema for default.yaml configuration
CONFIG_SCHEMA = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "properties": {
        "scanner": {
            "type": "object",
            "default": {},
            "additionalProperties": False,
            "properties": {
                "canvas_width": {"type": "integer", "minimum": 16, "maximum": 3840, "default": 640},
                "canvas_height": {"type": "integer", "minimum": 16, "maximum": 2160, "default": 480},
                "facing": {"type": "string", "minLength": 1, "default": "environment"},
                "mirror": {"type": "boolean", "default": False},
                "square": {"type": "boolean", "default": True},
                "update_time_ms": {"type": "integer", "minimum": 10, "maximum": 60000, "default": 500},
                "stop_after_scan": {"type": "boolean", "default": True},
                "debug": {"type": "boolean", "default": False},
                "preview_width": {"type": "integer", "minimum": 16, "maximum": 3840, "default": 600},
                "preview_height": {"type": "integer", "minimum": 16, "maximum": 2160, "default": 500},
                "ideal_width": {"type": "integer", "minimum": 160, "maximum": 7680, "default": 1920},
                "ideal_height": {"type": "integer", "minimum": 120, "maximum": 4320, "default": 1080},
            },
        },
    },
}


def extend_with_default(validator_class):
    """Extend JSON Schema validator to set default values."""
    validate_properties = validator_class.VALIDATORS["properties"]

    def set_defaults(validator, properties, instance, schema):
        if isinstance(instance, dict):
            for prop, subschema in properties.items():
                if "default" in subschema:
                    instance.setdefault(prop, subschema["default"])

        for error in validate_properties(validator, properties, instance, schema):
            yield error

    return validators.extend(validator_class, {"properties": set_defaults})


DefaultValidatingValidator = extend_with_default(Draft7Validator)


def validate_config(config: Dict[str, Any]) -> None:
    """Validate configuration against JSON Schema.

    Missing keys are filled in place from the schema defaults.

    Args:
        config: Configuration dictionary

    Raises:
        ConfigValidationError: If configuration is invalid
    """
    try:
        validator = DefaultValidatingValidator(CONFIG_SCHEMA)
        errors = list(validator.iter_errors(config))

        if errors:
            error_messages = []
            for error in errors:
                path = " -> ".join(str(p) for p in error.path) if error.path else "root"
                error_messages.append(f"{path}: {error.message}")

            logger.error(f"Configuration validation failed with {len(errors)} errors")
            for msg in error_messages:
                logger.error(f"  - {msg}")

            raise ConfigValidationError(
                f"Configuration validation failed with {len(errors)} error(s). See logs for details.",
                validation_errors=error_messages,
            )

        logger.debug("Configuration validation passed")

    except jsonschema.exceptions.SchemaError as e:
        logger.error(f"Invalid schema: {e}")
        raise ConfigValidationError(f"Invalid schema definition: {e}")


def validate_config_file(config_path: str) -> None:
    """Validate a YAML configuration file.

    Args:
        config_path: Path to configuration file

    Raises:
        ConfigValidationError: If configuration is invalid
    """
    path = Path(config_path)
    if not path.exists():
        raise ConfigValidationError(f"Configuration file not found: {config_path}")

    try:
        with open(path, "r") as f:
            config = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigValidationError(f"Failed to parse YAML: {e}")

    validate_config(config)
