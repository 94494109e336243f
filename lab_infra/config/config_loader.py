"""
Configuration Loader.

Builds a LabInfraConfig from three layers, later layers winning:

1. Schema defaults (the reference lab environment)
2. A YAML file (explicit path, LAB_INFRA_CONFIG_FILE, or ./lab-infra.yaml)
3. CDK context under the `labInfra` key (`cdk synth -c labInfra='{...}'`
   or the "context" block of cdk.json)

Mappings are merged recursively; lists and scalars replace the lower layer.
"""

import json
from collections.abc import Mapping
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

import structlog
import yaml
from pydantic import ValidationError

from lab_infra.config.settings import get_settings
from lab_infra.config.stack_schema import LabInfraConfig
from lab_infra.core.exceptions import ConfigNotFoundError, ConfigValidationError

logger = structlog.get_logger(__name__)

CONTEXT_KEY = "labInfra"
DEFAULT_CONFIG_FILENAME = "lab-infra.yaml"


# =============================================================================
# Merge Helpers
# =============================================================================

def deep_merge(base: Any, overlay: Any, *, path: str = "") -> Any:
    """Merge `overlay` onto `base`, recursing into mappings."""
    if overlay is None:
        return base

    if base is None:
        return overlay

    if isinstance(base, Mapping):
        if not isinstance(overlay, Mapping):
            raise ConfigValidationError(
                f"Invalid config overlay at {path or '<root>'}: "
                f"expected a mapping, got {type(overlay).__name__}"
            )
        merged: dict[str, Any] = dict(base)
        for key, overlay_value in overlay.items():
            next_path = f"{path}.{key}" if path else str(key)
            if key in base:
                merged[key] = deep_merge(base[key], overlay_value, path=next_path)
            else:
                merged[key] = overlay_value
        return merged

    if isinstance(base, (list, tuple)):
        if not isinstance(overlay, (list, tuple)):
            raise ConfigValidationError(
                f"Invalid config overlay at {path}: expected a list, got {type(overlay).__name__}"
            )
        return list(overlay)

    if isinstance(overlay, (Mapping, list, tuple)):
        raise ConfigValidationError(
            f"Invalid config overlay at {path}: expected {type(base).__name__}, "
            f"got {type(overlay).__name__}"
        )

    return overlay


def _load_yaml_mapping(path: Path) -> dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as handle:
            payload = yaml.safe_load(handle)
    except yaml.YAMLError as exc:
        raise ConfigValidationError(f"Invalid YAML in {path}: {exc}") from exc

    if payload is None:
        return {}
    if not isinstance(payload, Mapping):
        raise ConfigValidationError(f"Config file must contain a YAML mapping: {path}")
    return dict(payload)


def _context_overlay(context: Optional[Mapping[str, Any]]) -> dict[str, Any]:
    """Extract the labInfra overlay from CDK context values."""
    if not context:
        return {}

    value = context.get(CONTEXT_KEY)
    if value is None:
        return {}

    # `cdk -c key=value` always passes strings
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError as exc:
            raise ConfigValidationError(
                f"CDK context {CONTEXT_KEY!r} is not valid JSON: {exc}"
            ) from exc

    if not isinstance(value, Mapping):
        raise ConfigValidationError(f"CDK context {CONTEXT_KEY!r} must be a mapping")
    return dict(value)


def _resolve_config_path(path: Optional[Path | str]) -> tuple[Optional[Path], bool]:
    """Return the file to load and whether it was requested explicitly."""
    if path is not None:
        return Path(path), True

    configured = get_settings().config_file
    if configured is not None:
        return Path(configured), True

    default = Path.cwd() / DEFAULT_CONFIG_FILENAME
    if default.is_file():
        return default, False
    return None, False


def _format_validation_errors(exc: ValidationError) -> list[str]:
    errors = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"]) or "<root>"
        errors.append(f"{location}: {error['msg']}")
    return errors


# =============================================================================
# Public API
# =============================================================================

def load_config(
    path: Optional[Path | str] = None,
    context: Optional[Mapping[str, Any]] = None,
) -> LabInfraConfig:
    """
    Load and validate the stack configuration.

    Args:
        path: YAML file to load. Falls back to LAB_INFRA_CONFIG_FILE, then to
            ./lab-infra.yaml when present.
        context: CDK context values; the `labInfra` entry is merged last.

    Returns:
        Validated LabInfraConfig.

    Raises:
        ConfigNotFoundError: When an explicitly requested file does not exist.
        ConfigValidationError: When a layer is malformed or validation fails.
    """
    data: dict[str, Any] = {}

    config_path, explicit = _resolve_config_path(path)
    if config_path is not None:
        if not config_path.is_file():
            if explicit:
                raise ConfigNotFoundError(
                    f"Config file not found: {config_path}",
                    config_key="config_file",
                )
        else:
            data = deep_merge(data, _load_yaml_mapping(config_path))
            logger.debug("config_file_loaded", path=str(config_path))

    overlay = _context_overlay(context)
    if overlay:
        data = deep_merge(data, overlay)
        logger.debug("config_context_applied", keys=sorted(overlay))

    try:
        config = LabInfraConfig.model_validate(data)
    except ValidationError as exc:
        errors = _format_validation_errors(exc)
        logger.error("config_validation_failed", errors=errors)
        raise ConfigValidationError("Stack configuration is invalid", errors) from exc

    return config


@lru_cache
def get_config() -> LabInfraConfig:
    """Get the cached configuration from the default sources."""
    return load_config()


def reset_config_cache() -> None:
    """Clear the cached configuration."""
    get_config.cache_clear()


def dump_config(config: LabInfraConfig) -> str:
    """Render a configuration as YAML, e.g. to seed a lab-infra.yaml."""
    return yaml.safe_dump(config.model_dump(mode="json"), sort_keys=False)
