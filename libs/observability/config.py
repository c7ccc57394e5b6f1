"""Configuration management for observability.

Supports YAML configuration files with environment variable substitution.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Literal

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent / "config" / "default.yaml"

_ENV_PATTERN = re.compile(r"\$\{([^}]+)\}")
_TRUE_STRINGS = {"1", "true", "yes", "on"}


class ConfigurationError(Exception):
    """Raised when observability configuration is invalid."""


@dataclass
class SentryConfig:
    """Configuration for the Sentry backend."""

    enabled: bool = False
    dsn: str | None = None
    environment: str = "development"
    release: str | None = None
    traces_sample_rate: float = 0.1
    send_default_pii: bool = False


@dataclass
class OTELConfig:
    """Configuration for the OpenTelemetry backend."""

    enabled: bool = False
    service_name: str = "cat-engine"
    service_version: str | None = None
    endpoint: str | None = None
    exporter: Literal["console", "otlp", "none"] = "console"
    metrics_enabled: bool = True
    metrics_export_interval_millis: int = 60000
    traces_enabled: bool = True
    traces_sample_rate: float = 1.0


@dataclass
class ObservabilityConfig:
    """Root configuration for observability."""

    sentry: SentryConfig = field(default_factory=SentryConfig)
    otel: OTELConfig = field(default_factory=OTELConfig)

    def validate(self) -> None:
        """Validate the configuration.

        Raises:
            ConfigurationError: Listing every problem found.
        """
        errors: list[str] = []

        if self.sentry.enabled and not self.sentry.dsn:
            errors.append(
                "Sentry DSN is required when sentry.enabled=True. "
                "Set SENTRY_DSN or configure sentry.dsn."
            )

        for label, rate in (
            ("sentry.traces_sample_rate", self.sentry.traces_sample_rate),
            ("otel.traces_sample_rate", self.otel.traces_sample_rate),
        ):
            if not 0.0 <= rate <= 1.0:
                errors.append(f"Invalid {label}: {rate}. Value must be between 0.0 and 1.0.")

        if self.otel.exporter not in ("console", "otlp", "none"):
            errors.append(
                f"Invalid otel.exporter: '{self.otel.exporter}'. "
                "Value must be one of: console, none, otlp."
            )

        if self.otel.metrics_export_interval_millis <= 0:
            errors.append(
                "Invalid otel.metrics_export_interval_millis: "
                f"{self.otel.metrics_export_interval_millis}. Value must be positive."
            )

        if self.otel.enabled and self.otel.exporter == "otlp" and not self.otel.endpoint:
            logger.warning(
                "OTEL endpoint is not configured but using OTLP exporter. "
                "Telemetry will not be exported."
            )

        if errors:
            raise ConfigurationError(
                "Configuration validation failed:\n"
                + "\n".join(f"  - {error}" for error in errors)
            )


def substitute_env_vars(value: str) -> str:
    """Replace ``${VAR}`` and ``${VAR:default}`` with environment values.

    An unset variable without a default becomes the empty string.
    """

    def replace(match: re.Match[str]) -> str:
        name, sep, default = match.group(1).partition(":")
        return os.environ.get(name, default if sep else "")

    return _ENV_PATTERN.sub(replace, value)


def _substitute_all(data: Any) -> Any:
    if isinstance(data, str):
        return substitute_env_vars(data)
    if isinstance(data, dict):
        return {key: _substitute_all(value) for key, value in data.items()}
    if isinstance(data, list):
        return [_substitute_all(item) for item in data]
    return data


def _coerce(value: Any, default: Any) -> Any:
    """Convert a YAML/env string to the type of the field default."""
    if not isinstance(value, str):
        return value
    if isinstance(default, bool):
        return value.strip().lower() in _TRUE_STRINGS
    if isinstance(default, int):
        return int(value)
    if isinstance(default, float):
        return float(value)
    if default is None and value == "":
        return None
    return value


def _build_section(cls: type, data: dict[str, Any]) -> Any:
    section = cls()
    known = {f.name for f in fields(cls)}
    for key, value in data.items():
        if key not in known:
            logger.warning("Unknown observability config key ignored: %s.%s", cls.__name__, key)
            continue
        setattr(section, key, _coerce(value, getattr(section, key)))
    return section


def _load_yaml(path: Path) -> dict[str, Any]:
    try:
        with open(path) as f:
            return yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e


def load_config(
    config_path: str | None = None,
    service_name: str | None = None,
    environment: str | None = None,
    **overrides: Any,
) -> ObservabilityConfig:
    """Load observability configuration.

    Precedence, highest first:
    1. Explicit arguments and ``sentry_*`` / ``otel_*`` keyword overrides
    2. Environment variables referenced as ``${VAR}`` in YAML
    3. The YAML file at config_path
    4. The bundled default.yaml
    5. Dataclass defaults

    Raises:
        ConfigurationError: If the YAML is invalid or validation fails.
    """
    data: dict[str, Any] = {}
    if DEFAULT_CONFIG_PATH.exists():
        data = _load_yaml(DEFAULT_CONFIG_PATH)

    if config_path:
        path = Path(config_path)
        if not path.exists():
            raise ConfigurationError(f"Observability config file not found: {path}")
        for key, value in _load_yaml(path).items():
            if isinstance(value, dict) and isinstance(data.get(key), dict):
                data[key] = {**data[key], **value}
            else:
                data[key] = value

    data = _substitute_all(data)
    config = ObservabilityConfig(
        sentry=_build_section(SentryConfig, data.get("sentry") or {}),
        otel=_build_section(OTELConfig, data.get("otel") or {}),
    )

    if service_name:
        config.otel.service_name = service_name
    if environment:
        config.sentry.environment = environment

    for key, value in overrides.items():
        if key.startswith("sentry_"):
            setattr(config.sentry, key[len("sentry_"):], value)
        elif key.startswith("otel_"):
            setattr(config.otel, key[len("otel_"):], value)
        else:
            raise ConfigurationError(f"Unknown observability override: {key}")

    config.validate()
    return config
