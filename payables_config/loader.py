"""
Configuration Loader (``payables_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into the frozen
``payables_config.schema`` dataclasses, collecting every validation error
before failing.  The single public entry point for runtime config is
``payables_config.get_active_config()``.

Invariants enforced
-------------------
* Unknown keys are errors, not silently ignored.
* Decimal settings must parse as non-negative decimals.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid content  -> ``ConfigurationError`` listing every problem.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import fields
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from payables_config.schema import (
    DatabaseConfig,
    MatchingConfig,
    PayablesConfig,
    RecommendationConfig,
    RiskGatewayConfig,
)
from payables_kernel.exceptions import ConfigurationError

_SECTIONS: dict[str, type] = {
    "matching": MatchingConfig,
    "recommendation": RecommendationConfig,
    "risk_gateway": RiskGatewayConfig,
    "database": DatabaseConfig,
}

# Sections whose settings are all decimals carried as strings.
_DECIMAL_SECTIONS = (MatchingConfig, RecommendationConfig)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _check_decimal(section: str, name: str, value: Any, errors: list[str]) -> str:
    text = str(value)
    try:
        parsed = Decimal(text)
    except InvalidOperation:
        errors.append(f"{section}.{name}: not a decimal: {value!r}")
        return text
    if not parsed.is_finite() or parsed < 0:
        errors.append(f"{section}.{name}: must be a non-negative number, got {value!r}")
    return text


def _parse_section(section: str, cls: type, data: Any, errors: list[str]) -> Any:
    if data is None:
        return cls()
    if not isinstance(data, dict):
        errors.append(f"{section}: expected a mapping, got {type(data).__name__}")
        return cls()

    known = {f.name for f in fields(cls)}
    for key in sorted(set(data) - known):
        errors.append(f"{section}.{key}: unknown setting")

    values: dict[str, Any] = {}
    for name in sorted(known & set(data)):
        if cls in _DECIMAL_SECTIONS:
            values[name] = _check_decimal(section, name, data[name], errors)
        else:
            values[name] = data[name]
    return cls(**values)


def _validate(config: PayablesConfig, errors: list[str]) -> None:
    if _is_decimal(config.matching.score_precision) and Decimal(
        config.matching.score_precision
    ) <= 0:
        errors.append("matching.score_precision: must be positive")
    if _is_decimal(config.recommendation.approve_score) and Decimal(
        config.recommendation.approve_score
    ) > 100:
        errors.append("recommendation.approve_score: must be within [0, 100]")

    gateway = config.risk_gateway
    if not isinstance(gateway.enabled, bool):
        errors.append("risk_gateway.enabled: must be true or false")
    if gateway.enabled is True and not gateway.endpoint:
        errors.append("risk_gateway.endpoint: required when the gateway is enabled")
    if not isinstance(gateway.timeout_seconds, (int, float)) or isinstance(
        gateway.timeout_seconds, bool
    ) or gateway.timeout_seconds <= 0:
        errors.append("risk_gateway.timeout_seconds: must be a positive number")
    if not isinstance(gateway.max_workers, int) or isinstance(
        gateway.max_workers, bool
    ) or gateway.max_workers < 1:
        errors.append("risk_gateway.max_workers: must be a positive integer")
    if not gateway.api_key_env:
        errors.append("risk_gateway.api_key_env: required")

    if not config.database.url:
        errors.append("database.url: required")


def _is_decimal(text: str) -> bool:
    try:
        return Decimal(text).is_finite()
    except InvalidOperation:
        return False


def parse_config(data: dict[str, Any], source: str = "") -> PayablesConfig:
    """
    Parse and validate a configuration dict.

    Raises:
        ConfigurationError: listing every problem found.
    """
    errors: list[str] = []
    if not isinstance(data, dict):
        raise ConfigurationError(["configuration root must be a mapping"], source)

    for key in sorted(set(data) - set(_SECTIONS) - {"config_id", "version"}):
        errors.append(f"{key}: unknown section")

    config_id = data.get("config_id")
    if not config_id or not isinstance(config_id, str):
        errors.append("config_id: required string")
    version = data.get("version", 1)
    if not isinstance(version, int) or isinstance(version, bool) or version < 1:
        errors.append("version: must be a positive integer")

    sections = {
        name: _parse_section(name, cls, data.get(name), errors)
        for name, cls in _SECTIONS.items()
    }

    config = PayablesConfig(
        config_id=str(config_id or ""),
        version=version if isinstance(version, int) else 0,
        checksum=compute_checksum(data),
        **sections,
    )
    _validate(config, errors)

    if errors:
        raise ConfigurationError(errors, source)
    return config


def load_config_file(path: Path) -> PayablesConfig:
    """Load and parse one YAML configuration file."""
    return parse_config(load_yaml_file(path), source=str(path))
