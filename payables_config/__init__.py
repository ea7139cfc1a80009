"""
payables_config -- single public entrypoint for payables configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Returns a validated, frozen
    ``PayablesConfig``.  Services and scripts never read YAML files
    directly; the gateway API key is the one value read from the
    environment, through ``bridges.resolve_api_key``.

Architecture position:
    Configuration -- sits above ``payables_kernel`` and
    ``payables_engines``.  Neither imports from ``payables_config``;
    bridges in this package translate the schema into their inputs.

Invariants enforced:
    - Single entrypoint: all runtime config flows through
      ``get_active_config()``.
    - Validation before use: every problem in the file is reported at once
      via ``ConfigurationError``.
    - Deterministic checksum: the same YAML always yields the same
      ``PayablesConfig.checksum``.

Failure modes:
    - ``FileNotFoundError`` -- the requested configuration file is missing.
    - ``yaml.YAMLError`` -- the file is not valid YAML.
    - ``ConfigurationError`` -- schema or value validation failures.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``PAYABLES_CONFIG_TRACE`` log entry carrying the config id, version
    and checksum, tying each match score to the policy that produced it.
"""

from __future__ import annotations

import logging
from pathlib import Path

from payables_config.loader import load_config_file
from payables_config.schema import PayablesConfig

_logger = logging.getLogger("payables_kernel.config")

_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"
DEFAULT_CONFIG_PATH = _DEFAULT_CONFIG_DIR / "default.yaml"


def get_active_config(config_path: Path | str | None = None) -> PayablesConfig:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: Override path to a YAML configuration file.  Defaults
            to ``payables_config/sets/default.yaml``.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigurationError: If validation fails.
    """
    path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
    config = load_config_file(path)

    _logger.info(
        "PAYABLES_CONFIG_TRACE",
        extra={
            "trace_type": "PAYABLES_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "source": str(path),
            "risk_gateway_enabled": bool(
                config.risk_gateway.enabled and config.risk_gateway.endpoint
            ),
        },
    )
    return config


__all__ = ["DEFAULT_CONFIG_PATH", "PayablesConfig", "get_active_config"]
