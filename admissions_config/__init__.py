"""
admissions_config -- single public entrypoint for admissions configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Returns a validated
    ``AdmissionsConfigurationSet``: engine settings, the role/permission
    map, notification templates and the workflow templates to install.
    YAML loading is internal build/test tooling.

Architecture position:
    Configuration -- sits above ``admissions_kernel`` and below
    ``admissions_services``.  The kernel MUST NEVER import from
    ``admissions_config``; ``bridges`` translates configuration into
    kernel inputs.

Invariants enforced:
    - Single entrypoint: runtime configuration flows through
      ``get_active_config()``.
    - Build-time validation: every workflow template must produce a graph
      that would pass activation before a set is returned.
    - Deterministic checksum: the same YAML always yields the same
      ``AdmissionsConfigurationSet.checksum``.

Failure modes:
    - ``FileNotFoundError`` -- the requested set directory does not exist.
    - ``ConfigValidationError`` (a ``ValueError``) -- validation failures.

Audit relevance:
    Every successful ``get_active_config()`` call emits an
    ``ADMISSIONS_CONFIG_TRACE`` log entry with the config id, version and
    checksum.
"""

from __future__ import annotations

import logging
from pathlib import Path

from admissions_config.loader import load_config_set
from admissions_config.schema import AdmissionsConfigurationSet
from admissions_config.validator import ConfigValidationError, validate_configuration

_logger = logging.getLogger("admissions_kernel.config")

# Default configuration sets directory
_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"


def get_active_config(
    config_dir: Path | None = None,
    set_name: str = "default",
) -> AdmissionsConfigurationSet:
    """The ONLY public configuration entrypoint.

    Guarantees:
        - The returned set has passed ``validate_configuration``.
        - An ``ADMISSIONS_CONFIG_TRACE`` log entry is emitted on every
          successful call.

    Non-goals:
        - Does NOT cache; callers hold the returned set.

    Args:
        config_dir: Override path to the configuration sets directory.
            Defaults to admissions_config/sets/.
        set_name: Name of the set directory under ``config_dir``.

    Raises:
        FileNotFoundError: If the set directory is missing.
        ConfigValidationError: If validation fails.
    """
    sets_dir = config_dir or _DEFAULT_CONFIG_DIR
    set_dir = sets_dir / set_name
    if not set_dir.is_dir():
        raise FileNotFoundError(f"No configuration set '{set_name}' in {sets_dir}")

    config = load_config_set(set_dir)

    validation = validate_configuration(config)
    if not validation.is_valid:
        raise ConfigValidationError(validation.errors)
    for warning in validation.warnings:
        _logger.warning("config_validation_warning", extra={"warning": warning})

    _logger.info(
        "ADMISSIONS_CONFIG_TRACE",
        extra={
            "trace_type": "ADMISSIONS_CONFIG_TRACE",
            "config_set_id": config.config_id,
            "config_set_version": config.version,
            "checksum": config.checksum,
            "workflow_count": len(config.workflows),
            "permission_count": len(config.settings.role_permissions),
        },
    )
    return config


__all__ = [
    "AdmissionsConfigurationSet",
    "ConfigValidationError",
    "get_active_config",
]
