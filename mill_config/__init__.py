"""
mill_config -- single public entrypoint for mill configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Services receive the returned ``MillConfig``
    (or call this function once when none is injected); nothing else reads
    configuration files.

Invariants enforced:
    - Single entrypoint: all runtime config flows through get_active_config().
    - The returned MillConfig is frozen and has passed validation.

Failure modes:
    - FileNotFoundError -- the requested configuration file does not exist.
    - ConfigError -- structural or value validation failures.

Audit relevance:
    Every successful call emits a ``mill_config_loaded`` log entry with the
    config_id, version and checksum, tying postings back to the exact
    configuration that governed them.
"""

from __future__ import annotations

import logging
from pathlib import Path

from mill_config.loader import load_yaml_file, parse_config
from mill_config.schema import ConfigError, MillConfig

__all__ = ["ConfigError", "MillConfig", "get_active_config"]

_logger = logging.getLogger("mill_kernel.config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(config_path: Path | str | None = None) -> MillConfig:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: Override path to a YAML configuration file.
            Defaults to mill_config/sets/default.yaml.

    Returns:
        A validated, frozen MillConfig.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigError: If validation fails.
    """
    path = Path(config_path) if config_path is not None else _DEFAULT_CONFIG_PATH
    config = parse_config(load_yaml_file(path))

    _logger.info(
        "mill_config_loaded",
        extra={
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "source": str(path),
        },
    )
    return config
