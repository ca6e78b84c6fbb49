"""YAML configuration loading for FeedBrotr.

Uses ``yaml.safe_load`` so configuration files can only produce plain
strings, numbers, lists, and dicts. The returned dictionary is validated by
the caller's Pydantic model (e.g.
[TimelineConfig][feedbrotr.services.timeline.TimelineConfig] or
[PoolConfig][feedbrotr.core.pool.PoolConfig]).

Examples:
    ```python
    from feedbrotr.core.yaml import load_yaml

    config = load_yaml("config/timeline.yaml")
    ```
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from feedbrotr.exceptions import ConfigurationError


def load_yaml(config_path: str | Path) -> dict[str, Any]:
    """Load and parse a YAML configuration file.

    Args:
        config_path: Path to the YAML file (absolute or relative).

    Returns:
        Parsed configuration as a nested dictionary. Returns an empty dict
        if the file exists but contains no data.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigurationError: If the file is not valid YAML or its top level
            is not a mapping.
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with path.open(encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Config file {config_path} must contain a mapping, got {type(data).__name__}"
        )
    return data
