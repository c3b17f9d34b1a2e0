"""YAML configuration loader with environment variable overrides.

Configuration is layered (later layers win):

    1. config/config.yaml  -- static defaults checked into the repo
    2. .env file           -- local developer overrides
    3. Environment vars    -- deploy-time values

The YAML file is sectioned; ``section.key`` maps onto the flat settings
field ``section_key``::

    search:
      top_k: 5          ->  Settings.search_top_k
    hybrid:
      vector_weight: 0.7 -> Settings.hybrid_vector_weight

Only fields explicitly set through the environment (or ``.env``) override
YAML values; unset fields keep whatever the YAML file says.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import ValidationError

from knowledge_engine.config.settings import Settings
from knowledge_engine.utils.errors import ConfigurationError

logger = structlog.get_logger(logger_name=__name__)


def load_config(path: str = "config/config.yaml") -> dict[str, Any]:
    """Load the YAML config and deep-merge environment-set values on top.

    Returns
    -------
    dict
        Sectioned configuration dictionary.
    """
    config_path = Path(path)
    if config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            yaml_config = yaml.safe_load(f) or {}
    else:
        yaml_config = {}

    if not isinstance(yaml_config, dict):
        raise ConfigurationError(message=f"{path} must contain a mapping at the top level")

    env_settings = Settings()
    env_overrides: dict[str, Any] = {}
    for field_name in env_settings.model_fields_set:
        section, _, key = field_name.partition("_")
        env_overrides.setdefault(section, {})[key] = getattr(env_settings, field_name)

    _deep_merge(yaml_config, env_overrides)
    return yaml_config


def load_settings(path: str = "config/config.yaml") -> Settings:
    """Build a :class:`Settings` from the YAML file plus environment overrides."""
    config = load_config(path)
    known = set(Settings.model_fields)

    values: dict[str, Any] = {}
    for section, entries in config.items():
        if not isinstance(entries, dict):
            logger.warning("config_section_ignored", section=section)
            continue
        for key, value in entries.items():
            field_name = f"{section}_{key}"
            if field_name not in known:
                logger.warning("config_key_unknown", key=f"{section}.{key}")
                continue
            values[field_name] = value

    try:
        return Settings(**values)
    except ValidationError as exc:
        raise ConfigurationError(message=f"Invalid configuration in {path}: {exc}") from exc


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
