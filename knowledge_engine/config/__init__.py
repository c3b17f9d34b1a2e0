"""Configuration module -- exports Settings and the YAML-aware loaders."""

from knowledge_engine.config.loader import load_config, load_settings
from knowledge_engine.config.settings import Settings

__all__ = ["Settings", "load_config", "load_settings"]
