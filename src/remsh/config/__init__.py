"""Configuration management for remsh.

Loads and validates YAML-based configuration with Pydantic models.
Supports environment variable overrides.
"""

from remsh.config.settings import Settings, load_settings

__all__ = ["Settings", "load_settings"]
