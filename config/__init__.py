"""Configuration module for HouseHunt.

Centralized configuration management using pydantic-settings, loading
timeouts, selectors and retry settings from environment variables.
"""

from config.settings import GlobalConfig, get_config

__all__ = ["GlobalConfig", "get_config"]
