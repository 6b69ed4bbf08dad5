"""Configuration module for the obligation engine."""

from fiscal_obligations.config.logging import configure_logging, run_context
from fiscal_obligations.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings", "configure_logging", "run_context"]
