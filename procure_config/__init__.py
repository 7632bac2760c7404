"""
procure_config -- Settings for the procurement back office.

``load_settings()`` is the single entry point.  It reads the YAML file
named by ``PROCURE_CONFIG`` (or an explicit path) and returns a frozen
``Settings``.

Usage::

    settings = load_settings()
    apply_settings(settings)
"""

from procure_config.loader import apply_settings, load_settings, parse_settings
from procure_config.schema import (
    DatabaseSettings,
    InventorySettings,
    LoggingSettings,
    Settings,
)

__all__ = [
    "DatabaseSettings",
    "InventorySettings",
    "LoggingSettings",
    "Settings",
    "apply_settings",
    "load_settings",
    "parse_settings",
]
