"""
Configuration Loader (``procure_config.loader``).

Responsibility
--------------
Loads the YAML settings file and parses it into ``procure_config.schema``
dataclasses.

Resolution order
----------------
1. ``path`` argument, else the ``PROCURE_CONFIG`` environment variable.
   No path, or a path that does not exist, yields defaults.
2. ``DATABASE_URL`` overrides ``database.url``.

Failure modes
-------------
* Malformed YAML -> ``yaml.YAMLError`` propagates.
* Unknown section or key -> ``ValueError``.
"""

from __future__ import annotations

import os
from dataclasses import fields
from pathlib import Path
from typing import Any

import yaml

from procure_config.schema import (
    DatabaseSettings,
    InventorySettings,
    LoggingSettings,
    Settings,
)
from procure_kernel.db.engine import init_engine_from_url
from procure_kernel.logging_config import configure_logging, get_logger
from procure_modules.procurement.config import AccountConfig

logger = get_logger("config.loader")

CONFIG_ENV_VAR = "PROCURE_CONFIG"
DATABASE_URL_ENV_VAR = "DATABASE_URL"

_SECTIONS = frozenset({"database", "logging", "accounts", "inventory"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping")
    return data


def _section(cls, name: str, data: dict[str, Any] | None):
    data = data or {}
    if not isinstance(data, dict):
        raise ValueError(f"Settings section '{name}' must be a mapping")
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown {name} settings: {unknown}")
    return cls(**data)


def parse_settings(data: dict[str, Any]) -> Settings:
    """Parse a settings mapping (already loaded from YAML)."""
    unknown = sorted(set(data) - _SECTIONS)
    if unknown:
        raise ValueError(f"Unknown settings sections: {unknown}")
    return Settings(
        database=_section(DatabaseSettings, "database", data.get("database")),
        logging=_section(LoggingSettings, "logging", data.get("logging")),
        accounts=AccountConfig.from_dict(data.get("accounts") or {}),
        inventory=_section(InventorySettings, "inventory", data.get("inventory")),
    )


def load_settings(path: str | Path | None = None) -> Settings:
    """
    Load settings from ``path`` or ``$PROCURE_CONFIG``.

    Environment variables are read here and nowhere else.
    """
    raw_path = path or os.environ.get(CONFIG_ENV_VAR)
    data: dict[str, Any] = {}
    source = "defaults"
    if raw_path:
        config_path = Path(raw_path)
        if config_path.exists():
            data = load_yaml_file(config_path)
            source = str(config_path)
        else:
            logger.warning("settings_file_missing", extra={"path": str(config_path)})

    database_url = os.environ.get(DATABASE_URL_ENV_VAR)
    if database_url:
        database = dict(data.get("database") or {})
        database["url"] = database_url
        data = {**data, "database": database}

    settings = parse_settings(data)
    logger.info("settings_loaded", extra={
        "source": source,
        "dialect": settings.database.url.split(":", 1)[0],
        "carry_forward": settings.inventory.carry_forward_across_months,
    })
    return settings


def apply_settings(settings: Settings) -> None:
    """
    Configure process-wide logging and the database engine from ``settings``.

    Call once at startup, before any service is constructed.
    """
    configure_logging(level=settings.logging.level)
    database = settings.database
    init_engine_from_url(
        database.url,
        echo=database.echo,
        pool_size=database.pool_size,
        max_overflow=database.max_overflow,
        pool_timeout=database.pool_timeout,
    )
