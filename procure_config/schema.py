"""
Settings schema.

Typed view of the YAML settings file.  The loader parses the file into
these dataclasses; nothing else in the system reads the file or the
environment.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from procure_modules.procurement.config import AccountConfig


@dataclass(frozen=True)
class DatabaseSettings:
    """Connection settings passed to ``init_engine_from_url``."""

    url: str = "sqlite://"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"


@dataclass(frozen=True)
class InventorySettings:
    # Open each month from the prior month's balances instead of zero.
    carry_forward_across_months: bool = False


@dataclass(frozen=True)
class Settings:
    """Everything the back office needs at startup."""

    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    accounts: AccountConfig = field(default_factory=AccountConfig)
    inventory: InventorySettings = field(default_factory=InventorySettings)
