"""
Roles -- typed capability checks.

The auth collaborator resolves a bearer token into a user id and a set of
``Role`` values.  The core never parses role strings; it only checks a
granted set against the roles an action requires.
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum

from procure_kernel.exceptions import AuthorizationError
from procure_kernel.logging_config import get_logger

logger = get_logger("domain.roles")


class Role(str, Enum):
    """Roles recognised by the procurement back office."""

    ADMIN = "admin"
    MANAGER = "manager"
    PROCUREMENT = "procurement"
    FINANCE = "finance"
    LOGISTICS = "logistics"
    WAREHOUSE = "warehouse"


def require_roles(
    granted: Iterable[Role],
    required: Iterable[Role],
    action: str = "action",
) -> None:
    """
    Raise AuthorizationError unless ``granted`` intersects ``required``.

    An empty ``required`` set means the action is open to any
    authenticated user.
    """
    granted_set = frozenset(granted)
    required_set = frozenset(required)
    if not required_set or granted_set & required_set:
        return
    logger.warning("authorization_denied", extra={
        "action": action,
        "required": sorted(r.value for r in required_set),
        "granted": sorted(r.value for r in granted_set),
    })
    raise AuthorizationError(action, required_set, granted_set)
