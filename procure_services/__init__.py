"""
procure_services -- Package init and public API.

Responsibility:
    The outer seam of the core: a table-driven dispatcher that takes an
    already-parsed request (kind, verb, bearer token, payload) and returns
    an ``ActionResult`` with the HTTP intent.

Architecture position:
    Services -- orchestration over modules + kernel.

    Dependency direction:
        procure_services/ -> procure_modules/  (allowed)
        procure_services/ -> procure_kernel/   (allowed)
        procure_modules/  -> procure_services/ (FORBIDDEN)
        procure_kernel/   -> procure_services/ (FORBIDDEN)
"""

from procure_services.actions import (
    ACTIONS,
    ActionDispatcher,
    ActionResult,
    ActionSpec,
    Verb,
)
from procure_services.auth import AuthProvider, Identity

__all__ = [
    "ACTIONS",
    "ActionDispatcher",
    "ActionResult",
    "ActionSpec",
    "AuthProvider",
    "Identity",
    "Verb",
]
