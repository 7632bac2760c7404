"""
procure_services.auth -- Identity seam for the action dispatcher.

Responsibility:
    Declares what the dispatcher needs from the external auth provider:
    a resolved ``Identity`` (user id plus typed role set) for a bearer
    token.  Token validation and role-string lookup happen on the other
    side of ``AuthProvider``; this package never parses role strings.

Architecture position:
    Services -- consumed only by ``procure_services.actions``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol
from uuid import UUID

from procure_kernel.domain.roles import Role


@dataclass(frozen=True)
class Identity:
    """An authenticated caller."""

    user_id: UUID
    roles: frozenset[Role] = field(default_factory=frozenset)


class AuthProvider(Protocol):
    """Resolves a bearer token to an ``Identity``.

    Raises:
        MissingTokenError: ``token`` is None or empty.
        InvalidTokenError: The provider rejects the token.
    """

    def authenticate(self, token: str | None) -> Identity: ...
