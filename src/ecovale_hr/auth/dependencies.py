"""FastAPI auth dependencies.

The authentication middleware does the token work and leaves a
SecurityContext on request.state. These dependencies read it back in
route handlers and enforce role requirements.
"""

from dataclasses import dataclass
from datetime import datetime

from fastapi import Depends, HTTPException, Request

from ecovale_hr.errors import AuthenticationError


@dataclass(frozen=True)
class SecurityContext:
    """The authenticated subject for one request.

    Created by the authentication middleware after a token verifies,
    read-only afterwards, gone when the request ends.
    """

    subject: str
    roles: frozenset[str]
    token_id: str
    expires_at: datetime

    def has_role(self, role: str) -> bool:
        """Check a role, accepting both "ADMIN" and "ROLE_ADMIN" spellings."""
        if role in self.roles:
            return True
        if role.startswith("ROLE_"):
            return role[len("ROLE_"):] in self.roles
        return f"ROLE_{role}" in self.roles


def get_security_context(request: Request) -> SecurityContext:
    """Current identity (required).

    Raises AuthenticationError, rendered as the standard 401 body, if the
    route was reached without passing through the authentication middleware.
    """
    context = getattr(request.state, "security_context", None)
    if context is None:
        raise AuthenticationError(
            "Full authentication is required to access this resource"
        )
    return context


def require_roles(*roles: str):
    """Dependency factory: 403 unless the caller holds at least one of `roles`."""

    def dependency(
        context: SecurityContext = Depends(get_security_context),
    ) -> SecurityContext:
        if not any(context.has_role(r) for r in roles):
            raise HTTPException(status_code=403, detail="Access denied")
        return context

    return dependency
