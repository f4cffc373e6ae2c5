# backend/shopdesk/dependencies/permissions.py
"""
Permission dependencies for FastAPI endpoints.

Authentication happens upstream: the auth layer resolves the caller once
and stores a ``Principal`` on ``request.state.principal``. These
dependencies only read it and check roles.
"""

from dataclasses import dataclass, field
from typing import FrozenSet, Union

from fastapi import Depends, HTTPException, Request, status

from ..core.enums import RoleName


@dataclass(frozen=True)
class Principal:
    """Represents the authenticated entity making a request."""

    id: str
    roles: FrozenSet[RoleName] = field(default_factory=frozenset)

    def has_role(self, role: Union[str, RoleName]) -> bool:
        return RoleName(role) in self.roles


def get_current_principal(request: Request) -> Principal:
    principal = getattr(request.state, "principal", None)
    if not isinstance(principal, Principal):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"message": "Authentication required", "code": "UNAUTHORIZED"},
        )
    return principal


def require_role(role: Union[str, RoleName]):
    """
    Create a dependency that requires a specific role.

    Example:
        @router.get("/stats", dependencies=[Depends(require_role(RoleName.ADMIN))])
        async def get_stats():
            ...
    """
    required = RoleName(role)

    async def role_checker(principal: Principal = Depends(get_current_principal)) -> Principal:
        if not principal.has_role(required):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "message": f"Principal does not have required role: {required.value}",
                    "code": "FORBIDDEN",
                },
            )
        return principal

    return role_checker


require_admin = require_role(RoleName.ADMIN)
