"""Request identity dependencies for admin and customer routes."""
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, Request

ADMIN_ROLE = "admin"
CUSTOMER_ROLE = "customer"


@dataclass
class Principal:
    """Caller identity placed on ``request.state.user`` by the auth layer."""
    id: Optional[int]
    name: str
    role: str = CUSTOMER_ROLE

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE


def _require_authenticated(request: Request) -> Principal:
    """Dependency: raise 401 if no authenticated user on request."""
    user = getattr(request.state, "user", None)
    if not user:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user


def _require_admin(user: Principal = Depends(_require_authenticated)) -> Principal:
    """Dependency: raise 403 unless the caller is an administrator."""
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Access denied. Administrators only.")
    return user
