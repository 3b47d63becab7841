from typing import Optional

from fastapi import Depends, Header

from fantasy.core.caller import Caller
from fantasy.core.errors import Forbidden
from fantasy.db.session import get_db, get_registry  # noqa: F401  re-exported for routes
from fantasy.services.seasons import SeasonRegistry, SeasonStores


def get_caller(
    x_manager_id: Optional[int] = Header(None),
    x_manager_role: str = Header("user"),
) -> Caller:
    """Identity as forwarded by the authentication collaborator in front of us."""
    role = x_manager_role.strip().lower()
    return Caller(manager_id=x_manager_id, role=role if role in ("admin", "user") else "user")


def require_admin(caller: Caller = Depends(get_caller)) -> Caller:
    if not caller.is_admin:
        raise Forbidden("Admin role required", {"role": caller.role})
    return caller


def get_stores(year: int, registry: SeasonRegistry = Depends(get_registry)) -> SeasonStores:
    return registry.resolve_stores(year)
