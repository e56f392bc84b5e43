from enum import Enum
from typing import Dict, FrozenSet

from .errors import PermissionDenied
from .schemas import UserRole


class Area(str, Enum):
    ADMIN = "admin"
    SURVEYOR = "surveyor"
    USER_MANAGEMENT = "user-management"


# Every role is listed explicitly; adding a role without an entry here
# makes the lookups below fail loudly instead of granting anything.
_AREAS: Dict[UserRole, FrozenSet[Area]] = {
    UserRole.ADMIN: frozenset({Area.ADMIN}),
    UserRole.ADMIN_MANAGER: frozenset({Area.ADMIN, Area.USER_MANAGEMENT}),
    UserRole.SURVEYOR: frozenset({Area.SURVEYOR}),
}

_HOME: Dict[UserRole, str] = {
    UserRole.ADMIN: "/admin",
    UserRole.ADMIN_MANAGER: "/admin",
    UserRole.SURVEYOR: "/surveyor",
}


def _lookup(table: Dict[UserRole, object], role: UserRole):
    try:
        return table[UserRole(role)]
    except (KeyError, ValueError) as exc:
        raise LookupError(f"no permission mapping for role {role!r}") from exc


def can_access(role: UserRole, area: Area) -> bool:
    return area in _lookup(_AREAS, role)


def home_path(role: UserRole) -> str:
    return _lookup(_HOME, role)


def ensure_access(role: UserRole, area: Area) -> None:
    if not can_access(role, area):
        raise PermissionDenied(
            "No tiene permisos para acceder a esta sección", redirect_to=home_path(role)
        )
