"""Organization roles and the static permission sets they carry."""

from enum import Enum
from types import MappingProxyType
from typing import FrozenSet, Iterable, Mapping

from ..core.errors import InvalidInputError


class OrganizationRole(str, Enum):
    OWNER = "OWNER"
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    MEMBER = "MEMBER"
    VIEWER = "VIEWER"


WILDCARD = "*"

ROLE_PERMISSIONS: Mapping[OrganizationRole, FrozenSet[str]] = MappingProxyType(
    {
        OrganizationRole.OWNER: frozenset({WILDCARD}),
        OrganizationRole.ADMIN: frozenset(
            {
                "org:read",
                "org:update",
                "org:billing",
                "members:read",
                "members:invite",
                "members:remove",
                "members:role",
                "compliance:*",
                "reports:*",
                "audit:read",
                "audit:export",
                "settings:*",
                "spacecraft:*",
                "documents:*",
                "incidents:*",
                "api:*",
            }
        ),
        OrganizationRole.MANAGER: frozenset(
            {
                "org:read",
                "members:read",
                "compliance:read",
                "compliance:write",
                "compliance:delete",
                "reports:read",
                "reports:generate",
                "reports:submit",
                "audit:read",
                "settings:read",
                "spacecraft:read",
                "spacecraft:write",
                "documents:read",
                "documents:write",
                "incidents:read",
                "incidents:write",
            }
        ),
        OrganizationRole.MEMBER: frozenset(
            {
                "org:read",
                "compliance:read",
                "compliance:write",
                "reports:read",
                "settings:read",
                "spacecraft:read",
                "documents:read",
                "documents:write",
                "incidents:read",
                "incidents:write",
            }
        ),
        OrganizationRole.VIEWER: frozenset(
            {
                "org:read",
                "compliance:read",
                "reports:read",
                "spacecraft:read",
                "documents:read",
                "incidents:read",
            }
        ),
    }
)

# Lower number outranks higher; a role may manage its own level and below
ROLE_HIERARCHY: Mapping[OrganizationRole, int] = MappingProxyType(
    {
        OrganizationRole.OWNER: 0,
        OrganizationRole.ADMIN: 1,
        OrganizationRole.MANAGER: 2,
        OrganizationRole.MEMBER: 3,
        OrganizationRole.VIEWER: 4,
    }
)


def parse_role(value: str) -> OrganizationRole:
    try:
        return OrganizationRole(str(value).upper())
    except ValueError as exc:
        raise InvalidInputError(f"Invalid role: {value}") from exc


def get_default_permissions_for_role(role: OrganizationRole) -> FrozenSet[str]:
    return ROLE_PERMISSIONS[OrganizationRole(role)]


def has_permission(permissions: Iterable[str], permission: str) -> bool:
    granted = set(permissions)
    if WILDCARD in granted or permission in granted:
        return True
    category = permission.split(":", 1)[0]
    return f"{category}:*" in granted


def has_all_permissions(permissions: Iterable[str], required: Iterable[str]) -> bool:
    granted = list(permissions)
    return all(has_permission(granted, item) for item in required)


def has_any_permission(permissions: Iterable[str], required: Iterable[str]) -> bool:
    granted = list(permissions)
    return any(has_permission(granted, item) for item in required)


def can_manage_role(manager_role: OrganizationRole, target_role: OrganizationRole) -> bool:
    manager = OrganizationRole(manager_role)
    target = OrganizationRole(target_role)
    if target == OrganizationRole.OWNER:
        return manager == OrganizationRole.OWNER
    return ROLE_HIERARCHY[manager] <= ROLE_HIERARCHY[target]


def effective_permissions(role: str, stored: Iterable[str] | None = None) -> FrozenSet[str]:
    """Permissions stored on the membership row. Role defaults apply only to rows that never stored a list."""
    if stored is not None:
        return frozenset(stored)
    return get_default_permissions_for_role(parse_role(role))
