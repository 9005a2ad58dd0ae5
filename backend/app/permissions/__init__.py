# Overview: Permission system package.
# Roles are a fixed set stored on User.role; this package maps them to codes.

from .categories import PermissionCategory
from .definitions import PERMISSION_DEFINITIONS
from .roles import DEFAULT_ROLE_PERMISSIONS, ROLE_ADMIN, ROLE_STAFF, ROLE_MEMBER, VALID_ROLES
from .helpers import (
    get_role_permissions,
    role_has_permission,
)

__all__ = [
    "PermissionCategory",
    "PERMISSION_DEFINITIONS",
    "DEFAULT_ROLE_PERMISSIONS",
    "ROLE_ADMIN",
    "ROLE_STAFF",
    "ROLE_MEMBER",
    "VALID_ROLES",
    "get_role_permissions",
    "role_has_permission",
]
