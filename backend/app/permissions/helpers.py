# Overview: Utility functions for permission lookups and validation.

from .roles import DEFAULT_ROLE_PERMISSIONS


def get_role_permissions(role: str) -> set[str]:
    return set(DEFAULT_ROLE_PERMISSIONS.get(role, []))


def role_has_permission(role: str, code: str) -> bool:
    return code in get_role_permissions(role)
