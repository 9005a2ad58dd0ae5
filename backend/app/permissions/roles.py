# Overview: Default role -> permission mapping (least privilege, admin has all).

from .definitions import PERMISSION_DEFINITIONS

ROLE_ADMIN = "ADMIN"
ROLE_STAFF = "STAFF"
ROLE_MEMBER = "MEMBER"

VALID_ROLES = (ROLE_ADMIN, ROLE_STAFF, ROLE_MEMBER)


DEFAULT_ROLE_PERMISSIONS = {
    ROLE_ADMIN: [perm[0] for perm in PERMISSION_DEFINITIONS],
    ROLE_STAFF: [
        "VIEW_ENQUIRIES",
        "MANAGE_ENQUIRIES",
        "VIEW_MEMBERSHIPS",
        "MANAGE_MEMBERSHIPS",
        "PROCESS_PAYMENTS",
        "VIEW_RECEIPTS",
        "VIEW_PLANS",
        "VIEW_ACTIVITY",
        "LOG_ACTIVITY",
        "VIEW_REPORTS",
    ],
    # Members can sign in but hold no back-office permissions
    ROLE_MEMBER: [],
}
