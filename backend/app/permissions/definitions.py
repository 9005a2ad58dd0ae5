# Overview: All permission definitions organized by category.
# Each permission is defined as: (code, name, description, category)

from .categories import PermissionCategory


# -- ENQUIRIES --

ENQUIRY_PERMISSIONS = [
    ("VIEW_ENQUIRIES", "View Enquiries", "List and view enquiries and their history", PermissionCategory.ENQUIRIES),
    ("MANAGE_ENQUIRIES", "Manage Enquiries", "Create and edit enquiries", PermissionCategory.ENQUIRIES),
    ("DELETE_ENQUIRIES", "Delete Enquiries", "Delete enquiries without a membership", PermissionCategory.ENQUIRIES),
]

# -- MEMBERSHIPS --

MEMBERSHIP_PERMISSIONS = [
    ("VIEW_MEMBERSHIPS", "View Memberships", "List memberships, status views and stats", PermissionCategory.MEMBERSHIPS),
    (
        "MANAGE_MEMBERSHIPS",
        "Manage Memberships",
        "Convert enquiries, renew, upgrade and activate/deactivate memberships",
        PermissionCategory.MEMBERSHIPS,
    ),
    ("DELETE_MEMBERSHIPS", "Delete Memberships", "Delete memberships and their receipts", PermissionCategory.MEMBERSHIPS),
]

# -- PAYMENTS --

PAYMENT_PERMISSIONS = [
    ("PROCESS_PAYMENTS", "Process Payments", "Record installment payments", PermissionCategory.PAYMENTS),
    ("VIEW_RECEIPTS", "View Receipts", "View, download and resend receipts", PermissionCategory.PAYMENTS),
    ("DELETE_RECEIPTS", "Delete Receipts", "Delete individual receipts", PermissionCategory.PAYMENTS),
]

# -- PLANS --

PLAN_PERMISSIONS = [
    ("VIEW_PLANS", "View Plans", "List membership plans", PermissionCategory.PLANS),
    ("MANAGE_PLANS", "Manage Plans", "Create, edit, deactivate and activate plans", PermissionCategory.PLANS),
]

# -- ACTIVITY --

ACTIVITY_PERMISSIONS = [
    ("VIEW_ACTIVITY", "View Activity", "Read the activity feed and its stats", PermissionCategory.ACTIVITY),
    ("LOG_ACTIVITY", "Log Activity", "Add manual activity entries", PermissionCategory.ACTIVITY),
    ("MANAGE_ACTIVITY", "Manage Activity", "Delete activity entries and purge old ones", PermissionCategory.ACTIVITY),
]

# -- REPORTS --

REPORT_PERMISSIONS = [
    ("VIEW_REPORTS", "View Reports", "Sales reports", PermissionCategory.REPORTS),
    ("EXPORT_DATA", "Export Data", "Excel exports of members, enquiries and sales", PermissionCategory.REPORTS),
]

# -- USERS --

USER_PERMISSIONS = [
    ("MANAGE_USERS", "Manage Users", "Create, edit and deactivate user accounts", PermissionCategory.USERS),
]

# -- SYSTEM --

SYSTEM_PERMISSIONS = [
    ("SYSTEM_ADMIN", "System Admin", "System status and notification queue metrics", PermissionCategory.SYSTEM),
]


PERMISSION_DEFINITIONS = (
    ENQUIRY_PERMISSIONS
    + MEMBERSHIP_PERMISSIONS
    + PAYMENT_PERMISSIONS
    + PLAN_PERMISSIONS
    + ACTIVITY_PERMISSIONS
    + REPORT_PERMISSIONS
    + USER_PERMISSIONS
    + SYSTEM_PERMISSIONS
)
