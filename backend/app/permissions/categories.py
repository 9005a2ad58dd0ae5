# Overview: Permission category constants for grouping related permissions.


class PermissionCategory:
    """Permission categories for organization and UI display."""
    ENQUIRIES = "ENQUIRIES"
    MEMBERSHIPS = "MEMBERSHIPS"
    PAYMENTS = "PAYMENTS"
    PLANS = "PLANS"
    ACTIVITY = "ACTIVITY"
    REPORTS = "REPORTS"
    USERS = "USERS"
    SYSTEM = "SYSTEM"
