"""Access control list constants and helpers.

The API uses string permission names to authorize actions.  This module
defines all available permissions and maps default permissions for each
user role.  Household membership is checked separately by the routes.
"""

PERM_MANAGE_HOUSEHOLD = "manage_household"
PERM_ENROLL_CHILD = "enroll_child"
PERM_MANAGE_CHILD_SETTINGS = "manage_child_settings"
PERM_DEPOSIT = "deposit"
PERM_MANAGE_ALLOWANCES = "manage_allowances"
PERM_PROCESS_ALLOWANCES = "process_allowances"
PERM_REVIEW_MONEY_REQUESTS = "review_money_requests"
PERM_REQUEST_MONEY = "request_money"
PERM_SPEND = "spend"
PERM_MANAGE_CHORES = "manage_chores"
PERM_COMPLETE_CHORES = "complete_chores"

ALL_PERMISSIONS = [
    PERM_MANAGE_HOUSEHOLD,
    PERM_ENROLL_CHILD,
    PERM_MANAGE_CHILD_SETTINGS,
    PERM_DEPOSIT,
    PERM_MANAGE_ALLOWANCES,
    PERM_PROCESS_ALLOWANCES,
    PERM_REVIEW_MONEY_REQUESTS,
    PERM_REQUEST_MONEY,
    PERM_SPEND,
    PERM_MANAGE_CHORES,
    PERM_COMPLETE_CHORES,
]

ROLE_DEFAULT_PERMISSIONS = {
    "admin": ALL_PERMISSIONS,
    "parent": [
        PERM_MANAGE_HOUSEHOLD,
        PERM_ENROLL_CHILD,
        PERM_MANAGE_CHILD_SETTINGS,
        PERM_DEPOSIT,
        PERM_MANAGE_ALLOWANCES,
        PERM_REVIEW_MONEY_REQUESTS,
        PERM_MANAGE_CHORES,
    ],
    "child": [PERM_REQUEST_MONEY, PERM_SPEND, PERM_COMPLETE_CHORES],
}

# Household member roles allowed to act as guardians.
GUARDIAN_ROLES = ("owner", "partner")


def get_default_permissions_for_role(role: str) -> list[str]:
    return ROLE_DEFAULT_PERMISSIONS.get(role, [])
