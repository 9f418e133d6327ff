from enum import Enum


class Role(str, Enum):
    USER = "user"
    ANALYST = "analyst"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


# Roles allowed to manage flags and A/B tests.
OPERATOR_ROLES = frozenset({Role.ADMIN, Role.SUPER_ADMIN})
# Roles allowed to read dashboard metrics.
DASHBOARD_READ_ROLES = frozenset({Role.ANALYST, Role.ADMIN, Role.SUPER_ADMIN})
