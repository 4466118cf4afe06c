# Overview: Store-scoped action definitions and the closed role set.
# Each action is defined as: (code, name, description, assignment column)

from enum import Enum


class Role(str, Enum):
    """Closed set of user roles. Role names are identifiers, not labels."""
    SUPERADMIN = "superadmin"
    ADMIN = "admin"
    MANAGER = "manager"
    SALES = "sales"
    SECRETARY = "secretary"
    ACCOUNTANT = "accountant"
    CLIENT = "client"


class StoreAction(str, Enum):
    """Actions gated per store by UserStoreAssignment bits."""
    CREATE = "create"
    EDIT = "edit"
    DELETE = "delete"
    VIEW_REPORTS = "view_reports"
    MANAGE_STOCK = "manage_stock"
    MANAGE_USERS = "manage_users"


STORE_ACTION_DEFINITIONS = [
    (
        StoreAction.CREATE,
        "Create",
        "Create sales, articles and documents in the store",
        "can_create",
    ),
    (
        StoreAction.EDIT,
        "Edit",
        "Edit store records, including per-store stock thresholds",
        "can_edit",
    ),
    (
        StoreAction.DELETE,
        "Delete",
        "Delete store records",
        "can_delete",
    ),
    (
        StoreAction.VIEW_REPORTS,
        "View Reports",
        "View stock levels and summaries, alerts, forecasts and reorder suggestions",
        "can_view_reports",
    ),
    (
        StoreAction.MANAGE_STOCK,
        "Manage Stock",
        "Append stock movements, transfer stock and commit reorders",
        "can_manage_stock",
    ),
    (
        StoreAction.MANAGE_USERS,
        "Manage Users",
        "Assign users to the store and edit their permissions",
        "can_manage_users",
    ),
]

# Roles whose users see every store when no stored profile exists
GLOBAL_ROLES = frozenset({Role.SUPERADMIN, Role.ADMIN})
