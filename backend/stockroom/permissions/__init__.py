# Overview: Store permission package.
# Re-exports the role set, store actions and default permission table.

from .definitions import Role, StoreAction, STORE_ACTION_DEFINITIONS, GLOBAL_ROLES
from .roles import StorePermissions, DEFAULT_STORE_PERMISSIONS, column_for_action
from .helpers import (
    get_all_action_codes,
    get_action_definition,
    parse_role,
    parse_action,
)

__all__ = [
    "Role",
    "StoreAction",
    "STORE_ACTION_DEFINITIONS",
    "GLOBAL_ROLES",
    "StorePermissions",
    "DEFAULT_STORE_PERMISSIONS",
    "column_for_action",
    "get_all_action_codes",
    "get_action_definition",
    "parse_role",
    "parse_action",
]
