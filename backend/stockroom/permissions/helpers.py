# Overview: Utility functions for role and action lookups.

from ..errors import ValidationError
from .definitions import Role, StoreAction, STORE_ACTION_DEFINITIONS


def get_all_action_codes():
    """Get list of all store action codes."""
    return [action[0].value for action in STORE_ACTION_DEFINITIONS]


def get_action_definition(code):
    """Get full definition for a store action code."""
    for action in STORE_ACTION_DEFINITIONS:
        if action[0].value == code:
            return {
                "code": action[0].value,
                "name": action[1],
                "description": action[2],
                "column": action[3],
            }
    return None


def parse_role(value) -> Role:
    """Map a stored or submitted role name onto the Role enum."""
    if isinstance(value, Role):
        return value
    try:
        return Role((value or "").strip().lower())
    except ValueError:
        raise ValidationError(f"Unknown role: {value!r}")


def parse_action(value) -> StoreAction:
    """Map a submitted action code onto the StoreAction enum."""
    if isinstance(value, StoreAction):
        return value
    try:
        return StoreAction((value or "").strip().lower())
    except ValueError:
        raise ValidationError(f"Unknown store action: {value!r}")
