# Overview: Default per-store permission sets for each role.

from __future__ import annotations

from dataclasses import dataclass, asdict, fields

from .definitions import Role, StoreAction, STORE_ACTION_DEFINITIONS


@dataclass(frozen=True)
class StorePermissions:
    can_create: bool = False
    can_edit: bool = False
    can_delete: bool = False
    can_view_reports: bool = False
    can_manage_stock: bool = False
    can_manage_users: bool = False

    def allows(self, action: StoreAction) -> bool:
        return bool(getattr(self, column_for_action(action)))

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_mapping(cls, data: dict, *, base: "StorePermissions | None" = None) -> "StorePermissions":
        """Overlay known bits from data on top of base (or all-false)."""
        values = (base or cls()).to_dict()
        for f in fields(cls):
            if f.name in data and data[f.name] is not None:
                values[f.name] = bool(data[f.name])
        return cls(**values)


_ALL = StorePermissions(
    can_create=True,
    can_edit=True,
    can_delete=True,
    can_view_reports=True,
    can_manage_stock=True,
    can_manage_users=True,
)

# Exhaustive: every Role member must appear here.
DEFAULT_STORE_PERMISSIONS: dict[Role, StorePermissions] = {
    Role.SUPERADMIN: _ALL,
    Role.ADMIN: _ALL,
    Role.MANAGER: StorePermissions(
        can_create=True,
        can_edit=True,
        can_view_reports=True,
        can_manage_stock=True,
    ),
    Role.SALES: StorePermissions(
        can_create=True,
        can_view_reports=True,
    ),
    Role.SECRETARY: StorePermissions(
        can_create=True,
        can_edit=True,
    ),
    Role.ACCOUNTANT: StorePermissions(
        can_view_reports=True,
    ),
    Role.CLIENT: StorePermissions(),
}


def column_for_action(action: StoreAction) -> str:
    action = StoreAction(action)
    for code, _name, _description, column in STORE_ACTION_DEFINITIONS:
        if code is action:
            return column
    raise KeyError(action)
