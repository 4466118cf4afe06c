# Overview: Service-layer operations for store access; resolves profiles and gates store actions.

"""
Store Access Invariants (authoritative)

- A user's scope is global, multiple-store or single-store.
- Global access makes every store reachable; per-store assignments are kept
  but dormant while global access is on, and authoritative again once it
  is revoked.
- Non-global users act on a store only if they hold a UserStoreAssignment
  for it AND the assignment's bit for the action is set.
- Unknown or inactive users have no profile and are denied everything.
- New assignments without explicit bits take the role defaults from
  DEFAULT_STORE_PERMISSIONS.
- Assignment mutations are idempotent.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Mapping

from flask import current_app

from ..extensions import db
from ..errors import AuthorizationError, NotFoundError, ValidationError
from ..models import Store, User, StoreAccessProfile, UserStoreAssignment
from ..models.access import ACCESS_TYPE_GLOBAL, ACCESS_TYPE_MULTIPLE, ACCESS_TYPE_SINGLE
from ..permissions import (
    DEFAULT_STORE_PERMISSIONS,
    GLOBAL_ROLES,
    Role,
    StoreAction,
    StorePermissions,
    parse_action,
    parse_role,
)


@dataclass(frozen=True)
class AccessProfile:
    user_id: int
    role: Role
    access_type: str
    is_global_access: bool
    assigned_store_ids: frozenset = frozenset()
    primary_store_id: int | None = None
    store_permissions: Mapping[int, StorePermissions] = field(default_factory=dict)

    def can_access_store(self, store_id: int | None) -> bool:
        if store_id is None:
            return False
        return self.is_global_access or store_id in self.assigned_store_ids

    def permissions_for(self, store_id: int) -> StorePermissions:
        return self.store_permissions.get(store_id, StorePermissions())

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "role": self.role.value,
            "access_type": self.access_type,
            "is_global_access": self.is_global_access,
            "assigned_store_ids": sorted(self.assigned_store_ids),
            "primary_store_id": self.primary_store_id,
            "store_permissions": {
                str(store_id): perms.to_dict()
                for store_id, perms in sorted(self.store_permissions.items())
            },
        }


def _access_type_for(is_global: bool, assigned_count: int) -> str:
    if is_global:
        return ACCESS_TYPE_GLOBAL
    if assigned_count > 1:
        return ACCESS_TYPE_MULTIPLE
    return ACCESS_TYPE_SINGLE


def _role_of(user: User) -> Role:
    try:
        return parse_role(user.role)
    except ValueError:
        current_app.logger.warning("User %s has unknown role %r; treating as client", user.id, user.role)
        return Role.CLIENT


def _permissions_of(assignment: UserStoreAssignment) -> StorePermissions:
    return StorePermissions(
        can_create=assignment.can_create,
        can_edit=assignment.can_edit,
        can_delete=assignment.can_delete,
        can_view_reports=assignment.can_view_reports,
        can_manage_stock=assignment.can_manage_stock,
        can_manage_users=assignment.can_manage_users,
    )


def _apply_permissions(assignment: UserStoreAssignment, perms: StorePermissions) -> None:
    for column, value in perms.to_dict().items():
        setattr(assignment, column, value)


def _get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found")
    return user


def _get_store(store_id: int) -> Store:
    store = db.session.get(Store, store_id)
    if store is None:
        raise NotFoundError(f"Store {store_id} not found")
    return store


def resolve(user_id: int | None) -> AccessProfile | None:
    """
    Resolve the effective access profile for a user.

    Returns None for unknown or inactive users.
    """
    if user_id is None:
        return None
    user = db.session.get(User, user_id)
    if user is None or not user.is_active:
        return None

    role = _role_of(user)
    assignments = (
        db.session.query(UserStoreAssignment)
        .filter_by(user_id=user_id)
        .order_by(UserStoreAssignment.store_id.asc())
        .all()
    )
    stored = db.session.query(StoreAccessProfile).filter_by(user_id=user_id).first()

    if stored is not None:
        is_global = bool(stored.is_global_access)
        stored_primary = stored.primary_store_id
    else:
        is_global = role in GLOBAL_ROLES
        stored_primary = None

    assigned_ids = frozenset(a.store_id for a in assignments)
    primary = next((a.store_id for a in assignments if a.is_primary), None)
    if primary is None:
        primary = stored_primary
    if primary is None and assignments:
        primary = assignments[0].store_id

    return AccessProfile(
        user_id=user.id,
        role=role,
        access_type=_access_type_for(is_global, len(assigned_ids)),
        is_global_access=is_global,
        assigned_store_ids=assigned_ids,
        primary_store_id=primary,
        store_permissions={a.store_id: _permissions_of(a) for a in assignments},
    )


def list_stores(*, active_only: bool = True) -> list[Store]:
    """Read the store directory."""
    q = db.session.query(Store)
    if active_only:
        q = q.filter(Store.is_active.is_(True))
    return q.order_by(Store.id.asc()).all()


def effective_stores(profile: AccessProfile | None) -> list[Store]:
    """All active stores when global, otherwise the active assigned stores."""
    if profile is None:
        return []
    stores = list_stores(active_only=True)
    if profile.is_global_access:
        return stores
    return [s for s in stores if s.id in profile.assigned_store_ids]


def authorize(user_id: int | None, store_id: int | None, action) -> bool:
    """
    Decide whether user may perform action in store.

    Global profiles are always allowed; everyone else needs an assignment
    for the store with the action's bit set.
    """
    action = parse_action(action)
    profile = resolve(user_id)
    if profile is None:
        return False
    if profile.is_global_access:
        return True
    if store_id is None or store_id not in profile.assigned_store_ids:
        return False
    return profile.permissions_for(store_id).allows(action)


def require(user_id: int | None, store_id: int | None, action) -> None:
    """authorize() that raises AuthorizationError on denial."""
    action = parse_action(action)
    if authorize(user_id, store_id, action):
        return
    current_app.logger.warning(
        "Store permission denied: user=%s store=%s action=%s", user_id, store_id, action.value
    )
    raise AuthorizationError(
        f"User {user_id} lacks '{action.value}' permission on store {store_id}",
        user_id=user_id,
        store_id=store_id,
        action=action.value,
    )


def get_default_permissions(role) -> StorePermissions:
    """Fixed per-role permission set used for new assignments."""
    return DEFAULT_STORE_PERMISSIONS[parse_role(role)]


def _require_global(actor_id: int) -> None:
    profile = resolve(actor_id)
    if profile is None or not profile.is_global_access:
        raise AuthorizationError(
            f"User {actor_id} needs global access to change global access",
            user_id=actor_id,
            action=StoreAction.MANAGE_USERS.value,
        )


def _sync_stored_profile(user_id: int) -> None:
    """Keep a stored non-global profile's access_type/primary in step with assignments."""
    stored = db.session.query(StoreAccessProfile).filter_by(user_id=user_id).first()
    if stored is None or stored.is_global_access:
        return
    assignments = db.session.query(UserStoreAssignment).filter_by(user_id=user_id).all()
    stored.access_type = _access_type_for(False, len(assignments))
    primary = next((a.store_id for a in assignments if a.is_primary), None)
    if primary is None and assignments:
        primary = min(a.store_id for a in assignments)
    stored.primary_store_id = primary


def _set_primary(user_id: int, store_id: int) -> None:
    others = (
        db.session.query(UserStoreAssignment)
        .filter(UserStoreAssignment.user_id == user_id, UserStoreAssignment.store_id != store_id)
        .all()
    )
    for other in others:
        other.is_primary = False


def assign_user_to_store(
    *,
    user_id: int,
    store_id: int,
    permissions: Mapping | StorePermissions | None = None,
    is_primary: bool | None = None,
    assigned_by_user_id: int | None = None,
    commit: bool = True,
) -> UserStoreAssignment:
    """
    Create or update the (user, store) assignment.

    New assignments start from the user's role defaults, overlaid with any
    explicit bits. Existing assignments keep their bits except the ones
    given. When assigned_by_user_id is set, that actor needs manage_users
    on the store.
    """
    user = _get_user(user_id)
    _get_store(store_id)
    if assigned_by_user_id is not None:
        require(assigned_by_user_id, store_id, StoreAction.MANAGE_USERS)

    if isinstance(permissions, StorePermissions):
        permissions = permissions.to_dict()
    permissions = dict(permissions or {})

    existing = db.session.query(UserStoreAssignment).filter_by(user_id=user_id, store_id=store_id).first()
    if existing is not None:
        _apply_permissions(existing, StorePermissions.from_mapping(permissions, base=_permissions_of(existing)))
        assignment = existing
    else:
        has_any = db.session.query(UserStoreAssignment.id).filter_by(user_id=user_id).first() is not None
        assignment = UserStoreAssignment(
            user_id=user_id,
            store_id=store_id,
            is_primary=not has_any if is_primary is None else bool(is_primary),
            assigned_by_user_id=assigned_by_user_id,
        )
        base = get_default_permissions(_role_of(user))
        _apply_permissions(assignment, StorePermissions.from_mapping(permissions, base=base))
        db.session.add(assignment)

    if is_primary is not None:
        assignment.is_primary = bool(is_primary)
    if assignment.is_primary:
        _set_primary(user_id, store_id)

    db.session.flush()
    _sync_stored_profile(user_id)

    if commit:
        db.session.commit()
    return assignment


def update_user_store_assignment(
    *,
    user_id: int,
    store_id: int,
    permissions: Mapping | StorePermissions | None = None,
    is_primary: bool | None = None,
    actor_id: int | None = None,
) -> UserStoreAssignment:
    """Change bits on an existing assignment; NotFoundError if there is none."""
    existing = db.session.query(UserStoreAssignment).filter_by(user_id=user_id, store_id=store_id).first()
    if existing is None:
        raise NotFoundError(f"User {user_id} is not assigned to store {store_id}")
    return assign_user_to_store(
        user_id=user_id,
        store_id=store_id,
        permissions=permissions,
        is_primary=is_primary,
        assigned_by_user_id=actor_id,
    )


def remove_user_from_store(*, user_id: int, store_id: int, actor_id: int | None = None) -> bool:
    """
    Delete the (user, store) assignment, revoking every permission there.

    Returns False if there was nothing to remove.
    """
    if actor_id is not None:
        require(actor_id, store_id, StoreAction.MANAGE_USERS)

    assignment = db.session.query(UserStoreAssignment).filter_by(user_id=user_id, store_id=store_id).first()
    if assignment is None:
        return False

    db.session.delete(assignment)
    db.session.flush()
    _sync_stored_profile(user_id)
    db.session.commit()
    return True


def set_user_global_access(*, user_id: int, is_global: bool, actor_id: int | None = None) -> AccessProfile:
    """
    Turn global access on or off for a user.

    Existing assignments are never deleted here: they go dormant while
    global access is on.
    """
    if not isinstance(is_global, bool):
        raise ValidationError("is_global must be a boolean")
    _get_user(user_id)
    if actor_id is not None:
        _require_global(actor_id)

    stored = db.session.query(StoreAccessProfile).filter_by(user_id=user_id).first()
    if stored is None:
        stored = StoreAccessProfile(user_id=user_id)
        db.session.add(stored)

    count = db.session.query(UserStoreAssignment).filter_by(user_id=user_id).count()
    stored.is_global_access = is_global
    stored.access_type = _access_type_for(is_global, count)
    db.session.flush()
    _sync_stored_profile(user_id)
    db.session.commit()

    return resolve(user_id)


def list_assignments(user_id: int) -> list[UserStoreAssignment]:
    return (
        db.session.query(UserStoreAssignment)
        .filter_by(user_id=user_id)
        .order_by(UserStoreAssignment.store_id.asc())
        .all()
    )


def _store_of(item, key: str):
    if isinstance(item, Mapping):
        return item.get(key)
    return getattr(item, key, None)


def filter_accessible(profile: AccessProfile | None, items: Iterable, key: str = "store_id") -> list:
    """
    Keep items that belong to an accessible store or to no store at all.

    Items may be dicts or objects exposing `key`.
    """
    if profile is None:
        return []
    items = list(items)
    if profile.is_global_access:
        return items

    return [
        item for item in items
        if _store_of(item, key) is None or _store_of(item, key) in profile.assigned_store_ids
    ]


def filter_permitted(profile: AccessProfile | None, items: Iterable, action, key: str = "store_id") -> list:
    """filter_accessible() narrowed to the stores where profile may perform action."""
    action = parse_action(action)
    items = filter_accessible(profile, items, key=key)
    if profile is None or profile.is_global_access:
        return items
    permitted = {
        store_id for store_id in profile.assigned_store_ids
        if profile.permissions_for(store_id).allows(action)
    }
    return [
        item for item in items
        if _store_of(item, key) is None or _store_of(item, key) in permitted
    ]
