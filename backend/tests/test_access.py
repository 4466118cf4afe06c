"""
Store access tests.

Verifies:
- Profiles resolve from role, stored profile and assignments
- authorize() is false without a profile, outside assigned stores, or without the bit
- Global access keeps assignments dormant instead of deleting them
- Assignment mutations are idempotent and permission-gated
"""

import pytest

from stockroom.errors import AuthorizationError, NotFoundError, ValidationError
from stockroom.extensions import db
from stockroom.models import UserStoreAssignment
from stockroom.models.access import ACCESS_TYPE_GLOBAL, ACCESS_TYPE_MULTIPLE, ACCESS_TYPE_SINGLE
from stockroom.permissions import DEFAULT_STORE_PERMISSIONS, Role, StoreAction, StorePermissions
from stockroom.services import access_service


# =============================================================================
# PROFILE RESOLUTION
# =============================================================================


class TestResolve:

    def test_superadmin_is_global_by_role(self, superadmin):
        profile = access_service.resolve(superadmin.id)
        assert profile.is_global_access is True
        assert profile.access_type == ACCESS_TYPE_GLOBAL
        assert profile.assigned_store_ids == frozenset()

    def test_manager_with_two_stores_is_multiple(self, manager, store_a, store_b):
        profile = access_service.resolve(manager.id)
        assert profile.is_global_access is False
        assert profile.access_type == ACCESS_TYPE_MULTIPLE
        assert profile.assigned_store_ids == frozenset({store_a.id, store_b.id})
        assert profile.primary_store_id == store_a.id

    def test_single_assignment_is_single(self, clerk, store_a):
        profile = access_service.resolve(clerk.id)
        assert profile.access_type == ACCESS_TYPE_SINGLE
        assert profile.assigned_store_ids == frozenset({store_a.id})

    def test_unknown_user_has_no_profile(self, db_session):
        assert access_service.resolve(999999) is None
        assert access_service.resolve(None) is None

    def test_inactive_user_has_no_profile(self, db_session, clerk):
        clerk.is_active = False
        db_session.commit()
        assert access_service.resolve(clerk.id) is None

    def test_effective_stores(self, superadmin, clerk, store_a, store_b, closed_store):
        global_ids = [s.id for s in access_service.effective_stores(access_service.resolve(superadmin.id))]
        assert global_ids == [store_a.id, store_b.id]

        clerk_ids = [s.id for s in access_service.effective_stores(access_service.resolve(clerk.id))]
        assert clerk_ids == [store_a.id]

        assert access_service.effective_stores(None) == []


# =============================================================================
# PERMISSION GATE
# =============================================================================


class TestAuthorize:

    def test_global_user_allowed_everywhere(self, superadmin, store_a, store_b):
        for action in StoreAction:
            assert access_service.authorize(superadmin.id, store_a.id, action)
            assert access_service.authorize(superadmin.id, store_b.id, action)

    def test_no_profile_denied(self, db_session, store_a):
        assert access_service.authorize(424242, store_a.id, StoreAction.VIEW_REPORTS) is False

    def test_store_outside_assignments_denied(self, clerk, store_b):
        assert access_service.authorize(clerk.id, store_b.id, StoreAction.CREATE) is False

    def test_bit_decides_inside_assigned_store(self, clerk, store_a):
        assert access_service.authorize(clerk.id, store_a.id, StoreAction.CREATE) is True
        assert access_service.authorize(clerk.id, store_a.id, StoreAction.VIEW_REPORTS) is True
        assert access_service.authorize(clerk.id, store_a.id, StoreAction.MANAGE_STOCK) is False

    def test_action_accepts_string_codes(self, clerk, store_a):
        assert access_service.authorize(clerk.id, store_a.id, "view_reports") is True

    def test_unknown_action_rejected(self, clerk, store_a):
        with pytest.raises(ValidationError):
            access_service.authorize(clerk.id, store_a.id, "launch_rockets")

    def test_require_raises(self, clerk, store_a):
        with pytest.raises(AuthorizationError) as exc:
            access_service.require(clerk.id, store_a.id, StoreAction.MANAGE_STOCK)
        assert exc.value.action == "manage_stock"
        assert exc.value.store_id == store_a.id


# =============================================================================
# DEFAULTS & ASSIGNMENTS
# =============================================================================


class TestAssignments:

    def test_default_table_covers_every_role(self):
        assert set(DEFAULT_STORE_PERMISSIONS) == set(Role)
        for role in Role:
            assert isinstance(access_service.get_default_permissions(role), StorePermissions)

    def test_manager_defaults(self):
        perms = access_service.get_default_permissions("manager")
        assert perms.can_manage_stock is True
        assert perms.can_manage_users is False

    def test_sales_defaults(self):
        perms = access_service.get_default_permissions(Role.SALES)
        assert perms == StorePermissions(can_create=True, can_view_reports=True)

    def test_secretary_cannot_view_reports(self, secretary, store_a):
        assert access_service.authorize(secretary.id, store_a.id, StoreAction.EDIT) is True
        assert access_service.authorize(secretary.id, store_a.id, StoreAction.VIEW_REPORTS) is False

    def test_new_assignment_uses_role_defaults_plus_overrides(self, clerk, store_b):
        assignment = access_service.assign_user_to_store(
            user_id=clerk.id,
            store_id=store_b.id,
            permissions={"can_manage_stock": True},
        )
        assert assignment.can_create is True
        assert assignment.can_view_reports is True
        assert assignment.can_manage_stock is True
        assert assignment.can_delete is False
        assert assignment.is_primary is False

    def test_assign_is_idempotent(self, db_session, clerk, store_a):
        access_service.assign_user_to_store(user_id=clerk.id, store_id=store_a.id)
        access_service.assign_user_to_store(user_id=clerk.id, store_id=store_a.id)
        count = db_session.query(UserStoreAssignment).filter_by(user_id=clerk.id, store_id=store_a.id).count()
        assert count == 1

    def test_existing_assignment_keeps_unmentioned_bits(self, clerk, store_a):
        access_service.update_user_store_assignment(
            user_id=clerk.id,
            store_id=store_a.id,
            permissions={"can_view_reports": False},
        )
        perms = access_service.resolve(clerk.id).permissions_for(store_a.id)
        assert perms.can_view_reports is False
        assert perms.can_create is True

    def test_update_without_assignment_is_not_found(self, clerk, store_b):
        with pytest.raises(NotFoundError):
            access_service.update_user_store_assignment(user_id=clerk.id, store_id=store_b.id)

    def test_assign_requires_manage_users_for_actor(self, clerk, manager, store_a):
        with pytest.raises(AuthorizationError):
            access_service.assign_user_to_store(
                user_id=clerk.id,
                store_id=store_a.id,
                permissions={"can_delete": True},
                assigned_by_user_id=manager.id,
            )

    def test_global_actor_can_assign(self, superadmin, clerk, store_b):
        assignment = access_service.assign_user_to_store(
            user_id=clerk.id,
            store_id=store_b.id,
            assigned_by_user_id=superadmin.id,
        )
        assert assignment.assigned_by_user_id == superadmin.id
        assert access_service.resolve(clerk.id).access_type == ACCESS_TYPE_MULTIPLE

    def test_remove_revokes_everything(self, clerk, store_a):
        assert access_service.remove_user_from_store(user_id=clerk.id, store_id=store_a.id) is True
        assert access_service.authorize(clerk.id, store_a.id, StoreAction.CREATE) is False
        assert access_service.remove_user_from_store(user_id=clerk.id, store_id=store_a.id) is False

    def test_primary_moves_between_stores(self, manager, store_a, store_b):
        access_service.assign_user_to_store(user_id=manager.id, store_id=store_b.id, is_primary=True)
        assert access_service.resolve(manager.id).primary_store_id == store_b.id
        primaries = [a.store_id for a in access_service.list_assignments(manager.id) if a.is_primary]
        assert primaries == [store_b.id]


# =============================================================================
# GLOBAL ACCESS
# =============================================================================


class TestGlobalAccess:

    def test_enable_then_revoke_keeps_assignments(self, superadmin, clerk, store_a, store_b):
        profile = access_service.set_user_global_access(user_id=clerk.id, is_global=True, actor_id=superadmin.id)
        assert profile.is_global_access is True
        assert profile.access_type == ACCESS_TYPE_GLOBAL
        assert access_service.authorize(clerk.id, store_b.id, StoreAction.MANAGE_STOCK) is True
        assert len(access_service.list_assignments(clerk.id)) == 1

        profile = access_service.set_user_global_access(user_id=clerk.id, is_global=False, actor_id=superadmin.id)
        assert profile.is_global_access is False
        assert profile.assigned_store_ids == frozenset({store_a.id})
        assert access_service.authorize(clerk.id, store_a.id, StoreAction.CREATE) is True
        assert access_service.authorize(clerk.id, store_a.id, StoreAction.MANAGE_STOCK) is False

    def test_stored_profile_can_revoke_role_global(self, superadmin, store_a):
        access_service.set_user_global_access(user_id=superadmin.id, is_global=False)
        assert access_service.authorize(superadmin.id, store_a.id, StoreAction.CREATE) is False

    def test_non_global_actor_cannot_toggle(self, manager, clerk):
        with pytest.raises(AuthorizationError):
            access_service.set_user_global_access(user_id=clerk.id, is_global=True, actor_id=manager.id)
        assert access_service.resolve(clerk.id).is_global_access is False

    def test_is_global_must_be_bool(self, clerk):
        with pytest.raises(ValidationError):
            access_service.set_user_global_access(user_id=clerk.id, is_global="yes")


# =============================================================================
# FILTERING
# =============================================================================


class TestFilterAccessible:

    def test_keeps_accessible_and_storeless_items(self, clerk, store_a, store_b):
        items = [
            {"id": 1, "store_id": store_a.id},
            {"id": 2, "store_id": store_b.id},
            {"id": 3, "store_id": None},
        ]
        kept = access_service.filter_accessible(access_service.resolve(clerk.id), items)
        assert [i["id"] for i in kept] == [1, 3]

    def test_global_keeps_everything(self, superadmin, store_a, store_b):
        items = [{"store_id": store_a.id}, {"store_id": store_b.id}]
        assert access_service.filter_accessible(access_service.resolve(superadmin.id), items) == items

    def test_no_profile_keeps_nothing(self):
        assert access_service.filter_accessible(None, [{"store_id": None}]) == []

    def test_objects_and_custom_key(self, db_session, clerk, store_a, store_b):
        rows = db.session.query(UserStoreAssignment).all()
        kept = access_service.filter_accessible(access_service.resolve(clerk.id), rows, key="store_id")
        assert all(r.store_id == store_a.id for r in kept)

    def test_permitted_narrows_to_stores_with_the_bit(self, manager, store_a, store_b):
        access_service.update_user_store_assignment(
            user_id=manager.id,
            store_id=store_b.id,
            permissions={"can_view_reports": False},
        )
        items = [
            {"id": 1, "store_id": store_a.id},
            {"id": 2, "store_id": store_b.id},
            {"id": 3, "store_id": None},
        ]
        profile = access_service.resolve(manager.id)
        assert [i["id"] for i in access_service.filter_accessible(profile, items)] == [1, 2, 3]
        kept = access_service.filter_permitted(profile, items, StoreAction.VIEW_REPORTS)
        assert [i["id"] for i in kept] == [1, 3]

    def test_permitted_global_keeps_everything(self, superadmin, store_a, store_b):
        items = [{"store_id": store_a.id}, {"store_id": store_b.id}]
        profile = access_service.resolve(superadmin.id)
        assert access_service.filter_permitted(profile, items, "view_reports") == items
