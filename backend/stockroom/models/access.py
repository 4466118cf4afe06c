from __future__ import annotations

from ..extensions import db
from stockroom.time_utils import to_utc_z


ACCESS_TYPE_SINGLE = "single"
ACCESS_TYPE_MULTIPLE = "multiple"
ACCESS_TYPE_GLOBAL = "global"
ACCESS_TYPES = (ACCESS_TYPE_SINGLE, ACCESS_TYPE_MULTIPLE, ACCESS_TYPE_GLOBAL)


class User(db.Model):
    """
    User identity as seen by the inventory core.

    Credentials and sessions belong to the identity collaborator; only the
    role and active flag matter here.
    """
    __tablename__ = "users"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), nullable=False, unique=True, index=True)
    full_name = db.Column(db.String(255), nullable=True)

    # One of permissions.Role values
    role = db.Column(db.String(32), nullable=False, default="client")

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username!r} role={self.role!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "full_name": self.full_name,
            "role": self.role,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class StoreAccessProfile(db.Model):
    """
    Stored access scope for a user.

    When is_global_access is set every store is reachable and the user's
    UserStoreAssignment rows are dormant (kept, but not consulted).
    Users without a row get a profile derived from role + assignments.
    """
    __tablename__ = "store_access_profiles"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, unique=True, index=True)
    access_type = db.Column(db.String(16), nullable=False, default=ACCESS_TYPE_SINGLE)
    is_global_access = db.Column(db.Boolean, nullable=False, default=False)
    primary_store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    user = db.relationship("User", backref=db.backref("access_profile", uselist=False, lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "access_type": self.access_type,
            "is_global_access": self.is_global_access,
            "primary_store_id": self.primary_store_id,
            "updated_at": to_utc_z(self.updated_at),
        }


class UserStoreAssignment(db.Model):
    """
    Per-store permission bits for a user.

    At most one row per (user, store). Deleting the row revokes every
    permission the user had in that store.
    """
    __tablename__ = "user_store_assignments"
    __table_args__ = (
        db.UniqueConstraint("user_id", "store_id", name="uq_user_store_assignment"),
        db.Index("ix_user_store_assignments_store", "store_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False)
    is_primary = db.Column(db.Boolean, nullable=False, default=False)

    can_create = db.Column(db.Boolean, nullable=False, default=False)
    can_edit = db.Column(db.Boolean, nullable=False, default=False)
    can_delete = db.Column(db.Boolean, nullable=False, default=False)
    can_view_reports = db.Column(db.Boolean, nullable=False, default=False)
    can_manage_stock = db.Column(db.Boolean, nullable=False, default=False)
    can_manage_users = db.Column(db.Boolean, nullable=False, default=False)

    assigned_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    assigned_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    user = db.relationship("User", foreign_keys=[user_id], backref=db.backref("store_assignments", lazy=True))
    store = db.relationship("Store", backref=db.backref("user_assignments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "store_id": self.store_id,
            "is_primary": self.is_primary,
            "can_create": self.can_create,
            "can_edit": self.can_edit,
            "can_delete": self.can_delete,
            "can_view_reports": self.can_view_reports,
            "can_manage_stock": self.can_manage_stock,
            "can_manage_users": self.can_manage_users,
            "assigned_by_user_id": self.assigned_by_user_id,
            "assigned_at": to_utc_z(self.assigned_at),
        }
