from __future__ import annotations

from ..extensions import db
from stockroom.time_utils import to_utc_z


class Store(db.Model):
    """
    Store directory entry.

    Stores are read-only for the inventory core; they are created by the
    directory collaborator (or `flask stores seed` in development).
    """
    __tablename__ = "stores"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)
    code = db.Column(db.String(32), nullable=True, unique=True, index=True)
    city = db.Column(db.String(120), nullable=True)
    is_headquarters = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Store id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "city": self.city,
            "is_headquarters": self.is_headquarters,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class DocumentSequence(db.Model):
    """
    Per-store, per-type document counter.

    next_number is the number the next allocation will hand out.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("store_id", "document_type", name="uq_document_sequences_store_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    document_type = db.Column(db.String(32), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
