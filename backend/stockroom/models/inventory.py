from __future__ import annotations

from ..extensions import db
from stockroom.time_utils import to_utc_z


MOVEMENT_IN = "in"
MOVEMENT_OUT = "out"
MOVEMENT_TRANSFER_IN = "transfer_in"
MOVEMENT_TRANSFER_OUT = "transfer_out"

MOVEMENT_TYPES = (MOVEMENT_IN, MOVEMENT_OUT, MOVEMENT_TRANSFER_IN, MOVEMENT_TRANSFER_OUT)
INBOUND_MOVEMENT_TYPES = frozenset({MOVEMENT_IN, MOVEMENT_TRANSFER_IN})
OUTBOUND_MOVEMENT_TYPES = frozenset({MOVEMENT_OUT, MOVEMENT_TRANSFER_OUT})

PO_STATUS_DRAFT = "DRAFT"
PO_STATUS_SUBMITTED = "SUBMITTED"
PO_STATUS_RECEIVED = "RECEIVED"
PO_STATUS_CANCELLED = "CANCELLED"


class StoreStock(db.Model):
    """
    On-hand projection for one (store, article) key.

    Only ledger_service writes `stock`; it equals the stepwise-clamped fold
    of the key's StockMovement rows (see inventory_service.rebuild_projection).
    """
    __tablename__ = "store_stock"
    __table_args__ = (
        db.UniqueConstraint("store_id", "article_id", name="uq_store_stock_store_article"),
        db.CheckConstraint("stock >= 0", name="ck_store_stock_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    article_id = db.Column(db.Integer, db.ForeignKey("articles.id"), nullable=False, index=True)

    stock = db.Column(db.Integer, nullable=False, default=0)

    # Per-store override of Article.min_stock
    min_stock = db.Column(db.Integer, nullable=True)

    last_movement_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_count_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    store = db.relationship("Store", backref=db.backref("stock_rows", lazy=True))
    article = db.relationship("Article", backref=db.backref("store_stocks", lazy=True))

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def effective_min_stock(self) -> int:
        if self.min_stock is not None:
            return self.min_stock
        return self.article.min_stock if self.article else 0

    def __repr__(self) -> str:
        return f"<StoreStock store_id={self.store_id} article_id={self.article_id} stock={self.stock}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "article_id": self.article_id,
            "article_name": self.article.name if self.article else None,
            "stock": self.stock,
            "min_stock": self.effective_min_stock,
            "min_stock_override": self.min_stock,
            "last_movement_at": to_utc_z(self.last_movement_at),
            "last_count_at": to_utc_z(self.last_count_at),
            "version_id": self.version_id,
        }


class StockMovement(db.Model):
    """
    Append-only stock ledger row.

    quantity is always positive; direction comes from movement_type.
    previous_stock/new_stock snapshot the projection around the append and
    shortfall is the part of a decrement absorbed by the zero clamp, so
    new_stock == previous_stock +/- quantity (+ shortfall for decrements).
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_store_article_created", "store_id", "article_id", "created_at"),
        db.Index("ix_stock_movements_reference", "reference_type", "reference_id"),
        db.CheckConstraint("quantity > 0", name="ck_stock_movements_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    article_id = db.Column(db.Integer, db.ForeignKey("articles.id"), nullable=False, index=True)

    movement_type = db.Column(db.String(16), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)

    previous_stock = db.Column(db.Integer, nullable=False, default=0)
    new_stock = db.Column(db.Integer, nullable=False, default=0)
    shortfall = db.Column(db.Integer, nullable=False, default=0)

    notes = db.Column(db.String(255), nullable=True)
    performed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    reference_type = db.Column(db.String(32), nullable=True)
    reference_id = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    store = db.relationship("Store")
    article = db.relationship("Article")

    @property
    def signed_quantity(self) -> int:
        if self.movement_type in OUTBOUND_MOVEMENT_TYPES:
            return -self.quantity
        return self.quantity

    def __repr__(self) -> str:
        return (
            f"<StockMovement id={self.id} {self.movement_type} qty={self.quantity} "
            f"store_id={self.store_id} article_id={self.article_id}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "article_id": self.article_id,
            "movement_type": self.movement_type,
            "quantity": self.quantity,
            "previous_stock": self.previous_stock,
            "new_stock": self.new_stock,
            "shortfall": self.shortfall,
            "notes": self.notes,
            "performed_by_user_id": self.performed_by_user_id,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "created_at": to_utc_z(self.created_at),
        }


class PurchaseOrder(db.Model):
    """
    Supplier order produced from reorder suggestions.

    LIFECYCLE:
    1. DRAFT: Created by reorder_service.process_reorder
    2. SUBMITTED: Sent to the supplier
    3. RECEIVED: Goods arrived; one `in` movement per line was appended
    4. CANCELLED: Abandoned before receipt
    """
    __tablename__ = "purchase_orders"
    __table_args__ = (
        db.UniqueConstraint("store_id", "document_number", name="uq_purchase_orders_store_docnum"),
        db.Index("ix_purchase_orders_store_status", "store_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    document_number = db.Column(db.String(64), nullable=False)
    supplier_name = db.Column(db.String(255), nullable=True)
    status = db.Column(db.String(16), nullable=False, default=PO_STATUS_DRAFT, index=True)
    total_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    submitted_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    received_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cancelled_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    received_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancellation_reason = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    store = db.relationship("Store")
    lines = db.relationship(
        "PurchaseOrderLine",
        backref="purchase_order",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="PurchaseOrderLine.id",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<PurchaseOrder id={self.id} doc_num={self.document_number!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "document_number": self.document_number,
            "supplier_name": self.supplier_name,
            "status": self.status,
            "total_cost_cents": self.total_cost_cents,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "submitted_by_user_id": self.submitted_by_user_id,
            "received_by_user_id": self.received_by_user_id,
            "cancelled_by_user_id": self.cancelled_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "submitted_at": to_utc_z(self.submitted_at),
            "received_at": to_utc_z(self.received_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancellation_reason": self.cancellation_reason,
            "lines": [line.to_dict() for line in self.lines],
        }


class PurchaseOrderLine(db.Model):
    __tablename__ = "purchase_order_lines"
    __table_args__ = (
        db.UniqueConstraint("purchase_order_id", "article_id", name="uq_purchase_order_lines_po_article"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_order_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=False, index=True)
    article_id = db.Column(db.Integer, db.ForeignKey("articles.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=False, default=0)

    # Set when the order is received
    in_movement_id = db.Column(db.Integer, db.ForeignKey("stock_movements.id"), nullable=True)

    article = db.relationship("Article")

    @property
    def line_cost_cents(self) -> int:
        return self.quantity * self.unit_cost_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_order_id": self.purchase_order_id,
            "article_id": self.article_id,
            "article_name": self.article.name if self.article else None,
            "quantity": self.quantity,
            "unit_cost_cents": self.unit_cost_cents,
            "line_cost_cents": self.line_cost_cents,
            "in_movement_id": self.in_movement_id,
        }
