from __future__ import annotations

from ..extensions import db
from stockroom.time_utils import to_utc_z


ARTICLE_STATUS_ACTIVE = "active"
ARTICLE_STATUS_INACTIVE = "inactive"

SALE_STATUS_COMPLETED = "completed"
SALE_STATUS_PENDING = "pending"
SALE_STATUS_CANCELLED = "cancelled"

ITEM_TYPE_ARTICLE = "article"
ITEM_TYPE_SERVICE = "service"


class Article(db.Model):
    """
    Sellable item, owned by catalog administration.

    Stock is never written here: on-hand quantities live in StoreStock and
    change only through StockMovement appends. `stock` sums them across
    stores.

    Prices are stored in cents.
    """
    __tablename__ = "articles"
    __table_args__ = (
        db.Index("ix_articles_status", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    unit = db.Column(db.String(32), nullable=False, default="unit")
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    purchase_price_cents = db.Column(db.Integer, nullable=False, default=0)

    # Default reorder threshold; StoreStock.min_stock overrides per store
    min_stock = db.Column(db.Integer, nullable=False, default=0)

    category = db.Column(db.String(120), nullable=True)
    status = db.Column(db.String(16), nullable=False, default=ARTICLE_STATUS_ACTIVE)
    supplier_name = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    @property
    def is_active(self) -> bool:
        return self.status == ARTICLE_STATUS_ACTIVE

    @property
    def stock(self) -> int:
        return sum(row.stock for row in self.store_stocks)

    def __repr__(self) -> str:
        return f"<Article id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "unit": self.unit,
            "price_cents": self.price_cents,
            "purchase_price_cents": self.purchase_price_cents,
            "stock": self.stock,
            "min_stock": self.min_stock,
            "category": self.category,
            "status": self.status,
            "supplier_name": self.supplier_name,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Sale(db.Model):
    """
    Sales history header, written by the checkout collaborator.

    The inventory core only reads completed sales (for velocity forecasts).
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_status_sold_at", "status", "sold_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=True, index=True)
    status = db.Column(db.String(16), nullable=False, default=SALE_STATUS_COMPLETED)
    sold_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    lines = db.relationship("SaleLine", backref="sale", lazy=True, cascade="all, delete-orphan")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "status": self.status,
            "sold_at": to_utc_z(self.sold_at),
            "lines": [line.to_dict() for line in self.lines],
        }


class SaleLine(db.Model):
    __tablename__ = "sale_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    article_id = db.Column(db.Integer, db.ForeignKey("articles.id"), nullable=True, index=True)
    item_type = db.Column(db.String(16), nullable=False, default=ITEM_TYPE_ARTICLE)
    quantity = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "article_id": self.article_id,
            "item_type": self.item_type,
            "quantity": self.quantity,
        }
