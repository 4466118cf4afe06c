"""Initial multi-store inventory schema

Revision ID: 20261018_initial
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261018_initial"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(*names):
    return [
        sa.Column(name, sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False)
        for name in names
    ]


def upgrade():
    op.create_table(
        "stores",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("code", sa.String(32), nullable=True),
        sa.Column("city", sa.String(120), nullable=True),
        sa.Column("is_headquarters", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        *_timestamps("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("stores", schema=None) as batch_op:
        batch_op.create_index("ix_stores_code", ["code"], unique=True)

    op.create_table(
        "document_sequences",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("store_id", sa.Integer(), nullable=False),
        sa.Column("document_type", sa.String(32), nullable=False),
        sa.Column("next_number", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("store_id", "document_type", name="uq_document_sequences_store_type"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("document_sequences", schema=None) as batch_op:
        batch_op.create_index("ix_document_sequences_store_id", ["store_id"], unique=False)

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("username", sa.String(64), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=True),
        sa.Column("role", sa.String(32), nullable=False, server_default="client"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        *_timestamps("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("users", schema=None) as batch_op:
        batch_op.create_index("ix_users_username", ["username"], unique=True)

    op.create_table(
        "store_access_profiles",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("access_type", sa.String(16), nullable=False, server_default="single"),
        sa.Column("is_global_access", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("primary_store_id", sa.Integer(), nullable=True),
        *_timestamps("updated_at"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["primary_store_id"], ["stores.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("store_access_profiles", schema=None) as batch_op:
        batch_op.create_index("ix_store_access_profiles_user_id", ["user_id"], unique=True)

    op.create_table(
        "user_store_assignments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("store_id", sa.Integer(), nullable=False),
        sa.Column("is_primary", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("can_create", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("can_edit", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("can_delete", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("can_view_reports", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("can_manage_stock", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("can_manage_users", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("assigned_by_user_id", sa.Integer(), nullable=True),
        *_timestamps("assigned_at"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"]),
        sa.ForeignKeyConstraint(["assigned_by_user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "store_id", name="uq_user_store_assignment"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("user_store_assignments", schema=None) as batch_op:
        batch_op.create_index("ix_user_store_assignments_user_id", ["user_id"], unique=False)
        batch_op.create_index("ix_user_store_assignments_store", ["store_id"], unique=False)

    op.create_table(
        "articles",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("unit", sa.String(32), nullable=False, server_default="unit"),
        sa.Column("price_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("purchase_price_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("min_stock", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("category", sa.String(120), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="active"),
        sa.Column("supplier_name", sa.String(255), nullable=True),
        *_timestamps("created_at", "updated_at"),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("articles", schema=None) as batch_op:
        batch_op.create_index("ix_articles_status", ["status"], unique=False)

    op.create_table(
        "sales",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("store_id", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="completed"),
        *_timestamps("sold_at"),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("sales", schema=None) as batch_op:
        batch_op.create_index("ix_sales_store_id", ["store_id"], unique=False)
        batch_op.create_index("ix_sales_sold_at", ["sold_at"], unique=False)
        batch_op.create_index("ix_sales_status_sold_at", ["status", "sold_at"], unique=False)

    op.create_table(
        "sale_lines",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("sale_id", sa.Integer(), nullable=False),
        sa.Column("article_id", sa.Integer(), nullable=True),
        sa.Column("item_type", sa.String(16), nullable=False, server_default="article"),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["sale_id"], ["sales.id"]),
        sa.ForeignKeyConstraint(["article_id"], ["articles.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("sale_lines", schema=None) as batch_op:
        batch_op.create_index("ix_sale_lines_sale_id", ["sale_id"], unique=False)
        batch_op.create_index("ix_sale_lines_article_id", ["article_id"], unique=False)

    op.create_table(
        "store_stock",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("store_id", sa.Integer(), nullable=False),
        sa.Column("article_id", sa.Integer(), nullable=False),
        sa.Column("stock", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("min_stock", sa.Integer(), nullable=True),
        sa.Column("last_movement_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_count_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps("updated_at"),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"]),
        sa.ForeignKeyConstraint(["article_id"], ["articles.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("store_id", "article_id", name="uq_store_stock_store_article"),
        sa.CheckConstraint("stock >= 0", name="ck_store_stock_non_negative"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("store_stock", schema=None) as batch_op:
        batch_op.create_index("ix_store_stock_store_id", ["store_id"], unique=False)
        batch_op.create_index("ix_store_stock_article_id", ["article_id"], unique=False)

    op.create_table(
        "stock_movements",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("store_id", sa.Integer(), nullable=False),
        sa.Column("article_id", sa.Integer(), nullable=False),
        sa.Column("movement_type", sa.String(16), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("previous_stock", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("new_stock", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("shortfall", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("notes", sa.String(255), nullable=True),
        sa.Column("performed_by_user_id", sa.Integer(), nullable=True),
        sa.Column("reference_type", sa.String(32), nullable=True),
        sa.Column("reference_id", sa.String(64), nullable=True),
        *_timestamps("created_at"),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"]),
        sa.ForeignKeyConstraint(["article_id"], ["articles.id"]),
        sa.ForeignKeyConstraint(["performed_by_user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("quantity > 0", name="ck_stock_movements_quantity_positive"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("stock_movements", schema=None) as batch_op:
        batch_op.create_index("ix_stock_movements_store_id", ["store_id"], unique=False)
        batch_op.create_index("ix_stock_movements_article_id", ["article_id"], unique=False)
        batch_op.create_index("ix_stock_movements_movement_type", ["movement_type"], unique=False)
        batch_op.create_index("ix_stock_movements_performed_by_user_id", ["performed_by_user_id"], unique=False)
        batch_op.create_index("ix_stock_movements_created_at", ["created_at"], unique=False)
        batch_op.create_index(
            "ix_stock_movements_store_article_created", ["store_id", "article_id", "created_at"], unique=False
        )
        batch_op.create_index("ix_stock_movements_reference", ["reference_type", "reference_id"], unique=False)

    op.create_table(
        "purchase_orders",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("store_id", sa.Integer(), nullable=False),
        sa.Column("document_number", sa.String(64), nullable=False),
        sa.Column("supplier_name", sa.String(255), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="DRAFT"),
        sa.Column("total_cost_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by_user_id", sa.Integer(), nullable=False),
        sa.Column("submitted_by_user_id", sa.Integer(), nullable=True),
        sa.Column("received_by_user_id", sa.Integer(), nullable=True),
        sa.Column("cancelled_by_user_id", sa.Integer(), nullable=True),
        *_timestamps("created_at"),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"]),
        sa.ForeignKeyConstraint(["created_by_user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["submitted_by_user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["received_by_user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["cancelled_by_user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("store_id", "document_number", name="uq_purchase_orders_store_docnum"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("purchase_orders", schema=None) as batch_op:
        batch_op.create_index("ix_purchase_orders_store_id", ["store_id"], unique=False)
        batch_op.create_index("ix_purchase_orders_status", ["status"], unique=False)
        batch_op.create_index("ix_purchase_orders_store_status", ["store_id", "status"], unique=False)

    op.create_table(
        "purchase_order_lines",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("purchase_order_id", sa.Integer(), nullable=False),
        sa.Column("article_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_cost_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("in_movement_id", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["purchase_order_id"], ["purchase_orders.id"]),
        sa.ForeignKeyConstraint(["article_id"], ["articles.id"]),
        sa.ForeignKeyConstraint(["in_movement_id"], ["stock_movements.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("purchase_order_id", "article_id", name="uq_purchase_order_lines_po_article"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("purchase_order_lines", schema=None) as batch_op:
        batch_op.create_index("ix_purchase_order_lines_purchase_order_id", ["purchase_order_id"], unique=False)
        batch_op.create_index("ix_purchase_order_lines_article_id", ["article_id"], unique=False)

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(16), nullable=False, server_default="info"),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("store_id", sa.Integer(), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        *_timestamps("created_at"),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("notifications", schema=None) as batch_op:
        batch_op.create_index("ix_notifications_store_created", ["store_id", "created_at"], unique=False)

    op.create_table(
        "sync_outbox",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("kind", sa.String(32), nullable=False),
        sa.Column("payload", sa.Text(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="PENDING"),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("last_error", sa.Text(), nullable=True),
        *_timestamps("created_at"),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("sync_outbox", schema=None) as batch_op:
        batch_op.create_index("ix_sync_outbox_status_id", ["status", "id"], unique=False)


def downgrade():
    op.drop_table("sync_outbox")
    op.drop_table("notifications")
    op.drop_table("purchase_order_lines")
    op.drop_table("purchase_orders")
    op.drop_table("stock_movements")
    op.drop_table("store_stock")
    op.drop_table("sale_lines")
    op.drop_table("sales")
    op.drop_table("articles")
    op.drop_table("user_store_assignments")
    op.drop_table("store_access_profiles")
    op.drop_table("users")
    op.drop_table("document_sequences")
    op.drop_table("stores")
