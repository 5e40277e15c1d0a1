"""initial_marketplace_schema

Revision ID: 3f1c2a9d7b41
Revises:
Create Date: 2026-10-19 09:12:44.301822

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3f1c2a9d7b41'
down_revision = None
branch_labels = None
depends_on = None


ORDER_STATUSES = ("Processing", "Shipped", "Delivered", "Cancelled")
PAYMENT_STATUSES = ("pending", "successful", "failed", "cancelled")


def upgrade():
    # =========================
    # user
    # =========================
    op.create_table(
        "user",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("email", sa.String(length=120), nullable=False),
        sa.Column("phone", sa.String(length=20), nullable=True),
        sa.Column("avatar", sa.String(length=500), nullable=True),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=20), nullable=False, server_default="buyer"),
        sa.Column("farm_name", sa.String(length=160), nullable=True),
        sa.Column("location", sa.String(length=160), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_login_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("email", name="user_email_key"),
        sa.CheckConstraint("role in ('admin','farmer','buyer')", name="ck_user_role"),
    )

    # =========================
    # product
    # =========================
    op.create_table(
        "product",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("farmer_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("description", sa.String(length=1000), nullable=True),
        sa.Column("price", sa.Float(), nullable=False),
        sa.Column("unit", sa.String(length=20), nullable=False, server_default="kg"),
        sa.Column("category", sa.String(length=30), nullable=False),
        sa.Column("sub_category", sa.String(length=60), nullable=True),
        sa.Column("images", sa.JSON(), nullable=False),
        sa.Column("stock", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("location", sa.String(length=160), nullable=False),
        sa.Column("harvest_date", sa.Date(), nullable=True),
        sa.Column("organic", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["farmer_id"], ["user.id"], name="fk_product_farmer"),
        sa.CheckConstraint("stock >= 0", name="ck_product_stock_non_negative"),
        sa.CheckConstraint("price >= 0", name="ck_product_price_non_negative"),
    )
    op.create_index("ix_product_farmer_id", "product", ["farmer_id"])
    op.create_index("ix_product_category", "product", ["category"])

    # =========================
    # order
    # =========================
    op.create_table(
        "order",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("shipping_address", sa.String(length=255), nullable=False),
        sa.Column("shipping_city", sa.String(length=120), nullable=False),
        sa.Column("shipping_postal_code", sa.String(length=20), nullable=False),
        sa.Column("shipping_country", sa.String(length=80), nullable=False),
        sa.Column("shipping_phone", sa.String(length=20), nullable=False),
        sa.Column("payment_method", sa.String(length=30), nullable=False),
        sa.Column("items_price", sa.Float(), nullable=False, server_default="0"),
        sa.Column("tax_price", sa.Float(), nullable=False, server_default="0"),
        sa.Column("shipping_price", sa.Float(), nullable=False, server_default="0"),
        sa.Column("total_price", sa.Float(), nullable=False, server_default="0"),
        sa.Column("payment_result_id", sa.String(length=120), nullable=True),
        sa.Column("payment_result_status", sa.String(length=40), nullable=True),
        sa.Column("payment_result_update_time", sa.String(length=40), nullable=True),
        sa.Column("payment_result_email", sa.String(length=120), nullable=True),
        sa.Column("payment_result_phone", sa.String(length=20), nullable=True),
        sa.Column(
            "status",
            sa.Enum(*ORDER_STATUSES, name="order_status", native_enum=False),
            nullable=False,
            server_default="Processing",
        ),
        sa.Column("paid_at", sa.DateTime(), nullable=True),
        sa.Column("shipped_at", sa.DateTime(), nullable=True),
        sa.Column("delivered_at", sa.DateTime(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.Column("cancelled_by_id", sa.Integer(), nullable=True),
        sa.Column("inventory_updated", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["user_id"], ["user.id"], name="fk_order_user"),
        sa.ForeignKeyConstraint(["cancelled_by_id"], ["user.id"], name="fk_order_cancelled_by"),
    )
    op.create_index("ix_order_user_id", "order", ["user_id"])
    op.create_index("ix_order_status", "order", ["status"])

    # =========================
    # order_item (snapshot)
    # =========================
    op.create_table(
        "order_item",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=True),
        sa.Column("farmer_id", sa.Integer(), nullable=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("image", sa.String(length=500), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("price", sa.Float(), nullable=False),
        sa.Column("farm_name", sa.String(length=160), nullable=True),
        sa.Column("farmer_phone", sa.String(length=20), nullable=True),
        sa.ForeignKeyConstraint(["order_id"], ["order.id"], name="fk_order_item_order", ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["product_id"], ["product.id"], name="fk_order_item_product", ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["farmer_id"], ["user.id"], name="fk_order_item_farmer"),
        sa.CheckConstraint("quantity >= 1", name="ck_order_item_quantity"),
        sa.CheckConstraint("price >= 0", name="ck_order_item_price"),
    )
    op.create_index("ix_order_item_order_id", "order_item", ["order_id"])
    op.create_index("ix_order_item_product_id", "order_item", ["product_id"])
    op.create_index("ix_order_item_farmer_id", "order_item", ["farmer_id"])

    # =========================
    # payment
    # =========================
    op.create_table(
        "payment",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("payment_method", sa.String(length=30), nullable=False, server_default="M-Pesa"),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column(
            "status",
            sa.Enum(*PAYMENT_STATUSES, name="payment_status", native_enum=False),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("checkout_request_id", sa.String(length=100), nullable=True),
        sa.Column("merchant_request_id", sa.String(length=100), nullable=True),
        sa.Column("mpesa_receipt_number", sa.String(length=50), nullable=True),
        sa.Column("transaction_date", sa.String(length=40), nullable=True),
        sa.Column("phone_number", sa.String(length=20), nullable=True),
        sa.Column("mpesa_amount", sa.Float(), nullable=True),
        sa.Column("mpesa_status", sa.String(length=20), nullable=True),
        sa.Column("result_code", sa.Integer(), nullable=True),
        sa.Column("result_desc", sa.String(length=255), nullable=True),
        sa.Column("payment_date", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["order_id"], ["order.id"], name="fk_payment_order"),
        sa.ForeignKeyConstraint(["user_id"], ["user.id"], name="fk_payment_user"),
        sa.UniqueConstraint("checkout_request_id", name="payment_checkout_request_id_key"),
    )
    op.create_index("ix_payment_order_id", "payment", ["order_id"])
    op.create_index("ix_payment_user_id", "payment", ["user_id"])
    op.create_index("ix_payment_status", "payment", ["status"])


def downgrade():
    op.drop_index("ix_payment_status", table_name="payment")
    op.drop_index("ix_payment_user_id", table_name="payment")
    op.drop_index("ix_payment_order_id", table_name="payment")
    op.drop_table("payment")

    op.drop_index("ix_order_item_farmer_id", table_name="order_item")
    op.drop_index("ix_order_item_product_id", table_name="order_item")
    op.drop_index("ix_order_item_order_id", table_name="order_item")
    op.drop_table("order_item")

    op.drop_index("ix_order_status", table_name="order")
    op.drop_index("ix_order_user_id", table_name="order")
    op.drop_table("order")

    op.drop_index("ix_product_category", table_name="product")
    op.drop_index("ix_product_farmer_id", table_name="product")
    op.drop_table("product")

    op.drop_table("user")
