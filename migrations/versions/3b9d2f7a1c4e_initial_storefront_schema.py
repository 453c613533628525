"""initial storefront schema

Revision ID: 3b9d2f7a1c4e
Revises:
Create Date: 2026-10-16 09:00:00.000000
"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "3b9d2f7a1c4e"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

UUID = postgresql.UUID(as_uuid=True)

cart_status = sa.Enum("active", "converted", "abandoned", "expired", name="cart_status")
order_status = sa.Enum(
    "pending", "confirmed", "processing", "shipped", "delivered", "cancelled", "refunded",
    name="order_status",
)
order_item_status = sa.Enum(
    "pending", "confirmed", "processing", "shipped", "delivered", "cancelled", "returned", "refunded",
    name="order_item_status",
)
payment_status = sa.Enum("pending", "partial", "paid", "failed", "refunded", name="payment_status")
refund_status = sa.Enum(
    "pending", "approved", "rejected", "processing", "completed", "failed", "cancelled",
    name="refund_status",
)
shipment_status = sa.Enum(
    "pending", "processing", "shipped", "in_transit", "out_for_delivery", "delivered", "failed",
    "returned", "cancelled",
    name="shipment_status",
)
coupon_type = sa.Enum("percentage", "fixed", "free_shipping", "buy_one_get_one", name="coupon_type")
movement_type = sa.Enum(
    "in", "out", "adjustment", "transfer", "return", "damaged", "expired", "lost", "found",
    "reserve", "release", "sale", "restock",
    name="inventory_movement_type",
)
movement_status = sa.Enum("pending", "approved", "rejected", "cancelled", name="inventory_movement_status")


def _stock_columns() -> list[sa.Column]:
    return [
        sa.Column("stock_quantity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("reserved_quantity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("available_quantity", sa.Integer(), nullable=False, server_default=sa.text("0")),
    ]


def _stock_checks(table: str) -> list[sa.CheckConstraint]:
    return [
        sa.CheckConstraint("stock_quantity >= 0", name=f"ck_{table}_stock_non_negative"),
        sa.CheckConstraint("reserved_quantity >= 0", name=f"ck_{table}_reserved_non_negative"),
        sa.CheckConstraint("available_quantity >= 0", name=f"ck_{table}_available_non_negative"),
        sa.CheckConstraint(
            "available_quantity = stock_quantity - reserved_quantity",
            name=f"ck_{table}_available_balance",
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "categories",
        sa.Column("id", UUID, nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_categories"),
    )

    op.create_table(
        "products",
        sa.Column("id", UUID, nullable=False),
        sa.Column("sku", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("category_id", UUID, nullable=True),
        sa.Column("price", sa.Numeric(12, 2), nullable=False),
        sa.Column("sale_price", sa.Numeric(12, 2), nullable=True),
        sa.Column("weight", sa.Numeric(10, 3), nullable=False, server_default=sa.text("0")),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_stock_columns(),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ["category_id"], ["categories.id"],
            name="fk_products_category_id_categories", ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_products"),
        sa.UniqueConstraint("sku", name="uq_products_sku"),
        *_stock_checks("products"),
    )
    op.create_index("ix_products_category_id", "products", ["category_id"])

    op.create_table(
        "product_variants",
        sa.Column("id", UUID, nullable=False),
        sa.Column("product_id", UUID, nullable=False),
        sa.Column("sku", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=True),
        sa.Column("price", sa.Numeric(12, 2), nullable=True),
        sa.Column("sale_price", sa.Numeric(12, 2), nullable=True),
        sa.Column("weight", sa.Numeric(10, 3), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_stock_columns(),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ["product_id"], ["products.id"],
            name="fk_product_variants_product_id_products", ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_product_variants"),
        sa.UniqueConstraint("sku", name="uq_product_variants_sku"),
        *_stock_checks("product_variants"),
    )
    op.create_index("ix_product_variants_product_id", "product_variants", ["product_id"])

    op.create_table(
        "customers",
        sa.Column("id", UUID, nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("full_name", sa.String(length=200), nullable=True),
        sa.Column("loyalty_level", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_customers"),
        sa.UniqueConstraint("email", name="uq_customers_email"),
    )

    op.create_table(
        "coupons",
        sa.Column("id", UUID, nullable=False),
        sa.Column("code", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("type", coupon_type, nullable=False),
        sa.Column("value", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("min_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("max_discount", sa.Numeric(12, 2), nullable=True),
        sa.Column("usage_limit", sa.Integer(), nullable=True),
        sa.Column("used_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("per_user_limit", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("applicable_products", sa.JSON(), nullable=True),
        sa.Column("excluded_products", sa.JSON(), nullable=True),
        sa.Column("applicable_categories", sa.JSON(), nullable=True),
        sa.Column("excluded_categories", sa.JSON(), nullable=True),
        sa.Column("applicable_users", sa.JSON(), nullable=True),
        sa.Column("excluded_users", sa.JSON(), nullable=True),
        sa.Column("first_time_only", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("new_users_only", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("loyalty_level_required", sa.Integer(), nullable=True),
        sa.Column("minimum_order_count", sa.Integer(), nullable=True),
        sa.Column("minimum_spent", sa.Numeric(12, 2), nullable=True),
        sa.Column("maximum_spent", sa.Numeric(12, 2), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_coupons"),
        sa.UniqueConstraint("code", name="uq_coupons_code"),
        sa.CheckConstraint("used_count >= 0", name="ck_coupons_used_count_non_negative"),
        sa.CheckConstraint(
            "usage_limit IS NULL OR used_count <= usage_limit",
            name="ck_coupons_used_count_within_limit",
        ),
    )

    op.create_table(
        "carts",
        sa.Column("id", UUID, nullable=False),
        sa.Column("user_id", UUID, nullable=True),
        sa.Column("session_id", sa.String(length=120), nullable=True),
        sa.Column("status", cart_status, nullable=False, server_default="active"),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="SAR"),
        sa.Column("subtotal", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("tax_amount", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("shipping_cost", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("discount_amount", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("attributes", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("converted_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_carts"),
    )
    op.create_index("ix_carts_user_id_status", "carts", ["user_id", "status"])
    op.create_index("ix_carts_session_id_status", "carts", ["session_id", "status"])

    op.create_table(
        "cart_items",
        sa.Column("id", UUID, nullable=False),
        sa.Column("cart_id", UUID, nullable=False),
        sa.Column("product_id", UUID, nullable=False),
        sa.Column("variant_id", UUID, nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("price", sa.Numeric(12, 2), nullable=False),
        sa.Column("reserved_quantity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("options", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["cart_id"], ["carts.id"], name="fk_cart_items_cart_id_carts", ondelete="CASCADE"),
        sa.ForeignKeyConstraint(
            ["product_id"], ["products.id"], name="fk_cart_items_product_id_products", ondelete="RESTRICT"
        ),
        sa.ForeignKeyConstraint(
            ["variant_id"], ["product_variants.id"],
            name="fk_cart_items_variant_id_product_variants", ondelete="RESTRICT",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_cart_items"),
        sa.CheckConstraint("quantity > 0", name="ck_cart_items_quantity_positive"),
        sa.CheckConstraint("reserved_quantity >= 0", name="ck_cart_items_reserved_non_negative"),
    )
    op.create_index("ix_cart_items_cart_id", "cart_items", ["cart_id"])

    op.create_table(
        "cart_coupons",
        sa.Column("cart_id", UUID, nullable=False),
        sa.Column("coupon_id", UUID, nullable=False),
        sa.ForeignKeyConstraint(["cart_id"], ["carts.id"], name="fk_cart_coupons_cart_id_carts", ondelete="CASCADE"),
        sa.ForeignKeyConstraint(
            ["coupon_id"], ["coupons.id"], name="fk_cart_coupons_coupon_id_coupons", ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("cart_id", "coupon_id", name="pk_cart_coupons"),
    )

    op.create_table(
        "orders",
        sa.Column("id", UUID, nullable=False),
        sa.Column("order_number", sa.String(length=32), nullable=False),
        sa.Column("user_id", UUID, nullable=True),
        sa.Column("session_id", sa.String(length=120), nullable=True),
        sa.Column("cart_id", UUID, nullable=True),
        sa.Column("status", order_status, nullable=False, server_default="pending"),
        sa.Column("payment_status", payment_status, nullable=False, server_default="pending"),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="SAR"),
        sa.Column("subtotal", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("tax_amount", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("shipping_cost", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("discount_amount", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("refund_amount", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("refund_reason", sa.Text(), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("processing_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("shipped_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("refunded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["cart_id"], ["carts.id"], name="fk_orders_cart_id_carts", ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id", name="pk_orders"),
        sa.UniqueConstraint("order_number", name="uq_orders_order_number"),
    )
    op.create_index("ix_orders_user_id_status", "orders", ["user_id", "status"])

    op.create_table(
        "order_items",
        sa.Column("id", UUID, nullable=False),
        sa.Column("order_id", UUID, nullable=False),
        sa.Column("product_id", UUID, nullable=False),
        sa.Column("variant_id", UUID, nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("price", sa.Numeric(12, 2), nullable=False),
        sa.Column("total_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("tax_amount", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("options", sa.JSON(), nullable=True),
        sa.Column("status", order_item_status, nullable=False, server_default="pending"),
        sa.Column("return_reason", sa.Text(), nullable=True),
        sa.Column("returned_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"], name="fk_order_items_order_id_orders", ondelete="CASCADE"),
        sa.ForeignKeyConstraint(
            ["product_id"], ["products.id"], name="fk_order_items_product_id_products", ondelete="RESTRICT"
        ),
        sa.ForeignKeyConstraint(
            ["variant_id"], ["product_variants.id"],
            name="fk_order_items_variant_id_product_variants", ondelete="RESTRICT",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_order_items"),
        sa.CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
    )
    op.create_index("ix_order_items_order_id", "order_items", ["order_id"])

    op.create_table(
        "payments",
        sa.Column("id", UUID, nullable=False),
        sa.Column("order_id", UUID, nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("status", payment_status, nullable=False, server_default="paid"),
        sa.Column("method", sa.String(length=60), nullable=True),
        sa.Column("transaction_id", sa.String(length=140), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"], name="fk_payments_order_id_orders", ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id", name="pk_payments"),
    )
    op.create_index("ix_payments_order_id", "payments", ["order_id"])

    op.create_table(
        "refunds",
        sa.Column("id", UUID, nullable=False),
        sa.Column("order_id", UUID, nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("status", refund_status, nullable=False, server_default="pending"),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"], name="fk_refunds_order_id_orders", ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id", name="pk_refunds"),
    )
    op.create_index("ix_refunds_order_id", "refunds", ["order_id"])

    op.create_table(
        "shipments",
        sa.Column("id", UUID, nullable=False),
        sa.Column("order_id", UUID, nullable=False),
        sa.Column("status", shipment_status, nullable=False, server_default="pending"),
        sa.Column("carrier", sa.String(length=120), nullable=True),
        sa.Column("tracking_number", sa.String(length=140), nullable=True),
        sa.Column("shipped_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"], name="fk_shipments_order_id_orders", ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id", name="pk_shipments"),
    )
    op.create_index("ix_shipments_order_id", "shipments", ["order_id"])

    op.create_table(
        "coupon_usages",
        sa.Column("id", UUID, nullable=False),
        sa.Column("coupon_id", UUID, nullable=False),
        sa.Column("user_id", UUID, nullable=True),
        sa.Column("order_id", UUID, nullable=True),
        sa.Column("discount_amount", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(
            ["coupon_id"], ["coupons.id"], name="fk_coupon_usages_coupon_id_coupons", ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(
            ["order_id"], ["orders.id"], name="fk_coupon_usages_order_id_orders", ondelete="SET NULL"
        ),
        sa.PrimaryKeyConstraint("id", name="pk_coupon_usages"),
    )
    op.create_index("ix_coupon_usages_coupon_user", "coupon_usages", ["coupon_id", "user_id"])

    op.create_table(
        "inventory_movements",
        sa.Column("id", UUID, nullable=False),
        sa.Column("product_id", UUID, nullable=False),
        sa.Column("variant_id", UUID, nullable=True),
        sa.Column("movement_type", movement_type, nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("status", movement_status, nullable=False, server_default="pending"),
        sa.Column("reference", sa.String(length=120), nullable=True),
        sa.Column("reason", sa.String(length=255), nullable=True),
        sa.Column("performed_by", sa.String(length=120), nullable=True),
        sa.Column("approved_by", sa.String(length=120), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ["product_id"], ["products.id"], name="fk_inventory_movements_product_id_products", ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(
            ["variant_id"], ["product_variants.id"],
            name="fk_inventory_movements_variant_id_product_variants", ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_inventory_movements"),
    )
    op.create_index(
        "ix_inventory_movements_product_created", "inventory_movements", ["product_id", "created_at"]
    )
    op.create_index("ix_inventory_movements_variant_id", "inventory_movements", ["variant_id"])


def downgrade() -> None:
    op.drop_index("ix_inventory_movements_variant_id", table_name="inventory_movements")
    op.drop_index("ix_inventory_movements_product_created", table_name="inventory_movements")
    op.drop_table("inventory_movements")
    op.drop_index("ix_coupon_usages_coupon_user", table_name="coupon_usages")
    op.drop_table("coupon_usages")
    for table in ("shipments", "refunds", "payments", "order_items"):
        op.drop_index(f"ix_{table}_order_id", table_name=table)
        op.drop_table(table)
    op.drop_index("ix_orders_user_id_status", table_name="orders")
    op.drop_table("orders")
    op.drop_table("cart_coupons")
    op.drop_index("ix_cart_items_cart_id", table_name="cart_items")
    op.drop_table("cart_items")
    op.drop_index("ix_carts_session_id_status", table_name="carts")
    op.drop_index("ix_carts_user_id_status", table_name="carts")
    op.drop_table("carts")
    op.drop_table("coupons")
    op.drop_table("customers")
    op.drop_index("ix_product_variants_product_id", table_name="product_variants")
    op.drop_table("product_variants")
    op.drop_index("ix_products_category_id", table_name="products")
    op.drop_table("products")
    op.drop_table("categories")

    bind = op.get_bind()
    for enum_type in (
        movement_status,
        movement_type,
        coupon_type,
        shipment_status,
        refund_status,
        payment_status,
        order_item_status,
        order_status,
        cart_status,
    ):
        enum_type.drop(bind, checkfirst=True)
