"""initial_schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19

Initial database schema for the Escrow Settlement Service.
"""

from collections.abc import Sequence

import sqlalchemy as sa
import sqlmodel

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

MONEY = sa.DECIMAL(12, 2)


def upgrade() -> None:
    """Create initial database schema."""
    # Users table
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("clerk_id", sqlmodel.sql.sqltypes.AutoString(length=255), nullable=False),
        sa.Column("email", sqlmodel.sql.sqltypes.AutoString(length=255), nullable=False),
        sa.Column("username", sqlmodel.sql.sqltypes.AutoString(length=255), nullable=True),
        sa.Column("role", sa.String(length=20), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("wallet_balance", MONEY, nullable=False),
        sa.Column("currency", sqlmodel.sql.sqltypes.AutoString(length=10), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_users_clerk_id"), "users", ["clerk_id"], unique=True)
    op.create_index(op.f("ix_users_email"), "users", ["email"], unique=False)
    op.create_index(op.f("ix_users_role"), "users", ["role"], unique=False)

    # Book listings table (columns used by the order flow)
    op.create_table(
        "book_listings",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("seller_id", sa.Integer(), nullable=False),
        sa.Column("title", sqlmodel.sql.sqltypes.AutoString(length=500), nullable=False),
        sa.Column("price", MONEY, nullable=False),
        sa.Column("quantity_available", sa.Integer(), nullable=False),
        sa.Column("listing_status", sa.String(length=20), nullable=False),
        sa.Column("sold_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["seller_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_book_listings_seller_id"), "book_listings", ["seller_id"])
    op.create_index(op.f("ix_book_listings_listing_status"), "book_listings", ["listing_status"])

    # Transactions table
    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(length=20), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("currency", sqlmodel.sql.sqltypes.AutoString(length=10), nullable=False),
        sa.Column("book_listing_id", sa.Integer(), nullable=True),
        sa.Column("order_id", sa.Integer(), nullable=True),
        sa.Column("escrow_id", sa.Integer(), nullable=True),
        sa.Column("description", sqlmodel.sql.sqltypes.AutoString(length=512), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_transactions_user_id"), "transactions", ["user_id"])
    op.create_index(op.f("ix_transactions_type"), "transactions", ["type"])
    op.create_index(op.f("ix_transactions_status"), "transactions", ["status"])
    op.create_index(op.f("ix_transactions_book_listing_id"), "transactions", ["book_listing_id"])
    op.create_index(op.f("ix_transactions_order_id"), "transactions", ["order_id"])
    op.create_index(op.f("ix_transactions_escrow_id"), "transactions", ["escrow_id"])
    op.create_index(op.f("ix_transactions_created_at"), "transactions", ["created_at"])

    # Escrow accounts table
    op.create_table(
        "escrow_accounts",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=True),
        sa.Column("book_listing_id", sa.Integer(), nullable=False),
        sa.Column("buyer_id", sa.Integer(), nullable=False),
        sa.Column("seller_id", sa.Integer(), nullable=False),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("platform_fee", MONEY, nullable=False),
        sa.Column("currency", sqlmodel.sql.sqltypes.AutoString(length=10), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("hold_period_days", sa.Integer(), nullable=False),
        sa.Column("release_at", sa.DateTime(), nullable=False),
        sa.Column("released_at", sa.DateTime(), nullable=True),
        sa.Column("refunded_at", sa.DateTime(), nullable=True),
        sa.Column("dispute_reason", sqlmodel.sql.sqltypes.AutoString(length=1000), nullable=True),
        sa.Column("dispute_resolved_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["book_listing_id"], ["book_listings.id"]),
        sa.ForeignKeyConstraint(["buyer_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["seller_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_escrow_accounts_order_id"), "escrow_accounts", ["order_id"])
    op.create_index(
        op.f("ix_escrow_accounts_book_listing_id"), "escrow_accounts", ["book_listing_id"]
    )
    op.create_index(op.f("ix_escrow_accounts_buyer_id"), "escrow_accounts", ["buyer_id"])
    op.create_index(op.f("ix_escrow_accounts_seller_id"), "escrow_accounts", ["seller_id"])
    op.create_index(op.f("ix_escrow_accounts_status"), "escrow_accounts", ["status"])
    # Release sweep: status = 'active' AND release_at < now
    op.create_index(op.f("ix_escrow_accounts_release_at"), "escrow_accounts", ["release_at"])

    # Orders table
    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("order_no", sqlmodel.sql.sqltypes.AutoString(length=64), nullable=False),
        sa.Column("buyer_id", sa.Integer(), nullable=False),
        sa.Column("seller_id", sa.Integer(), nullable=False),
        sa.Column("book_listing_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("total_amount", MONEY, nullable=False),
        sa.Column("platform_fee", MONEY, nullable=False),
        sa.Column("seller_amount", MONEY, nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("payment_step", sa.String(length=20), nullable=False),
        sa.Column("escrow_id", sa.Integer(), nullable=True),
        sa.Column("purchase_transaction_id", sa.Integer(), nullable=True),
        sa.Column("delivery_method", sqlmodel.sql.sqltypes.AutoString(length=50), nullable=True),
        sa.Column("delivery_address", sqlmodel.sql.sqltypes.AutoString(length=500), nullable=True),
        sa.Column("tracking_number", sqlmodel.sql.sqltypes.AutoString(length=100), nullable=True),
        sa.Column("buyer_notes", sqlmodel.sql.sqltypes.AutoString(length=1000), nullable=True),
        sa.Column("seller_notes", sqlmodel.sql.sqltypes.AutoString(length=1000), nullable=True),
        sa.Column(
            "cancellation_reason", sqlmodel.sql.sqltypes.AutoString(length=500), nullable=True
        ),
        sa.Column("paid_at", sa.DateTime(), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(), nullable=True),
        sa.Column("delivered_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["buyer_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["seller_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["book_listing_id"], ["book_listings.id"]),
        sa.ForeignKeyConstraint(["escrow_id"], ["escrow_accounts.id"]),
        sa.ForeignKeyConstraint(["purchase_transaction_id"], ["transactions.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_orders_order_no"), "orders", ["order_no"], unique=True)
    op.create_index(op.f("ix_orders_buyer_id"), "orders", ["buyer_id"])
    op.create_index(op.f("ix_orders_seller_id"), "orders", ["seller_id"])
    op.create_index(op.f("ix_orders_book_listing_id"), "orders", ["book_listing_id"])
    op.create_index(op.f("ix_orders_status"), "orders", ["status"])
    op.create_index(op.f("ix_orders_payment_step"), "orders", ["payment_step"])
    op.create_index(op.f("ix_orders_escrow_id"), "orders", ["escrow_id"])

    # Wallet entries table
    op.create_table(
        "wallet_transactions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("direction", sa.String(length=20), nullable=False),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("balance_after", MONEY, nullable=False),
        sa.Column("transaction_id", sa.Integer(), nullable=False),
        sa.Column("description", sqlmodel.sql.sqltypes.AutoString(length=512), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["transaction_id"], ["transactions.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_wallet_transactions_user_id"), "wallet_transactions", ["user_id"])
    op.create_index(
        op.f("ix_wallet_transactions_direction"), "wallet_transactions", ["direction"]
    )
    op.create_index(
        op.f("ix_wallet_transactions_transaction_id"), "wallet_transactions", ["transaction_id"]
    )
    op.create_index(
        op.f("ix_wallet_transactions_created_at"), "wallet_transactions", ["created_at"]
    )


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table("wallet_transactions")
    op.drop_table("orders")
    op.drop_table("escrow_accounts")
    op.drop_table("transactions")
    op.drop_table("book_listings")
    op.drop_table("users")
