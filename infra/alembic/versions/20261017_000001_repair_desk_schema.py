"""Customers and repair tickets."""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "20261017_000001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "customers",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False, unique=True),
        sa.Column("phone", sa.String(length=32), nullable=False),
        sa.Column("phone_digits", sa.String(length=32), nullable=False),
        sa.Column("address", sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), nullable=False),
    )
    op.create_index("ix_customers_name", "customers", ["name"])
    op.create_index("ix_customers_phone_digits", "customers", ["phone_digits"])

    op.create_table(
        "repair_tickets",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("ticket_number", sa.String(length=32), nullable=False),
        sa.Column("customer_id", sa.String(length=36), sa.ForeignKey("customers.id"), nullable=False),
        sa.Column("device_type", sa.String(length=100), nullable=False),
        sa.Column("brand", sa.String(length=100), nullable=False),
        sa.Column("device_model", sa.String(length=100), nullable=False),
        sa.Column("serial_number", sa.String(length=100), nullable=False, server_default=""),
        sa.Column("issue_description", sa.Text(), nullable=False),
        sa.Column("diagnosis", sa.Text(), nullable=False, server_default=""),
        sa.Column("technician", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("notes", sa.Text(), nullable=False, server_default=""),
        sa.Column("status", sa.String(length=50), nullable=False),
        sa.Column("priority", sa.String(length=20), nullable=False),
        sa.Column("repair_cost", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("parts_cost", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("labor_cost", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("total_cost", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("price_history", sa.JSON(), nullable=False, server_default=sa.text("'[]'")),
        sa.Column("updates", sa.JSON(), nullable=False, server_default=sa.text("'[]'")),
        sa.Column("estimated_completion", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("warranty_period_days", sa.Integer(), nullable=False, server_default=sa.text("30")),
        sa.Column("received_date", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.UniqueConstraint("ticket_number", name="uq_repair_tickets_ticket_number"),
    )
    op.create_index("ix_repair_tickets_ticket_number", "repair_tickets", ["ticket_number"])
    op.create_index("ix_repair_tickets_customer_id", "repair_tickets", ["customer_id"])
    op.create_index("ix_repair_tickets_status", "repair_tickets", ["status"])
    op.create_index("ix_repair_tickets_received_date", "repair_tickets", ["received_date"])


def downgrade() -> None:
    op.drop_index("ix_repair_tickets_received_date", table_name="repair_tickets")
    op.drop_index("ix_repair_tickets_status", table_name="repair_tickets")
    op.drop_index("ix_repair_tickets_customer_id", table_name="repair_tickets")
    op.drop_index("ix_repair_tickets_ticket_number", table_name="repair_tickets")
    op.drop_table("repair_tickets")
    op.drop_index("ix_customers_phone_digits", table_name="customers")
    op.drop_index("ix_customers_name", table_name="customers")
    op.drop_table("customers")
