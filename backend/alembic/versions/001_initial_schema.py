"""Initial schema: events, bookings, payments with indexes and constraints.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

PAYMENT_METHODS = "('net banking', 'debit card', 'credit card', 'upi')"
PAYMENT_STATUSES = "('Pending', 'Completed', 'Failed')"


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # Events table
    op.create_table(
        "events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.String(1000), nullable=True),
        sa.Column("location", sa.String(255), nullable=True),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("price", sa.Integer(), nullable=False),
        sa.Column("total_tickets", sa.Integer(), nullable=False),
        sa.Column("available_tickets", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'active'")),
        sa.Column("organizer_id", sa.Integer(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.CheckConstraint("available_tickets >= 0", name="check_available_tickets_non_negative"),
        sa.CheckConstraint("total_tickets > 0", name="check_total_tickets_positive"),
        sa.CheckConstraint("available_tickets <= total_tickets", name="check_available_lte_total"),
        sa.CheckConstraint("price >= 0", name="check_event_price_non_negative"),
        sa.CheckConstraint("end_date > start_date", name="check_event_dates_ordered"),
        sa.CheckConstraint("status IN ('active', 'inactive')", name="event_status"),
    )
    op.create_index("ix_events_id", "events", ["id"])
    # Covers the sweep that closes booking for events that have started:
    # WHERE status = 'active' AND start_date <= now
    op.create_index("ix_events_status_start_date", "events", ["status", "start_date"])

    # Bookings table
    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("ticket_price", sa.Integer(), nullable=False),
        sa.Column("total_price", sa.Integer(), nullable=False),
        sa.Column("payment_method", sa.String(20), nullable=False),
        sa.Column("booking_details", sa.JSON(), nullable=False),
        sa.Column("payment_status", sa.String(20), nullable=False, server_default=sa.text("'Pending'")),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'Pending'")),
        sa.Column("cancellation_reason", sa.String(500), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("quantity >= 1 AND quantity <= 10", name="check_booking_quantity_range"),
        sa.CheckConstraint("ticket_price >= 0", name="check_booking_ticket_price_non_negative"),
        sa.CheckConstraint("total_price >= 0", name="check_booking_total_price_non_negative"),
        sa.CheckConstraint(f"payment_method IN {PAYMENT_METHODS}", name="booking_payment_method"),
        sa.CheckConstraint(f"payment_status IN {PAYMENT_STATUSES}", name="booking_payment_status"),
        sa.CheckConstraint(
            "status IN ('Pending', 'Confirmed', 'Failed', 'Cancelled')", name="booking_status"
        ),
    )
    op.create_index("ix_bookings_id", "bookings", ["id"])
    op.create_index("ix_bookings_user_id", "bookings", ["user_id"])
    op.create_index("ix_bookings_event_id", "bookings", ["event_id"])
    # Pending bookings by age, for the unmonitored-booking sweep
    op.create_index("ix_bookings_status_created_at", "bookings", ["status", "created_at"])

    # Payments table
    op.create_table(
        "payments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("booking_id", sa.Integer(), sa.ForeignKey("bookings.id"), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(8), nullable=False),
        sa.Column("payment_method", sa.String(20), nullable=False),
        sa.Column("receipt", sa.String(64), nullable=False),
        sa.Column("payment_status", sa.String(20), nullable=False, server_default=sa.text("'Pending'")),
        sa.Column("gateway_order_id", sa.String(64), nullable=False),
        sa.Column("gateway_payment_id", sa.String(64), nullable=True),
        sa.Column("gateway_signature", sa.String(255), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("booking_id", name="uq_payments_booking_id"),
        sa.UniqueConstraint("gateway_order_id", name="uq_payments_gateway_order_id"),
        sa.CheckConstraint("amount >= 0", name="check_payment_amount_non_negative"),
        sa.CheckConstraint(f"payment_method IN {PAYMENT_METHODS}", name="payment_method"),
        sa.CheckConstraint(f"payment_status IN {PAYMENT_STATUSES}", name="payment_status"),
    )
    op.create_index("ix_payments_id", "payments", ["id"])
    op.create_index("ix_payments_user_id", "payments", ["user_id"])


def downgrade() -> None:
    op.drop_table("payments")
    op.drop_table("bookings")
    op.drop_table("events")
