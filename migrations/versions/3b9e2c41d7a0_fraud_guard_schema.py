"""fraud guard schema

Revision ID: 3b9e2c41d7a0
Revises:
Create Date: 2026-10-17 09:12:44.318205

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "3b9e2c41d7a0"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create gift card, fraud log, redemption and alert delivery tables."""
    op.create_table(
        "gift_cards",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("merchant_id", sa.Text(), nullable=False),
        sa.Column("gan", sa.Text(), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("balance", sa.Integer(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False),
        sa.Column("redeemed", sa.Boolean(), nullable=False),
        sa.Column("redeemed_at", sa.DateTime(), nullable=True),
        sa.Column("last_redemption_amount", sa.Integer(), nullable=True),
        sa.Column("expires_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_gift_cards_gan"), "gift_cards", ["gan"], unique=True)

    op.create_table(
        "gift_card_orders",
        sa.Column("id", sa.Text(), nullable=False),
        sa.Column("gift_card_gan", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "fraud_logs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("gan", sa.Text(), nullable=False),
        sa.Column("ip_address", sa.Text(), nullable=False),
        sa.Column("merchant_id", sa.Text(), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_fraud_logs_gan"), "fraud_logs", ["gan"], unique=False)
    op.create_index(op.f("ix_fraud_logs_ip_address"), "fraud_logs", ["ip_address"], unique=False)
    op.create_index(
        op.f("ix_fraud_logs_merchant_id"), "fraud_logs", ["merchant_id"], unique=False
    )
    op.create_index(op.f("ix_fraud_logs_created_at"), "fraud_logs", ["created_at"], unique=False)

    op.create_table(
        "card_redemptions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("card_id", sa.Integer(), nullable=False),
        sa.Column("merchant_id", sa.Text(), nullable=False),
        sa.Column("gift_card_gan", sa.Text(), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("ip_address", sa.Text(), nullable=False),
        sa.Column("device_fingerprint", sa.Text(), nullable=False),
        sa.Column("user_agent", sa.Text(), nullable=False),
        sa.Column("success", sa.Boolean(), nullable=False),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "alert_delivery_logs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("target", sa.Text(), nullable=False),
        sa.Column("alert_type", sa.Text(), nullable=False),
        sa.Column("status", sa.VARCHAR(length=10), nullable=False),
        sa.Column("attempts", sa.SmallInteger(), nullable=False),
        sa.Column("retry_count", sa.SmallInteger(), nullable=False),
        sa.Column("response_time_ms", sa.Integer(), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("payload", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )


def downgrade() -> None:
    """Drop the fraud guard tables."""
    op.drop_table("alert_delivery_logs")
    op.drop_table("card_redemptions")
    op.drop_index(op.f("ix_fraud_logs_created_at"), table_name="fraud_logs")
    op.drop_index(op.f("ix_fraud_logs_merchant_id"), table_name="fraud_logs")
    op.drop_index(op.f("ix_fraud_logs_ip_address"), table_name="fraud_logs")
    op.drop_index(op.f("ix_fraud_logs_gan"), table_name="fraud_logs")
    op.drop_table("fraud_logs")
    op.drop_table("gift_card_orders")
    op.drop_index(op.f("ix_gift_cards_gan"), table_name="gift_cards")
    op.drop_table("gift_cards")
