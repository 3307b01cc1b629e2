"""create merchants, buttons, payment intents and pull transactions

Revision ID: 0001_create_payment_tables
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0001_create_payment_tables"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

payment_intent_status = sa.Enum(
    "pending", "processing", "confirmed", "failed", name="paymentintentstatus"
)
pull_transaction_status = sa.Enum(
    "pending", "success", "failed", name="pulltransactionstatus"
)


def upgrade() -> None:
    op.create_table(
        "merchants",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("wallet_address", sa.String(42)),
        sa.Column("webhook_url", sa.String(2048)),
        sa.Column("webhook_secret", sa.String(255)),
        sa.Column("created_at", sa.DateTime(timezone=True)),
        sa.Column("updated_at", sa.DateTime(timezone=True)),
    )

    op.create_table(
        "buttons",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column(
            "merchant_id", sa.String(64), sa.ForeignKey("merchants.id"), nullable=False
        ),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("amount", sa.String(78), nullable=False),
        sa.Column("token_address", sa.String(42)),
        sa.Column("chain_id", sa.Integer(), nullable=False),
        sa.Column("merchant_address", sa.String(42), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True)),
    )
    op.create_index("ix_buttons_merchant_id", "buttons", ["merchant_id"])

    op.create_table(
        "payment_intents",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("button_id", sa.String(64), sa.ForeignKey("buttons.id"), nullable=False),
        sa.Column("amount", sa.String(78), nullable=False),
        sa.Column("token_address", sa.String(42)),
        sa.Column("chain_id", sa.Integer(), nullable=False),
        sa.Column("merchant_address", sa.String(42), nullable=False),
        sa.Column("customer_address", sa.String(42)),
        sa.Column("transaction_hash", sa.String(66)),
        sa.Column(
            "status", payment_intent_status, nullable=False, server_default="pending"
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True)),
        sa.Column("confirmed_at", sa.DateTime(timezone=True)),
    )
    op.create_index(
        "ix_payment_intents_button_status", "payment_intents", ["button_id", "status"]
    )

    op.create_table(
        "pull_transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("sender", sa.String(255), nullable=False),
        sa.Column("recipient", sa.String(42), nullable=False),
        sa.Column("signature", sa.String(255), nullable=False, server_default=""),
        sa.Column("button_id", sa.String(64), sa.ForeignKey("buttons.id")),
        sa.Column("amount_usd", sa.Numeric(12, 2), nullable=False),
        sa.Column(
            "status", pull_transaction_status, nullable=False, server_default="pending"
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_pull_transactions_sender_created",
        "pull_transactions",
        ["sender", "created_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_pull_transactions_sender_created", table_name="pull_transactions")
    op.drop_table("pull_transactions")
    op.drop_index("ix_payment_intents_button_status", table_name="payment_intents")
    op.drop_table("payment_intents")
    op.drop_index("ix_buttons_merchant_id", table_name="buttons")
    op.drop_table("buttons")
    op.drop_table("merchants")
    pull_transaction_status.drop(op.get_bind(), checkfirst=True)
    payment_intent_status.drop(op.get_bind(), checkfirst=True)
