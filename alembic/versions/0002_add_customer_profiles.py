"""add customer profiles for the pull flow

Revision ID: 0002_add_customer_profiles
Revises: 0001_create_payment_tables
Create Date: 2026-10-18 14:00:00.000000

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0002_add_customer_profiles"
down_revision: Union[str, None] = "0001_create_payment_tables"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "customer_profiles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("crypto_id", sa.String(64), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255)),
        sa.Column("created_at", sa.DateTime(timezone=True)),
        sa.UniqueConstraint("crypto_id", name="uq_customer_profiles_crypto_id"),
    )


def downgrade() -> None:
    op.drop_table("customer_profiles")
