"""Create item catalogue table.

Revision ID: 5b8f2c1e7a40
Revises:
Create Date: 2026-10-19 09:00:00
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "5b8f2c1e7a40"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Only the id is unique. Concurrent batches can still insert two rows with
    # the same normalised (name, brand, quantity, feature); see services/batch.py.
    op.create_table(
        "item",
        sa.Column("id", sa.String(length=16), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("brand", sa.String(length=255), nullable=False),
        sa.Column("quantity", sa.String(length=64), nullable=True),
        sa.Column("feature", sa.String(length=512), nullable=True),
        sa.Column("productColor", sa.String(length=255), nullable=True),
        sa.Column("picWebsite", sa.String(length=1024), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()"), nullable=False),
    )
    op.create_index("ix_item_brand_name", "item", ["brand", "name"])


def downgrade() -> None:
    op.drop_index("ix_item_brand_name", table_name="item")
    op.drop_table("item")
