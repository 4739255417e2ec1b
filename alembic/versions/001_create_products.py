"""create products with full-text search vector

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import TSVECTOR

# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    """Create products table, its generated tsvector column and GIN index"""
    op.create_table(
        "products",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column(
            "tsv",
            TSVECTOR(),
            sa.Computed(
                "setweight(to_tsvector('english', coalesce(title, '')), 'A') || "
                "setweight(to_tsvector('english', coalesce(description, '')), 'B')",
                persisted=True,
            ),
        ),
    )

    op.create_index("idx_products_tsv", "products", ["tsv"], postgresql_using="gin")


def downgrade():
    """Drop products table"""
    op.drop_index("idx_products_tsv", table_name="products")
    op.drop_table("products")
