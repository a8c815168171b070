"""Add product rating columns

Revision ID: 20261020_product_ratings
Revises: 20261019_initial
Create Date: 2026-10-20
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261020_product_ratings"
down_revision = "20261019_initial"
branch_labels = None
depends_on = None


def upgrade():
    with op.batch_alter_table("products", schema=None) as batch_op:
        batch_op.add_column(sa.Column("rating_average", sa.Float(), nullable=False, server_default=sa.text("0")))
        batch_op.add_column(sa.Column("rating_count", sa.Integer(), nullable=False, server_default=sa.text("0")))
        batch_op.create_index("ix_products_active_rating", ["is_active", "rating_average"], unique=False)


def downgrade():
    with op.batch_alter_table("products", schema=None) as batch_op:
        batch_op.drop_index("ix_products_active_rating")
        batch_op.drop_column("rating_count")
        batch_op.drop_column("rating_average")
