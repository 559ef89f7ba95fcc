"""create images table

Revision ID: 001_create_images
Revises:
Create Date: 2026-10-18

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "001_create_images"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Schema name
SCHEMA = "ledpanel"


def upgrade() -> None:
    op.execute(f"CREATE SCHEMA IF NOT EXISTS {SCHEMA}")

    op.create_table(
        "images",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("image_id", sa.String(36), nullable=False),
        sa.Column("content_hash", sa.String(64), nullable=False),
        sa.Column("original_url", sa.Text(), nullable=True),
        sa.Column("mime_type", sa.String(100), nullable=False),
        sa.Column("data", sa.LargeBinary(), nullable=False),
        sa.Column("thumbnail", sa.LargeBinary(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("image_id", name="images_image_id_unique"),
        sa.UniqueConstraint("content_hash", name="images_content_hash_unique"),
        schema=SCHEMA,
    )
    op.create_index("ix_images_id", "images", ["id"], schema=SCHEMA)
    op.create_index("ix_images_image_id", "images", ["image_id"], schema=SCHEMA)
    op.create_index("images_created_at_idx", "images", ["created_at"], schema=SCHEMA)


def downgrade() -> None:
    op.drop_index("images_created_at_idx", table_name="images", schema=SCHEMA)
    op.drop_index("ix_images_image_id", table_name="images", schema=SCHEMA)
    op.drop_index("ix_images_id", table_name="images", schema=SCHEMA)
    op.drop_table("images", schema=SCHEMA)
