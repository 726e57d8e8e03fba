"""Create entity_records: one row per entity document, keyed by (collection, id)."""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "0001_entity_records"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "entity_records",
        sa.Column("collection", sa.String(100), primary_key=True),
        sa.Column("id", sa.String(100), primary_key=True),
        sa.Column("position", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("data", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_entity_records_position", "entity_records", ["position"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_entity_records_position", table_name="entity_records")
    op.drop_table("entity_records")
