"""Document sequences table

Revision ID: 001_document_sequences
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001_document_sequences"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "document_sequences",
        sa.Column("scope", sa.String(100), nullable=False),
        sa.Column("last_value", sa.Integer(), nullable=False, server_default="0"),
        sa.PrimaryKeyConstraint("scope"),
        sa.CheckConstraint("last_value >= 0", name="ck_document_sequence_last_value_non_negative"),
    )


def downgrade() -> None:
    op.drop_table("document_sequences")
