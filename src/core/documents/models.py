from sqlalchemy import CheckConstraint, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import Base

SCOPE_MAX_LENGTH = 100
# last_value is a 32-bit INTEGER on PostgreSQL
SEQUENCE_MAX_VALUE = 2**31 - 1


class DocumentSequence(Base):
    """
    Last issued number per document series (scope).

    Written only by the sequence allocator; rows are created lazily on the
    first allocation for a scope and never deleted by the application.
    """

    __tablename__ = "document_sequences"

    scope: Mapped[str] = mapped_column(String(SCOPE_MAX_LENGTH), primary_key=True)
    last_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    __table_args__ = (
        CheckConstraint("last_value >= 0", name="ck_document_sequence_last_value_non_negative"),
    )
