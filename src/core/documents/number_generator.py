import re
from datetime import datetime

from sqlalchemy import Integer, cast, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import InstrumentedAttribute

from src.core.database.errors import translate_db_error
from src.core.documents.sequence import allocate_next
from src.core.exceptions import InvalidScopeError

PREFIX_PATTERN = re.compile(r"[A-Za-z0-9]+")


async def max_existing_number(
    session: AsyncSession,
    column: InstrumentedAttribute[str],
    number_prefix: str,
) -> int:
    """
    Highest numeric suffix among values of ``column`` starting with ``number_prefix``.

    Used as the sequence floor so numbers already present in a document
    table (imported or created before the sequence existed) are never reissued.
    Values whose suffix is not purely numeric ("PO-2026-000041-R") are skipped.
    """
    suffix = func.substr(column, len(number_prefix) + 1)
    stmt = select(func.max(cast(suffix, Integer))).where(
        column.startswith(number_prefix, autoescape=True),
        column.regexp_match(f"^{re.escape(number_prefix)}[0-9]+$"),
    )
    try:
        result = await session.execute(stmt)
    except SQLAlchemyError as exc:
        raise translate_db_error(exc) from exc
    return int(result.scalar_one_or_none() or 0)


class DocumentNumberGenerator:
    """
    Generates sequential document numbers in format: PREFIX-YYYY-NNNNNN

    Examples:
        INV-2026-000001
        PO-2026-000042
        NC-2026-001234

    Each prefix and year is its own sequence scope ("PO:2026").
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def generate(
        self,
        prefix: str,
        year: int | None = None,
        *,
        width: int = 6,
        existing: InstrumentedAttribute[str] | None = None,
    ) -> str:
        """
        Generate next document number for given prefix and year.

        Must run in the transaction that inserts the document, so the number
        and the document are committed or rolled back together.

        Args:
            prefix: Document type code, e.g. "INV", "PO", "GRN"
            year: Numbering year (current year by default)
            width: Zero padding of the sequential part
            existing: Column holding already issued numbers of this document
                type; its highest matching number becomes the floor
        """
        if not isinstance(prefix, str) or not PREFIX_PATTERN.fullmatch(prefix):
            raise InvalidScopeError(prefix, "must be a non-empty alphanumeric code", field="prefix")
        if year is None:
            year = datetime.now().year

        number_prefix = f"{prefix}-{year}-"
        floor = 0
        if existing is not None:
            floor = await max_existing_number(self.session, existing, number_prefix)

        value = await allocate_next(self.session, f"{prefix}:{year}", floor)
        return f"{number_prefix}{value:0{width}d}"


async def get_document_number(
    session: AsyncSession,
    prefix: str,
    year: int | None = None,
    **kwargs,
) -> str:
    """Convenience function to generate a document number."""
    generator = DocumentNumberGenerator(session)
    return await generator.generate(prefix, year, **kwargs)
