"""Per-scope document sequence allocation backed by the document_sequences table."""

import math
import re
from decimal import Decimal
from typing import Any

import structlog
from sqlalchemy import insert, select, text, update
from sqlalchemy.dialects.mysql import insert as mysql_insert
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import settings
from src.core.database.errors import translate_db_error
from src.core.documents.models import SCOPE_MAX_LENGTH, SEQUENCE_MAX_VALUE, DocumentSequence
from src.core.exceptions import AppException, InvalidScopeError, StorageFailureError
from src.core.documents.schemas import DocumentSequenceRead

logger = structlog.get_logger(__name__)

SCOPE_PATTERN = re.compile(r"[A-Za-z0-9_.:/\-]+")


def validate_scope(scope: Any) -> str:
    """Return the scope unchanged or raise InvalidScopeError."""
    if not isinstance(scope, str) or not scope:
        raise InvalidScopeError(scope, "must be a non-empty string")
    if len(scope) > SCOPE_MAX_LENGTH:
        raise InvalidScopeError(scope, f"must be at most {SCOPE_MAX_LENGTH} characters")
    if not SCOPE_PATTERN.fullmatch(scope):
        raise InvalidScopeError(scope, "may contain only letters, digits and _ . : / -")
    return scope


def normalize_floor(minimum_value: Any) -> int:
    """
    Coerce a caller supplied floor to a non-negative int.

    Anything that is not a finite non-negative number (None, NaN, inf,
    negatives, strings, bools) becomes 0. Fractional floors are truncated.
    """
    if minimum_value is None:
        return 0
    if isinstance(minimum_value, bool) or not isinstance(minimum_value, int | float | Decimal):
        logger.warning("Ignoring non-numeric sequence floor", minimum_value=repr(minimum_value))
        return 0
    if isinstance(minimum_value, int):
        floor = minimum_value
    else:
        finite = minimum_value.is_finite() if isinstance(minimum_value, Decimal) else math.isfinite(minimum_value)
        if not finite:
            logger.warning("Ignoring non-finite sequence floor", minimum_value=str(minimum_value))
            return 0
        floor = int(minimum_value)
    if floor < 0:
        logger.warning("Ignoring negative sequence floor", minimum_value=floor)
        return 0
    return floor


class SequenceAllocator:
    """
    Hands out the next number of a document series inside the caller's transaction.

    The counter row is locked with SELECT ... FOR UPDATE, so a concurrent
    allocator for the same scope blocks until this transaction commits or
    rolls back and then reads the updated (or reverted) value. The allocator
    never commits, rolls back or retries; that is the caller's unit of work.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def allocate(self, scope: str, minimum_value: int = 0) -> int:
        scope = validate_scope(scope)
        floor = normalize_floor(minimum_value)

        try:
            await self._ensure_row(scope)
            await self._apply_lock_timeout()
            current = await self._lock_current_value(scope)
            next_value = max(current, floor) + 1
            if next_value > SEQUENCE_MAX_VALUE:
                raise StorageFailureError(
                    message=f"Document sequence {scope!r} would exceed {SEQUENCE_MAX_VALUE}",
                    scope=scope,
                )
            await self.session.execute(
                update(DocumentSequence)
                .where(DocumentSequence.scope == scope)
                .values(last_value=next_value)
                .execution_options(synchronize_session=False)
            )
        except AppException:
            raise
        except SQLAlchemyError as exc:
            error = translate_db_error(exc, scope=scope)
            logger.warning("Sequence allocation failed", scope=scope, error=error.message)
            raise error from exc

        if floor > current:
            logger.info("Sequence raised to floor", scope=scope, previous=current, floor=floor)
        logger.debug("Sequence allocated", scope=scope, value=next_value)
        return next_value

    async def peek(self, scope: str) -> int | None:
        """Last issued value without locking. Never derive a new number from it."""
        scope = validate_scope(scope)
        try:
            result = await self.session.execute(
                select(DocumentSequence.last_value).where(DocumentSequence.scope == scope)
            )
        except SQLAlchemyError as exc:
            raise translate_db_error(exc, scope=scope) from exc
        return result.scalar_one_or_none()

    async def list_all(self, prefix: str | None = None) -> list[DocumentSequenceRead]:
        stmt = select(DocumentSequence.scope, DocumentSequence.last_value).order_by(DocumentSequence.scope)
        if prefix:
            stmt = stmt.where(DocumentSequence.scope.startswith(prefix, autoescape=True))
        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as exc:
            raise translate_db_error(exc) from exc
        return [DocumentSequenceRead(scope=row.scope, last_value=row.last_value) for row in result]

    @property
    def _dialect(self) -> str:
        return self.session.get_bind().dialect.name

    async def _ensure_row(self, scope: str) -> None:
        """Insert the counter row with 0 unless it already exists."""
        values = {"scope": scope, "last_value": 0}
        dialect = self._dialect

        if dialect == "postgresql":
            stmt = pg_insert(DocumentSequence).values(**values).on_conflict_do_nothing(
                index_elements=[DocumentSequence.scope]
            )
        elif dialect == "sqlite":
            stmt = sqlite_insert(DocumentSequence).values(**values).on_conflict_do_nothing(
                index_elements=[DocumentSequence.scope]
            )
        elif dialect in ("mysql", "mariadb"):
            stmt = mysql_insert(DocumentSequence).values(**values).prefix_with("IGNORE")
        else:
            await self._ensure_row_generic(scope)
            return

        result = await self.session.execute(stmt)
        if result.rowcount:
            logger.debug("Sequence scope created", scope=scope)

    async def _ensure_row_generic(self, scope: str) -> None:
        existing = await self.session.execute(
            select(DocumentSequence.scope).where(DocumentSequence.scope == scope)
        )
        if existing.scalar_one_or_none() is not None:
            return
        try:
            # Savepoint: a lost creation race must not abort the caller's transaction
            async with self.session.begin_nested():
                await self.session.execute(insert(DocumentSequence).values(scope=scope, last_value=0))
        except IntegrityError:
            logger.debug("Sequence scope created concurrently", scope=scope)
        else:
            logger.debug("Sequence scope created", scope=scope)

    async def _apply_lock_timeout(self) -> None:
        timeout_ms = settings.sequence_lock_timeout_ms
        if not timeout_ms or self._dialect != "postgresql":
            return
        # is_local=true: reverts when the caller's transaction ends
        await self.session.execute(
            text("SELECT set_config('lock_timeout', :timeout, true)"),
            {"timeout": f"{int(timeout_ms)}ms"},
        )

    async def _lock_current_value(self, scope: str) -> int:
        result = await self.session.execute(
            select(DocumentSequence.last_value)
            .where(DocumentSequence.scope == scope)
            .with_for_update()
        )
        current = result.scalar_one_or_none()
        if current is None:
            # Deleted between insert-if-absent and the lock by something outside the allocator
            raise StorageFailureError(
                message=f"Document sequence row for scope {scope!r} disappeared",
                scope=scope,
            )
        return int(current)


async def allocate_next(session: AsyncSession, scope: str, minimum_value: int = 0) -> int:
    """
    Allocate the next value of ``scope`` inside the session's current transaction.

    Args:
        session: Database session owning the caller's transaction
        scope: Document series, e.g. "invoice:B:1" or "purchase_order:2026"
        minimum_value: Floor the counter is raised to before incrementing
            (e.g. the highest number among imported legacy documents)

    Returns:
        The allocated value, strictly greater than every value committed before

    Raises:
        InvalidScopeError: scope is empty or malformed (no storage access made)
        ResourceContentionError: the counter row lock was not acquired in time
        StorageFailureError: any other database failure
    """
    return await SequenceAllocator(session).allocate(scope, minimum_value)


async def peek_sequence(session: AsyncSession, scope: str) -> int | None:
    return await SequenceAllocator(session).peek(scope)


async def list_sequences(session: AsyncSession, prefix: str | None = None) -> list[DocumentSequenceRead]:
    return await SequenceAllocator(session).list_all(prefix)
