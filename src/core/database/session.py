from collections.abc import Awaitable, Callable
from typing import TypeVar

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.core.config import settings
from src.core.database.errors import translate_db_error
from src.core.exceptions import ResourceContentionError

logger = structlog.get_logger(__name__)

T = TypeVar("T")

if not settings.database_url:
    raise ValueError("DATABASE_URL environment variable is not set")

# Hide credentials in logs
_url_for_log = settings.database_url.split("@")[1] if "@" in settings.database_url else settings.database_url[:30]
logger.info("Database configured", url=f"...@{_url_for_log}")

engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    future=True,
)

async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def _run_once(
    work: Callable[[AsyncSession], Awaitable[T]],
    session_factory: async_sessionmaker[AsyncSession],
) -> T:
    async with session_factory() as session:
        try:
            result = await work(session)
            try:
                await session.commit()
            except SQLAlchemyError as exc:
                raise translate_db_error(exc) from exc
        except Exception:
            await session.rollback()
            raise
        return result


async def run_in_transaction(
    work: Callable[[AsyncSession], Awaitable[T]],
    *,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    attempts: int | None = None,
    min_wait: float | None = None,
    max_wait: float | None = None,
) -> T:
    """
    Run ``work(session)`` as one unit of work and commit it.

    Any exception rolls the whole unit back, so a document never gets
    persisted without its number (or with a number from a rolled back
    allocation). ResourceContentionError retries the entire unit from a
    fresh session with exponential backoff; other errors propagate at once.

    Example:
        async def create_po(session):
            number = await get_document_number(session, "PO")
            session.add(PurchaseOrder(po_number=number, ...))
            return number

        po_number = await run_in_transaction(create_po)
    """
    factory = session_factory or async_session
    max_attempts = settings.sequence_retry_attempts if attempts is None else attempts
    if max_attempts < 1:
        raise ValueError("attempts must be at least 1")
    first_wait = settings.sequence_retry_min_wait if min_wait is None else min_wait
    longest_wait = settings.sequence_retry_max_wait if max_wait is None else max_wait

    retrying = AsyncRetrying(
        retry=retry_if_exception_type(ResourceContentionError),
        stop=stop_after_attempt(max_attempts),
        # first_wait, 2 * first_wait, 4 * first_wait, ... capped at longest_wait
        wait=wait_exponential(multiplier=first_wait, max=longest_wait),
        before_sleep=_log_retry,
        reraise=True,
    )

    async for attempt in retrying:
        with attempt:
            return await _run_once(work, factory)

    raise RuntimeError("Unreachable")


def _log_retry(retry_state) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "Unit of work hit lock contention, retrying",
        attempt=retry_state.attempt_number,
        scope=getattr(exc, "details", {}).get("scope"),
    )
