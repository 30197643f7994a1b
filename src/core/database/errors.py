"""Translate driver errors into the application's storage error taxonomy."""

from sqlalchemy.exc import DBAPIError, SQLAlchemyError

from src.core.exceptions import AppException, ResourceContentionError, StorageFailureError

# lock_not_available, deadlock_detected, serialization_failure, query_canceled
CONTENTION_SQLSTATES = frozenset({"55P03", "40P01", "40001", "57014"})

# ER_LOCK_WAIT_TIMEOUT, ER_LOCK_DEADLOCK
CONTENTION_MYSQL_ERRNOS = frozenset({1205, 1213})

CONTENTION_MARKERS = (
    "database is locked",
    "database table is locked",
    "could not obtain lock",
    "lock timeout",
    "lock wait timeout",
    "deadlock",
    "could not serialize access",
)


def _sqlstate(orig: BaseException | None) -> str | None:
    if orig is None:
        return None
    # asyncpg (through the SQLAlchemy adapter) and psycopg expose sqlstate, psycopg2 pgcode
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    return str(code) if code else None


def _mysql_errno(orig: BaseException | None) -> int | None:
    if orig is None or not orig.args:
        return None
    first = orig.args[0]
    return first if isinstance(first, int) else None


def is_contention_error(exc: BaseException) -> bool:
    """True when the error means "someone else holds the lock, try later"."""
    orig = getattr(exc, "orig", None)
    if _sqlstate(orig) in CONTENTION_SQLSTATES:
        return True
    if _mysql_errno(orig) in CONTENTION_MYSQL_ERRNOS:
        return True
    text = str(orig if orig is not None else exc).lower()
    return any(marker in text for marker in CONTENTION_MARKERS)


def translate_db_error(exc: SQLAlchemyError, scope: str | None = None) -> AppException:
    """
    Convert a SQLAlchemy error to ResourceContentionError or StorageFailureError.

    The caller raises the result ``from exc`` so the driver error stays attached.
    """
    if isinstance(exc, DBAPIError) and is_contention_error(exc):
        target = f" for scope {scope!r}" if scope else ""
        return ResourceContentionError(
            message=f"Could not lock document sequence{target}, try again",
            scope=scope,
        )
    raw = str(getattr(exc, "orig", None) or exc)
    return StorageFailureError(message=f"Document sequence storage failed: {raw}", scope=scope)
