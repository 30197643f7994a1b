from src.core.database.session import async_session, engine, run_in_transaction
from src.core.database.base import Base

__all__ = ["async_session", "engine", "run_in_transaction", "Base"]
