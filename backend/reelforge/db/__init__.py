from .base import Base, utcnow
from .session import create_db_engine, create_session_factory

__all__ = ["Base", "utcnow", "create_db_engine", "create_session_factory"]
