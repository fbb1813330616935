"""Database package: shared engine, session factory, and Redis pool."""

from fixy.db.base import Base, close_db, create_session_factory, create_tables, get_session_factory, init_db
from fixy.db.redis import close_redis, get_redis, init_redis

__all__ = [
    "Base",
    "close_db",
    "close_redis",
    "create_session_factory",
    "create_tables",
    "get_redis",
    "get_session_factory",
    "init_db",
    "init_redis",
]
