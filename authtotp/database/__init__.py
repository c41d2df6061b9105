"""
User record storage for AUTHTOTP.

This package provides:
- repository: UserRecord, the UserRepository contract and an in-memory store
- sql_repository: SQLAlchemy store (SQLite by default)
- redis_repository: Redis store
"""
from .repository import UserRecord, UserRepository, InMemoryRepository

__all__ = ["UserRecord", "UserRepository", "InMemoryRepository", "create_repository"]


def create_repository(settings) -> UserRepository:
    """
    Build the repository selected by settings.storage_backend.

    Args:
        settings: authtotp.utils.config.Settings

    Raises:
        ValueError: On an unknown backend name.
    """
    backend = settings.storage_backend

    if backend == "memory":
        return InMemoryRepository()

    if backend == "sql":
        from .sql_repository import SQLRepository
        repo = SQLRepository(settings.database_url)
        repo.init_schema()
        return repo

    if backend == "redis":
        from .redis_repository import RedisRepository, create_redis_client
        client = create_redis_client(
            host=settings.redis_host,
            port=settings.redis_port,
            password=settings.redis_password,
            db=settings.redis_db,
        )
        return RedisRepository(client)

    raise ValueError(f"Unknown STORAGE_BACKEND '{backend}' (expected memory, sql or redis)")
