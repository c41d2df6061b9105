"""
Redis-backed user repository.

Each user is one JSON document under `authtotp:user:<user_id>`, written
with a single SET so the secret, enabled flag and recovery hashes always
change together.
"""
import json
import logging

import redis

from .repository import UserRecord, UserRepository
from ..auth.errors import UserNotFound

logger = logging.getLogger(__name__)

KEY_PREFIX = "authtotp:user:"


class RedisRepository(UserRepository):
    """User repository storing records in Redis."""

    def __init__(self, client: redis.Redis):
        self.redis = client

    def _key(self, user_id: str) -> str:
        return f"{KEY_PREFIX}{user_id}"

    def get_user(self, user_id: str) -> UserRecord:
        raw = self.redis.get(self._key(user_id))
        if raw is None:
            raise UserNotFound(f"User '{user_id}' not found")

        data = json.loads(raw)
        return UserRecord(
            user_id=data["user_id"],
            encrypted_secret=data["encrypted_secret"],
            enabled=bool(data["enabled"]),
            recovery_codes=list(data.get("recovery_codes") or []),
        )

    def save_user(self, record: UserRecord) -> None:
        payload = json.dumps({
            "user_id": record.user_id,
            "encrypted_secret": record.encrypted_secret,
            "enabled": record.enabled,
            "recovery_codes": list(record.recovery_codes),
        })
        self.redis.set(self._key(record.user_id), payload)
        logger.info(f"Saved TOTP record for user {record.user_id} to Redis")


def create_redis_client(host: str = "localhost", port: int = 6379,
                        password: str = None, db: int = 0) -> redis.Redis:
    """
    Create and ping a Redis client.

    Raises:
        redis.ConnectionError: If Redis is unreachable.
    """
    client = redis.Redis(
        host=host,
        port=port,
        password=password or None,
        db=db,
        decode_responses=True,
        socket_connect_timeout=5,
        socket_timeout=5,
    )
    client.ping()
    logger.info(f"Redis connected: {host}:{port}")
    return client
