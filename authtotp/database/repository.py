"""
User record storage for AUTHTOTP.

A repository stores, per identity, the encrypted TOTP secret, the enabled
flag and the hashed recovery codes. save_user() overwrites all three fields
atomically: a later get_user() never observes a partial update.
"""
import copy
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List

from ..auth.errors import UserNotFound

logger = logging.getLogger(__name__)


@dataclass
class UserRecord:
    """A user's TOTP state."""
    user_id: str
    encrypted_secret: str
    enabled: bool = False
    recovery_codes: List[str] = field(default_factory=list)  # hashed


class UserRepository(ABC):
    """Key-value store of UserRecords keyed by user identity."""

    @abstractmethod
    def get_user(self, user_id: str) -> UserRecord:
        """
        Load a user's record.

        Raises:
            UserNotFound: If no record exists.
        """

    @abstractmethod
    def save_user(self, record: UserRecord) -> None:
        """Create or atomically overwrite a user's record."""

    def init_schema(self) -> None:
        """Prepare the backing store. No-op unless the backend needs it."""


class InMemoryRepository(UserRepository):
    """
    Thread-safe in-memory repository.

    Records are copied on the way in and out so callers never share state
    with the store.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._users: Dict[str, UserRecord] = {}

    def get_user(self, user_id: str) -> UserRecord:
        with self._lock:
            record = self._users.get(user_id)
            if record is None:
                raise UserNotFound(f"User '{user_id}' not found")
            return copy.deepcopy(record)

    def save_user(self, record: UserRecord) -> None:
        with self._lock:
            self._users[record.user_id] = copy.deepcopy(record)
        logger.debug(f"Saved user {record.user_id} (enabled={record.enabled})")

    def __len__(self) -> int:
        with self._lock:
            return len(self._users)
