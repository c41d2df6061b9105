"""
SQL Database Manager for TOTP user records.

Stores encrypted TOTP secrets, enrollment state and hashed recovery codes
through SQLAlchemy. SQLite is the default; any SQLAlchemy URL supporting
`INSERT ... ON CONFLICT` (SQLite >= 3.24, PostgreSQL) works.

SECURITY NOTE: This database never holds a TOTP secret in the clear.
Secrets are AES-256-GCM blobs (see security/cipher.py) and recovery codes
are SHA-256 hashes.
"""
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker

from .repository import UserRecord, UserRepository
from ..auth.errors import UserNotFound

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite:///totp.db"


class SQLRepository(UserRepository):
    """
    SQL-backed user repository.

    Example usage:
        repo = SQLRepository("sqlite:///totp.db")
        repo.init_schema()

        repo.save_user(UserRecord(user_id="alice", encrypted_secret=blob))
        record = repo.get_user("alice")
    """

    def __init__(self, connection_string: Optional[str] = None):
        """
        Initialize database connection.

        Args:
            connection_string: SQLAlchemy URL. Defaults to a local SQLite file.
        """
        connection_string = connection_string or DEFAULT_DATABASE_URL

        if connection_string.startswith("sqlite"):
            # Worker threads share the engine
            self.engine = create_engine(
                connection_string,
                connect_args={"check_same_thread": False},
            )
        else:
            self.engine = create_engine(
                connection_string,
                pool_size=10,
                max_overflow=20,
                pool_timeout=30,
                pool_pre_ping=True,  # Test connections before use (detect stale)
                pool_recycle=300,    # Recycle connections every 5 minutes
            )
        self.Session = sessionmaker(bind=self.engine)

    @contextmanager
    def get_session(self):
        """
        Get a database session with automatic cleanup.

        Usage:
            with repo.get_session() as session:
                result = session.execute(query)
        """
        session = self.Session()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # ==========================================
    # User Records
    # ==========================================

    def get_user(self, user_id: str) -> UserRecord:
        """
        Load a user's TOTP record with its recovery code hashes.

        Raises:
            UserNotFound: If no user exists with this id.
        """
        with self.get_session() as session:
            result = session.execute(
                text("""
                    SELECT user_id, encrypted_secret, enabled
                    FROM totp_users
                    WHERE user_id = :user_id
                """),
                {"user_id": user_id}
            ).fetchone()

            if not result:
                raise UserNotFound(f"User '{user_id}' not found")

            codes = session.execute(
                text("""
                    SELECT code_hash FROM totp_recovery_codes
                    WHERE user_id = :user_id
                    ORDER BY id
                """),
                {"user_id": user_id}
            ).fetchall()

            return UserRecord(
                user_id=result[0],
                encrypted_secret=result[1],
                enabled=bool(result[2]),
                recovery_codes=[row[0] for row in codes],
            )

    def save_user(self, record: UserRecord) -> None:
        """
        Upsert a user and replace its recovery codes in one transaction.
        """
        now = datetime.now(timezone.utc).isoformat()

        with self.get_session() as session:
            session.execute(
                text("""
                    INSERT INTO totp_users (
                        user_id, encrypted_secret, enabled, created_at, updated_at
                    ) VALUES (
                        :user_id, :encrypted_secret, :enabled, :now, :now
                    )
                    ON CONFLICT (user_id) DO UPDATE SET
                        encrypted_secret = excluded.encrypted_secret,
                        enabled = excluded.enabled,
                        updated_at = excluded.updated_at
                """),
                {
                    "user_id": record.user_id,
                    "encrypted_secret": record.encrypted_secret,
                    "enabled": record.enabled,
                    "now": now,
                }
            )

            # Full replace: 8 codes at most
            session.execute(
                text("DELETE FROM totp_recovery_codes WHERE user_id = :user_id"),
                {"user_id": record.user_id}
            )
            if record.recovery_codes:
                session.execute(
                    text("""
                        INSERT INTO totp_recovery_codes (user_id, code_hash)
                        VALUES (:user_id, :code_hash)
                    """),
                    [
                        {"user_id": record.user_id, "code_hash": code_hash}
                        for code_hash in record.recovery_codes
                    ]
                )

        logger.info(
            f"Saved TOTP record for user {record.user_id}: "
            f"enabled={record.enabled}, {len(record.recovery_codes)} recovery codes"
        )

    # ==========================================
    # Schema Initialization
    # ==========================================

    def init_schema(self) -> None:
        """
        Initialize database schema (create tables if not exist).

        Call this once during application setup.
        """
        with self.get_session() as session:
            session.execute(text("""
                CREATE TABLE IF NOT EXISTS totp_users (
                    user_id VARCHAR(255) PRIMARY KEY,
                    encrypted_secret TEXT NOT NULL,
                    enabled BOOLEAN NOT NULL DEFAULT FALSE,
                    created_at VARCHAR(40) NOT NULL,
                    updated_at VARCHAR(40) NOT NULL
                )
            """))

            if self.engine.dialect.name == "sqlite":
                id_column = "id INTEGER PRIMARY KEY AUTOINCREMENT"
            else:
                id_column = "id SERIAL PRIMARY KEY"

            session.execute(text(f"""
                CREATE TABLE IF NOT EXISTS totp_recovery_codes (
                    {id_column},
                    user_id VARCHAR(255) NOT NULL REFERENCES totp_users(user_id) ON DELETE CASCADE,
                    code_hash VARCHAR(64) NOT NULL
                )
            """))

            session.execute(text("""
                CREATE INDEX IF NOT EXISTS idx_totp_recovery_codes_user
                ON totp_recovery_codes(user_id)
            """))

        logger.info("Database schema initialized")
