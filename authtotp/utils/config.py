"""
Configuration for AUTHTOTP.

All settings come from environment variables. TOTP_MASTER_KEY and
REDIS_PASSWORD may instead be read from a file named by the same variable
with a _FILE suffix (mounted secrets).

    TOTP_APP_NAME               Issuer label in provisioning URIs
    TOTP_MASTER_KEY             64 hex chars (32 bytes) for AES-256-GCM
    WINDOW_SIZE                 Accepted drift in time steps (default 1)
    RATE_LIMIT_CAPACITY         Burst size per identity (default 3)
    RATE_LIMIT_REFILL_SECONDS   Seconds to refill one attempt (default 30)
    RATE_LIMIT_MAX_ENTRIES      Tracked identities before eviction
    STORAGE_BACKEND             sql | memory | redis (default sql)
    DATABASE_URL                SQLAlchemy URL (default sqlite:///totp.db)
    REDIS_HOST / REDIS_PORT / REDIS_PASSWORD / REDIS_DB
    PORT                        HTTP port (default 8080)
    LOG_LEVEL                   Logging level (default INFO)
"""
import binascii
import logging
import os
from dataclasses import dataclass
from typing import Optional

from ..security.cipher import KEY_SIZE, generate_master_key

logger = logging.getLogger(__name__)


@dataclass
class Settings:
    app_name: str = "AuthTOTP"
    master_key: bytes = b""
    master_key_generated: bool = False
    window_size: int = 1
    rate_limit_capacity: int = 3
    rate_limit_refill_seconds: float = 30.0
    rate_limit_max_entries: int = 10000
    storage_backend: str = "sql"
    database_url: str = "sqlite:///totp.db"
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: str = ""
    redis_db: int = 0
    port: int = 8080
    log_level: str = "INFO"


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got '{value}'")


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{name} must be a number, got '{value}'")


def read_secret(name: str, default: Optional[str] = None) -> Optional[str]:
    """
    Read a secret from the file named by {NAME}_FILE, else from {NAME}.

    Raises:
        ValueError: If {NAME}_FILE is set but the file cannot be read.
    """
    file_path = os.getenv(f"{name}_FILE")
    if file_path:
        try:
            with open(file_path, "r") as f:
                value = f.read().strip()
        except OSError as e:
            raise ValueError(f"Cannot read {name}_FILE '{file_path}': {e}") from e
        logger.debug(f"Loaded {name} from file")
        return value

    return os.getenv(name) or default


def parse_master_key(master_key_hex: str) -> bytes:
    """
    Decode a hex master key.

    Raises:
        ValueError: If the value is not hex or not 32 bytes.
    """
    try:
        key = bytes.fromhex(master_key_hex.strip())
    except (ValueError, binascii.Error) as e:
        raise ValueError(f"Invalid TOTP_MASTER_KEY hex: {e}") from e
    if len(key) != KEY_SIZE:
        raise ValueError(f"TOTP_MASTER_KEY must be {KEY_SIZE} bytes, got {len(key)}")
    return key


def load_settings() -> Settings:
    """
    Load settings from the environment.

    When TOTP_MASTER_KEY is not set a random key is generated for this
    process only: secrets encrypted with it are unreadable after restart.

    Raises:
        ValueError: On malformed values.
    """
    master_key_hex = read_secret("TOTP_MASTER_KEY")
    if master_key_hex:
        master_key = parse_master_key(master_key_hex)
        generated = False
    else:
        logger.warning(
            "TOTP_MASTER_KEY not set. Generating random key for this session (NOT PERSISTENT)."
        )
        master_key = generate_master_key()
        generated = True

    return Settings(
        app_name=os.getenv("TOTP_APP_NAME", "AuthTOTP"),
        master_key=master_key,
        master_key_generated=generated,
        window_size=_env_int("WINDOW_SIZE", 1),
        rate_limit_capacity=_env_int("RATE_LIMIT_CAPACITY", 3),
        rate_limit_refill_seconds=_env_float("RATE_LIMIT_REFILL_SECONDS", 30.0),
        rate_limit_max_entries=_env_int("RATE_LIMIT_MAX_ENTRIES", 10000),
        storage_backend=os.getenv("STORAGE_BACKEND", "sql").lower(),
        database_url=os.getenv("DATABASE_URL", "sqlite:///totp.db"),
        redis_host=os.getenv("REDIS_HOST", "localhost"),
        redis_port=_env_int("REDIS_PORT", 6379),
        redis_password=read_secret("REDIS_PASSWORD", "") or "",
        redis_db=_env_int("REDIS_DB", 0),
        port=_env_int("PORT", 8080),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
