# vaultrelay/config.py

import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """
    Centralized runtime settings.
    Override via environment variables.
    """

    def __init__(
        self,
        database_url: str = "sqlite://",
        log_level: str = "INFO",
        rate_limit: str = "600/minute",
        rate_limit_enabled: bool = True,
        max_content_bytes: int = 64 * 1024,
        max_wait_seconds: float = 30.0,
        host: str = "127.0.0.1",
        port: int = 8000,
    ):
        self.database_url = database_url
        self.log_level = log_level
        self.rate_limit = rate_limit
        self.rate_limit_enabled = rate_limit_enabled
        self.max_content_bytes = max_content_bytes
        self.max_wait_seconds = max_wait_seconds
        self.host = host
        self.port = port

    @classmethod
    def from_env(cls):
        return cls(
            database_url=os.getenv("VAULT_DATABASE_URL", "sqlite://"),
            log_level=os.getenv("VAULT_LOG_LEVEL", "INFO"),
            rate_limit=os.getenv("VAULT_RATE_LIMIT", "600/minute"),
            rate_limit_enabled=_env_bool("VAULT_RATE_LIMIT_ENABLED", True),
            max_content_bytes=int(os.getenv("VAULT_MAX_CONTENT_BYTES", str(64 * 1024))),
            max_wait_seconds=float(os.getenv("VAULT_MAX_WAIT_SECONDS", "30")),
            host=os.getenv("VAULT_HOST", "127.0.0.1"),
            port=int(os.getenv("VAULT_PORT", "8000")),
        )
