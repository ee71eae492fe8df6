import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


class Config:
    # Base paths
    BASE_DIR = Path(__file__).parent.parent

    # Server
    PORT: int = int(os.getenv("PORT", "8000"))
    FLASK_ENV: str = os.getenv("FLASK_ENV", "development")
    SSE_KEEPALIVE_INTERVAL: int = int(os.getenv("SSE_KEEPALIVE_INTERVAL", "15"))  # seconds
    SSE_QUEUE_SIZE: int = int(os.getenv("SSE_QUEUE_SIZE", "256"))  # events buffered per stream

    # CORS (the browser client is served from a separate dev server)
    CORS_ALLOW_ORIGIN: str = os.getenv("CORS_ALLOW_ORIGIN", "*")
    CORS_ALLOW_METHODS = "GET,POST,OPTIONS"
    CORS_ALLOW_HEADERS = "Content-Type,X-Request-ID"

    # Sessions
    USER_COOKIE_NAME: str = os.getenv("USER_COOKIE_NAME", "userId")
    SESSION_TTL_DAYS: int = int(os.getenv("SESSION_TTL_DAYS", "7"))

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # Slow query logging (only active in development/debug mode)
    SLOW_QUERY_THRESHOLD_MS: int = int(os.getenv("SLOW_QUERY_THRESHOLD_MS", "100"))

    # Database
    DATABASE_PATH: Path = BASE_DIR / os.getenv("DATABASE_PATH", "cards.db")

    # Rows fetched per round-trip when scanning a key prefix
    KV_LIST_BATCH_SIZE: int = int(os.getenv("KV_LIST_BATCH_SIZE", "100"))

    # Upper bound for ?limit= on the message listing endpoint
    MESSAGE_LIST_MAX_LIMIT: int = int(os.getenv("MESSAGE_LIST_MAX_LIMIT", "1000"))

    @classmethod
    def is_development(cls) -> bool:
        """Check if running in development mode."""
        return cls.FLASK_ENV == "development"

    @classmethod
    def is_testing(cls) -> bool:
        """Check if running in testing mode."""
        return cls.FLASK_ENV == "testing"

    @classmethod
    def session_ttl_ms(cls) -> int:
        """Session lifetime in milliseconds."""
        from cybercards.constants import MS_PER_DAY

        return cls.SESSION_TTL_DAYS * MS_PER_DAY

    @classmethod
    def validate(cls) -> list[str]:
        """Validate configuration. Returns list of errors with clear guidance."""
        errors: list[str] = []

        if cls.PORT < 1 or cls.PORT > 65535:
            errors.append(f"PORT must be between 1 and 65535, got {cls.PORT}")

        if cls.SESSION_TTL_DAYS < 1:
            errors.append(f"SESSION_TTL_DAYS must be at least 1, got {cls.SESSION_TTL_DAYS}")

        if cls.SSE_KEEPALIVE_INTERVAL < 1:
            errors.append(
                f"SSE_KEEPALIVE_INTERVAL must be at least 1 second, got {cls.SSE_KEEPALIVE_INTERVAL}"
            )

        if cls.SSE_QUEUE_SIZE < 1:
            errors.append(f"SSE_QUEUE_SIZE must be positive, got {cls.SSE_QUEUE_SIZE}")

        if cls.KV_LIST_BATCH_SIZE < 1:
            errors.append(f"KV_LIST_BATCH_SIZE must be positive, got {cls.KV_LIST_BATCH_SIZE}")

        if cls.MESSAGE_LIST_MAX_LIMIT < 1:
            errors.append(
                f"MESSAGE_LIST_MAX_LIMIT must be positive, got {cls.MESSAGE_LIST_MAX_LIMIT}"
            )

        if not cls.USER_COOKIE_NAME or not cls.USER_COOKIE_NAME.isalnum():
            errors.append(
                f"USER_COOKIE_NAME must be a non-empty alphanumeric name, got '{cls.USER_COOKIE_NAME}'"
            )

        # Validate log level
        valid_log_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if cls.LOG_LEVEL not in valid_log_levels:
            errors.append(
                f"LOG_LEVEL '{cls.LOG_LEVEL}' is not valid. "
                f"Valid levels: {', '.join(sorted(valid_log_levels))}"
            )

        return errors
