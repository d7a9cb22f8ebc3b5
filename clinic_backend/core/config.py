import os

from dotenv import load_dotenv


load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if not value:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]

APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./clinic.db")
DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "20"))

DB_RETRY_MAX_RETRIES = int(os.getenv("DB_RETRY_MAX_RETRIES", "3"))
DB_RETRY_INITIAL_DELAY_SECONDS = float(os.getenv("DB_RETRY_INITIAL_DELAY_SECONDS", "1.0"))
DB_RETRY_MAX_DELAY_SECONDS = float(os.getenv("DB_RETRY_MAX_DELAY_SECONDS", "8.0"))
DB_RETRY_BACKOFF_MULTIPLIER = float(os.getenv("DB_RETRY_BACKOFF_MULTIPLIER", "2.0"))

IDEMPOTENCY_TTL_HOURS = int(os.getenv("IDEMPOTENCY_TTL_HOURS", "24"))
IDEMPOTENCY_REQUIRE_KEY = _get_bool(os.getenv("IDEMPOTENCY_REQUIRE_KEY"), default=False)
IDEMPOTENCY_PURGE_EVERY = int(os.getenv("IDEMPOTENCY_PURGE_EVERY", "100"))

SLOT_LOOKAHEAD_DAYS = int(os.getenv("SLOT_LOOKAHEAD_DAYS", "30"))
DEFAULT_CURRENCY = os.getenv("DEFAULT_CURRENCY", "USD")

CORS_ALLOWED_ORIGINS = _get_list(os.getenv("CORS_ALLOWED_ORIGINS"), ["http://localhost:4200"])

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "60"))

def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
    if DB_RETRY_MAX_RETRIES < 0:
        raise RuntimeError("DB_RETRY_MAX_RETRIES cannot be negative.")
