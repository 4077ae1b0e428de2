import os
from dataclasses import dataclass


def _get_bool(env_name: str, default: bool = False) -> bool:
    val = os.getenv(env_name)
    if val is None:
        return default
    return str(val).strip().lower() in {"1", "true", "yes", "y", "on"}


@dataclass
class Settings:
    # App
    APP_HOST: str = os.getenv("APP_HOST", "0.0.0.0")
    APP_PORT: int = int(os.getenv("APP_PORT", "8000"))
    INSTANCE_ID: str = os.getenv("INSTANCE_ID", "unknown")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Database (SQLite by default, any async SQLAlchemy URL works)
    DB_URL: str = os.getenv("DB_URL", "sqlite+aiosqlite:///./data/marketplace.db")
    DB_ECHO: bool = _get_bool("DB_ECHO", False)

    # Redis
    REDIS_HOST: str = os.getenv("REDIS_HOST", "redis")
    REDIS_PORT: int = int(os.getenv("REDIS_PORT", "6379"))
    REDIS_DB: int = int(os.getenv("REDIS_DB", "0"))
    REDIS_USERNAME: str = os.getenv("REDIS_USERNAME", "")
    REDIS_PASSWORD: str = os.getenv("REDIS_PASSWORD", "")
    REDIS_SSL: bool = _get_bool("REDIS_SSL", False)
    REDIS_GROUP_CHANNEL: str = os.getenv("REDIS_GROUP_CHANNEL", "group-updates")

    # Publish group fill updates for the /events stream
    REALTIME_ENABLED: bool = _get_bool("REALTIME_ENABLED", True)


settings = Settings()
