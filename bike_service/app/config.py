"""
Настройки сервиса из переменных окружения (и .env, если он есть).
"""
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes"}


@dataclass
class Settings:
    """Application settings loaded from environment variables."""

    store_backend: str = field(default_factory=lambda: os.getenv("STORE_BACKEND", "sql").lower())
    database_url: str = field(
        default_factory=lambda: os.getenv("BIKE_DB_URL", "sqlite+aiosqlite:///./bikes.db")
    )
    db_echo: bool = field(default_factory=lambda: _flag("DB_ECHO"))
    redis_addr: str = field(default_factory=lambda: os.getenv("REDIS_ADDR", "mycache"))
    redis_password: str = field(default_factory=lambda: os.getenv("REDIS_PASSWORD", ""))
    strict_numbers: bool = field(default_factory=lambda: _flag("STRICT_NUMBERS"))
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    host: str = field(default_factory=lambda: os.getenv("HOST", "0.0.0.0"))
    port: int = field(default_factory=lambda: int(os.getenv("PORT", "80")))
