# backend/config.py
from pydantic_settings import BaseSettings
from typing import ClassVar
from pathlib import Path

# Resolve absolute path to the .env file for reliable loading
env_path = Path(__file__).parent.parent / ".env"

class Settings(BaseSettings):
    SECRET_KEY: str = "dev-secret-change-me"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    DATABASE_URL: str = "sqlite:///./database_stock.db"
    FRONTEND_URL: str = "http://localhost:5173"

    LOG_LEVEL: str = "INFO"

    # Stock tracking tunables
    SALES_WINDOW_DAYS: int = 30
    LOW_STOCK_BUFFER_RATIO: float = 1.2
    DEFAULT_MIN_STOCK: int = 10
    # Alerts are cached in Redis when REDIS_URL is set; a TTL of 0 disables it
    REDIS_URL: str = ""
    CACHE_KEY_PREFIX: str = "stock:"
    ALERT_CACHE_TTL_SECONDS: int = 30

    # Seconds a SQLite writer waits for the database lock
    SQLITE_BUSY_TIMEOUT: int = 30

    class Config:
        env_file: ClassVar[str] = str(env_path)
        extra = "ignore"

settings = Settings()
