from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional
import os

class Settings(BaseSettings):
    # AI providers (OpenAI-compatible endpoints)
    sambanova_api_key: str = ""
    deepseek_api_key: str = ""

    # Database - MySQL in production, fallback to SQLite for local
    database_url: Optional[str] = None
    db_pool_size: int = 10

    # Auth
    jwt_secret: str = "change-me"
    jwt_algorithm: str = "HS256"

    # Optional Redis for realtime notification push
    redis_url: str = ""

    # Scheduler - only one process may run it
    scheduler_enabled: bool = False

    # App Settings
    app_name: str = "CareerHub"
    app_version: str = "1.0.0"
    debug: bool = False
    allowed_origins: str = "http://localhost:5173"

    # API Settings
    backend_host: str = "0.0.0.0"
    backend_port: int = int(os.getenv("PORT", "3001"))

    class Config:
        env_file = ".env"

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        # Auto-detect database URL
        if self.database_url is None:
            self.database_url = "sqlite+aiosqlite:///./careerhub.db"
        # SQLAlchemy async needs an async driver
        if self.database_url.startswith("mysql://"):
            self.database_url = self.database_url.replace("mysql://", "mysql+aiomysql://", 1)

@lru_cache()
def get_settings() -> Settings:
    return Settings()
