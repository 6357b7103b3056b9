from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional
import os

class Settings(BaseSettings):
    # Generator (OpenRouter chat completions)
    openrouter_api_key: str = ""
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    openrouter_model: str = "deepseek/deepseek-r1:free"
    generation_timeout_seconds: float = 60.0
    site_url: str = ""  # Sent as HTTP-Referer so OpenRouter can attribute traffic

    # Test Mode - generator returns canned payloads, no network
    test_mode: bool = False

    # Database - Railway provides DATABASE_URL, fallback to SQLite for local
    database_url: Optional[str] = None

    # Cache store: "sql" (SQLAlchemy) or "supabase" (PostgREST)
    cache_backend: str = "sql"
    ai_cache_ttl_hours: float = 24

    # Supabase
    supabase_url: str = ""
    supabase_service_role_key: str = ""
    supabase_jwt_secret: str = ""
    supabase_timeout_seconds: Optional[float] = None

    # App Settings
    app_name: str = "CareerPath AI"
    app_version: str = "1.0.0"
    debug: bool = False

    # API Settings
    backend_host: str = "0.0.0.0"
    backend_port: int = int(os.getenv("PORT", "8000"))  # Railway provides PORT env var
    allowed_origins: str = "http://localhost:5173,http://localhost:8080"

    class Config:
        env_file = ".env"

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        # DATABASE_URL lands in database_url directly; Railway/Supabase hand out
        # postgres:// URLs but SQLAlchemy async needs postgresql+asyncpg://
        url = self.database_url
        if not url:
            self.database_url = "sqlite+aiosqlite:///./careerpath_ai.db"
        elif url.startswith("postgres://"):
            self.database_url = url.replace("postgres://", "postgresql+asyncpg://", 1)
        elif url.startswith("postgresql://"):
            self.database_url = url.replace("postgresql://", "postgresql+asyncpg://", 1)

@lru_cache()
def get_settings() -> Settings:
    return Settings()
