from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from json import loads as json_loads, JSONDecodeError

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Central configuration for the invite service.

    All values come from environment variables or .env.
    This is the single source of truth for:
    - storage location (DATA_DIR / DATABASE_URL)
    - CORS / allowed origins
    - docs toggle
    - admin key
    - token shape and generation limits
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Storage
    data_dir: str = Field(
        default=".",
        description="Directory holding the default SQLite file (tokens.db). Created on startup.",
    )
    database_url: Optional[str] = Field(
        default=None,
        description="SQLAlchemy-style DB URL. Falls back to sqlite:///<DATA_DIR>/tokens.db.",
    )
    auto_create_tables: bool = Field(
        default=True,
        description="Run Base.metadata.create_all() on startup (idempotent).",
    )

    # CORS / frontends
    allowed_origins: str = Field(
        default=(
            "https://mentrastchat.vercel.app,"
            "http://localhost:3000,"
            "https://mentrast-lp.vercel.app"
        ),
        description=(
            "Allowed frontend origins. Either a comma-separated string or a JSON list."
        ),
    )

    # API docs toggle
    enable_docs: bool = Field(
        default=False,
        description="If true, exposes /api/v1/docs and /api/v1/redoc.",
    )

    # Admin routes (generate / reset / analytics)
    admin_api_key: Optional[str] = Field(
        default=None,
        description="When set, admin routes require a matching X-Admin-Key header.",
    )

    # Tokens
    token_length: int = Field(default=7, ge=1, le=16)
    token_max_attempts: int = Field(
        default=5,
        ge=1,
        description="Insert attempts per requested token before it is skipped.",
    )
    max_generate_count: int = Field(default=1000, ge=1)
    stats_recent_limit: int = Field(default=10, ge=1)
    vacuum_on_reset: bool = Field(
        default=True,
        description="Run VACUUM after a reset when the store is SQLite.",
    )

    # Observability budgets
    slow_db_query_ms: float = Field(default=250.0)
    slow_db_total_ms: float = Field(default=800.0)
    slow_http_ms: float = Field(default=1500.0)
    log_db_sql: bool = Field(default=False)

    def origins_list(self) -> List[str]:
        """
        Normalize ALLOWED_ORIGINS into a clean List[str] for CORSMiddleware.

        Supports two formats:
        - Comma-separated string:
            ALLOWED_ORIGINS=http://127.0.0.1:3000,http://localhost:3000
        - JSON array:
            ALLOWED_ORIGINS=["http://127.0.0.1:3000","http://localhost:3000"]
        """
        raw_str = (self.allowed_origins or "").strip()
        if not raw_str:
            return []

        if raw_str.startswith("[") and raw_str.endswith("]"):
            try:
                parsed = json_loads(raw_str)
                if isinstance(parsed, list):
                    return [str(o).strip() for o in parsed if str(o).strip()]
            except JSONDecodeError:
                # Fall back to naive split if JSON is malformed
                pass

        return [o.strip() for o in raw_str.split(",") if o.strip()]

    @property
    def resolved_database_url(self) -> str:
        if self.database_url:
            return self.database_url
        path = Path(self.data_dir) / "tokens.db"
        return f"sqlite:///{path.as_posix()}"


@lru_cache()
def get_settings() -> Settings:
    """
    Cached settings instance so the app only parses env once.
    """
    return Settings()


settings = get_settings()
