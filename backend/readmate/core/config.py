"""
Application configuration via environment variables (12-factor).
Pydantic BaseSettings validates and coerces all values at startup.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # ------------------------------------------------------------------
    # Database
    # ------------------------------------------------------------------
    database_url: str = "sqlite+aiosqlite:///./data/app.db"
    db_echo_sql:  bool = False   # set True in local dev to log queries

    # ------------------------------------------------------------------
    # Text-intelligence provider (OpenAI-compatible API)
    # ------------------------------------------------------------------
    provider_api_key:  str = ""
    provider_base_url: str = "https://ark.cn-beijing.volces.com/api/v3"
    chat_model:        str = ""                    # endpoint / deployment id
    embedding_model:   str = "doubao-embedding"

    provider_timeout_seconds:  float = 60.0
    embedding_timeout_seconds: float = 30.0
    embedding_max_retries:     int   = 2

    # ------------------------------------------------------------------
    # Chunking
    # ------------------------------------------------------------------
    chunk_size:    int = 2000
    chunk_overlap: int = 200

    # ------------------------------------------------------------------
    # Retrieval-augmented chat
    # ------------------------------------------------------------------
    rag_top_k:         int   = 5
    rag_history_limit: int   = 10
    rag_temperature:   float = 0.7
    rag_max_tokens:    int   = 4096

    # ------------------------------------------------------------------
    # File storage
    # ------------------------------------------------------------------
    storage_backend: str = "local"            # "local" | "s3"
    upload_dir:      str = "./data/uploads"

    aws_region: str = "us-east-1"
    s3_bucket:  str = "readmate-documents"

    max_upload_bytes: int = 50 * 1024 * 1024  # 50 MB

    # ------------------------------------------------------------------
    # Auth — HS256 bearer tokens
    # ------------------------------------------------------------------
    jwt_secret:      str = "change-me-in-production"
    jwt_algorithm:   str = "HS256"
    jwt_expire_days: int = 7

    # ------------------------------------------------------------------
    # Application
    # ------------------------------------------------------------------
    app_env: str = "development"   # development | staging | production
    debug: bool = False

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
