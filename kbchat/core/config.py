from typing import Any
import os

from pydantic import Field, PostgresDsn, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


class Settings(BaseSettings):
    API_PREFIX: str = "/api"
    PROJECT_NAME: str = "kbchat"
    LOG_LEVEL: str = "INFO"

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000"  # Frontend URL

    # Database
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_DB: str = "kbchat"
    SQLALCHEMY_DATABASE_URI: str | None = Field(default=None, validate_default=True)
    AUTO_CREATE_TABLES: bool = True

    @field_validator("SQLALCHEMY_DATABASE_URI", mode="before")
    def assemble_db_connection(cls, v: str | None, info: Any) -> Any:
        if isinstance(v, str):
            return v
        return str(
            PostgresDsn.build(
                scheme="postgresql+asyncpg",
                username=info.data.get("POSTGRES_USER"),
                password=info.data.get("POSTGRES_PASSWORD"),
                host=info.data.get("POSTGRES_HOST"),
                port=info.data.get("POSTGRES_PORT"),
                path=f"{info.data.get('POSTGRES_DB') or ''}",
            )
        )

    # Redis / Celery
    REDIS_HOST: str = "localhost"
    REDIS_PORT: str = "6379"
    REDIS_PASSWORD: str = ""
    REDIS_URL: str | None = Field(default=None, validate_default=True)
    INGESTION_BACKEND: str = "background"  # "background" or "celery"

    @field_validator("REDIS_URL", mode="before")
    def assemble_redis_connection(cls, v: str | None, info: Any) -> Any:
        if isinstance(v, str):
            return v
        password = f":{info.data.get('REDIS_PASSWORD')}@" if info.data.get("REDIS_PASSWORD") else ""
        return f"redis://{password}{info.data.get('REDIS_HOST')}:{info.data.get('REDIS_PORT')}/0"

    # OpenAI
    OPENAI_API_KEY: str = ""
    OPENAI_BASE_URL: str | None = None
    CHAT_MODEL: str = "gpt-4o-mini"
    OPENAI_TEMPERATURE: float = 0.7
    ANSWER_MAX_TOKENS: int = 800
    FALLBACK_MAX_TOKENS: int = 500
    EMBEDDING_MODEL: str = "text-embedding-3-small"
    EMBEDDING_DIMENSIONS: int = 1024
    EMBEDDING_BATCH_SIZE: int = 2048

    # Vector index
    VECTOR_INDEX_BACKEND: str = "qdrant"  # "qdrant" or "memory"
    QDRANT_URL: str = "http://localhost:6333"
    QDRANT_API_KEY: str = ""
    QDRANT_COLLECTION: str = "knowledge-base"
    VECTOR_UPSERT_BATCH_SIZE: int = 100

    # Every outbound provider call is bounded by this timeout
    PROVIDER_TIMEOUT_SECONDS: float = 30.0

    # Chunking
    CHUNK_MAX_TOKENS: int = 500
    CHUNK_OVERLAP_WORDS: int = 50
    CHUNK_TOKENIZER: str = "tiktoken"  # "tiktoken" or "approx"
    TOKENIZER_MODEL: str = "gpt-4o-mini"

    # Retrieval
    RETRIEVAL_TOP_K: int = 5

    # Storage
    UPLOAD_DIR: str = os.path.join(PROJECT_ROOT, "uploads", "knowledge-base")
    MAX_UPLOAD_BYTES: int = 10 * 1024 * 1024

    # Documents left in "pending" longer than this are re-dispatched
    STALE_PENDING_MINUTES: int = 15
    # Documents claimed longer ago than this whose run never finished are released
    STALE_PROCESSING_MINUTES: int = 60
    RECOVER_STALE_ON_STARTUP: bool = True

    # Test Database - SQLite for tests
    TEST_DATABASE_URL: str = "sqlite+aiosqlite:///:memory:"

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="allow",  # Allow extra fields from environment variables
    )


settings = Settings()
