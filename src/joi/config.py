"""Configuration settings for the application."""

from pydantic_settings import (
    BaseSettings,
    SettingsConfigDict,
)


class Settings(BaseSettings):
    """Pydantic settings class for the application."""

    # These will be loaded from environment variables or a .env file if not provided
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    API_PORT: int = 8000
    DEBUG: bool = False
    LOG_LEVEL: str = "info"  # Options: debug, info, warning, error, critical

    # LLM Configuration
    MODEL_PROVIDER: str = "openai"  # Options: openai, anthropic, tgi
    OPENAI_API_KEY: str | None = None
    OPENAI_MODEL: str = "gpt-4o-mini"
    ANTHROPIC_API_KEY: str | None = None
    ANTHROPIC_MODEL: str = "claude-3-5-haiku-latest"
    TGI_ENDPOINT: str = "http://tgi:8080/generate"
    MODEL_TEMPERATURE: float = 0.0

    # Embeddings / similarity search
    EMBEDDER: str = "openai"  # Options: openai, local
    OPENAI_EMBED_MODEL: str = "text-embedding-3-small"
    LOCAL_EMBED_MODEL: str = "all-MiniLM-L6-v2"  # small; runs CPU-only
    VECTOR_DB: str = "memory"  # Options: memory, chroma
    VECTOR_DB_HOST: str = "chroma"  # Service name in docker-compose
    VECTOR_DB_PORT: int = 8000
    SIMILARITY_THRESHOLD: float = 0.5
    SIMILARITY_MATCH_COUNT: int = 5

    # Data store
    SEED_DATA_PATH: str | None = None

    # Per-call timeouts (seconds)
    LLM_TIMEOUT_SECONDS: float = 30.0
    TOOL_TIMEOUT_SECONDS: float = 10.0


settings = Settings()
