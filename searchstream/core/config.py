"""
Application configuration
"""

from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings"""

    # Application
    APP_NAME: str = "SearchStream Gateway"
    APP_VERSION: str = "0.1.0"
    # SECURITY: Debug mode defaults to False to prevent stack trace exposure in production
    DEBUG: bool = False
    ENVIRONMENT: str = "production"

    # Database
    POSTGRES_USER: str = "searchstream"
    POSTGRES_PASSWORD: str
    POSTGRES_HOST: str = "postgres"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "searchstream"

    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 40
    DB_POOL_RECYCLE: int = 3600
    DB_POOL_TIMEOUT: int = 30

    @property
    def DATABASE_URL(self) -> str:
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    # Redis
    REDIS_HOST: str = "redis"
    REDIS_PORT: int = 6379
    REDIS_PASSWORD: str
    REDIS_MAX_CONNECTIONS: int = 50
    REDIS_CONNECT_TIMEOUT: int = 5
    REDIS_HEALTH_CHECK_INTERVAL: int = 30

    @property
    def REDIS_URL(self) -> str:
        return f"redis://:{self.REDIS_PASSWORD}@{self.REDIS_HOST}:{self.REDIS_PORT}"

    # Keystroke transport: "redis" fans out across instances, "memory" is single-process
    QUERY_BUS_BACKEND: str = "redis"

    # Search-as-you-type pipeline
    SEARCH_WS_QUIET_PERIOD_MS: int = 300  # Debounce window for the WebSocket channel
    SEARCH_SSE_QUIET_PERIOD_MS: int = 250  # Debounce window for the SSE channel
    SEARCH_MAX_RESULTS: int = 20
    SEARCH_FTS_CONFIG: str = "english"  # PostgreSQL regconfig used for tsquery parsing
    SEARCH_MAX_EMISSIONS: int = 2000  # Settled terms per session before the stream ends
    SEARCH_BATCH_MAX_SIZE: int = 10
    SEARCH_BATCH_WINDOW_MS: int = 10
    SEARCH_LOOKUP_TIMEOUT_MS: Optional[int] = None  # None disables the lookup timeout
    SEARCH_PAGE_MAX_SIZE: int = 100

    # CORS (comma-separated list of allowed origins)
    ALLOWED_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")


# Global settings instance
settings = Settings()
