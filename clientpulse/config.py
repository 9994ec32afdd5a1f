from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"

    # Storage
    DATABASE_URL: str = "postgresql://localhost:5432/clientpulse"
    REDIS_URL: str = "redis://localhost:6379/0"

    # =================================================================
    # AI PROVIDERS - listed in priority order by AI_PROVIDER_ORDER
    # =================================================================
    AI_PROVIDER_ORDER: list[str] = ["openai", "gemini"]

    OPENAI_API_KEY: str | None = None
    OPENAI_MODEL: str = "gpt-4o-mini"
    OPENAI_MAX_TOKENS: int = 1024
    OPENAI_TEMPERATURE: float = 0.2
    OPENAI_TIMEOUT_SECONDS: float = 30.0
    OPENAI_MAX_RETRIES: int = 2
    OPENAI_BACKOFF_SECONDS: list[float] = [2.0, 8.0]

    GEMINI_API_KEY: str | None = None
    GEMINI_MODEL: str = "gemini-1.5-flash"
    GEMINI_TIMEOUT_SECONDS: float = 45.0
    GEMINI_MAX_RETRIES: int = 1
    GEMINI_BACKOFF_SECONDS: list[float] = [30.0]

    # =================================================================
    # ANALYSIS PIPELINE
    # =================================================================
    ANALYSIS_QUEUE_KEY: str = "clientpulse:analysis"
    ANALYSIS_MAX_ATTEMPTS: int = 3
    ANALYSIS_BATCH_SIZE: int = 10
    ANALYSIS_MAX_CONCURRENCY: int = 5
    ANALYSIS_RECEIVE_TIMEOUT_SECONDS: int = 5
    ANALYSIS_REQUEUE_BACKOFF_SECONDS: list[int] = [120, 240, 480]
    ANALYSIS_PROCESSING_LEASE_SECONDS: int = 900

    # Health recalculation sweep
    HEALTH_RECALC_INTERVAL_HOURS: int = 24
    HEALTH_RECALC_MAX_CONCURRENCY: int = 10

    # =================================================================
    # DATABASE POOL SETTINGS
    # =================================================================
    DB_POOL_MIN_SIZE: int = 2
    DB_POOL_MAX_SIZE: int = 10
    DB_POOL_TIMEOUT: float = 30.0
    DB_POOL_MAX_IDLE: float = 600.0  # 10 minutes
    DB_POOL_MAX_LIFETIME: float = 3600.0  # 1 hour

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def provider_order(self) -> list[str]:
        """Normalized provider priority list, duplicates dropped."""
        seen: list[str] = []
        for name in self.AI_PROVIDER_ORDER:
            key = name.strip().lower()
            if key and key not in seen:
                seen.append(key)
        return seen

    def get_db_pool_config(self) -> dict:
        """
        Get database pool configuration.
        Adjust environment-specific settings based on self.environment.
        """
        config = {
            "min_size": self.DB_POOL_MIN_SIZE,
            "max_size": self.DB_POOL_MAX_SIZE,
            "timeout": self.DB_POOL_TIMEOUT,
            "max_idle": self.DB_POOL_MAX_IDLE,
            "max_lifetime": self.DB_POOL_MAX_LIFETIME,
        }

        if self.environment == "development":
            config.update({"min_size": 1, "max_size": 4, "timeout": 15.0})

        return config


settings = Settings()
