from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"

    # Supabase settings
    SUPABASE_URL: str = "http://localhost:54321"
    SUPABASE_JWKS_URL: str | None = None
    SUPABASE_DB_URL: str | None = None

    # =================================================================
    # DATABASE POOL SETTINGS - Simple and configurable
    # =================================================================
    DB_POOL_MIN_SIZE: int = 3
    DB_POOL_MAX_SIZE: int = 12
    DB_POOL_TIMEOUT: float = 30.0
    DB_POOL_MAX_IDLE: float = 600.0  # 10 minutes
    DB_POOL_MAX_LIFETIME: float = 3600.0  # 1 hour

    # =================================================================
    # AUTOMATION ENGINE SETTINGS
    # =================================================================
    SCHEDULER_TICK_SECONDS: float = 60.0  # Check for due triggers every minute
    SCHEDULER_LOOKAHEAD_MINUTES: int = 5  # Fire triggers due within the next 5 minutes
    SCHEDULER_MISSED_GRACE_MINUTES: int = 30  # Firings later than this are skipped
    ACTION_PACING_MS: int = 500  # Gap between actions of one trigger
    BATCH_RATE_LIMIT_MS: int = 2000  # Gap between batch recipients
    ACTUATOR_TIMEOUT_SECONDS: float = 10.0

    # Re-queue policy for triggers resolved to "delay"
    DELAY_BASE_MINUTES: int = 5
    DELAY_MAX_MINUTES: int = 60
    DELAY_MAX_ATTEMPTS: int = 6

    # Actuator forwarding endpoint (e.g. a Supabase edge function)
    ACTUATOR_WEBHOOK_URL: str | None = None
    ACTUATOR_WEBHOOK_TOKEN: str | None = None

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # derive sensible defaults if not provided
    def jwks_url(self) -> str:
        if self.SUPABASE_JWKS_URL:
            return self.SUPABASE_JWKS_URL
        base = self.SUPABASE_URL.rstrip("/")
        return f"{base}/auth/v1/.well-known/jwks.json"

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
            # More conservative for local development
            config.update(
                {
                    "min_size": 2,
                    "max_size": 6,
                    "timeout": 15.0,
                }
            )

        return config

    def get_engine_config(self) -> dict:
        """Engine timing constants in the units the engine works with."""
        return {
            "tick_seconds": self.SCHEDULER_TICK_SECONDS,
            "lookahead_minutes": self.SCHEDULER_LOOKAHEAD_MINUTES,
            "missed_grace_minutes": self.SCHEDULER_MISSED_GRACE_MINUTES,
            "action_pacing_seconds": self.ACTION_PACING_MS / 1000,
            "batch_rate_limit_seconds": self.BATCH_RATE_LIMIT_MS / 1000,
            "actuator_timeout_seconds": self.ACTUATOR_TIMEOUT_SECONDS,
        }


settings = Settings()
