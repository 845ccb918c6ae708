"""Configuration settings for the team orchestrator."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    db_host: str = "localhost"
    db_port: int = 15432
    db_name: str = "huddle"
    db_user: str = "agent"
    db_password: str = "agent"
    db_url_override: str | None = None

    # Completion server
    completion_api_url: str = "http://localhost:4096"
    completion_timeout: float = 120.0

    # Redis
    redis_url: str = "redis://localhost:16379/0"
    redis_publish_enabled: bool = False

    # Gate
    processing_timeout_seconds: float = 30.0
    processed_history_size: int = 100
    sweep_interval_seconds: float = 60.0

    # Collaboration
    max_collaboration_cycles: int = 3
    cooldown_delay_seconds: float = 2.0
    cooldown_window_seconds: float = 300.0  # 5 minutes
    recent_message_window: int = 15
    relay_agent_messages: bool = True

    # Structured workflow
    max_rounds: int = 8
    round_delay_seconds: float = 1.0
    max_round_retries: int = 3

    @property
    def database_url(self) -> str:
        """SQLAlchemy database URL."""
        return f"postgresql://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"

    @property
    def async_database_url(self) -> str:
        """Async SQLAlchemy database URL."""
        if self.db_url_override:
            return self.db_url_override
        return f"postgresql+asyncpg://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"

    class Config:
        env_prefix = "HUDDLE_"
        env_file = ".env"


# Global settings instance
settings = Settings()
