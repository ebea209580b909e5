from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Follows 12-factor app configuration principles.
    """

    # env_file is only used as fallback, env vars take precedence
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_ignore_empty=True,
    )

    # Message log storage
    DATABASE_URL: str = "sqlite:///./chatsync.db"

    # Logging
    LOG_LEVEL: str = "INFO"

    # Namespace that scopes every read/write of the message log
    APP_ID: str = "default-app-id"

    # Session bootstrap: a custom token is "<subject>.<hex hmac>" signed with AUTH_SECRET.
    # Without a token the session signs in anonymously.
    AUTH_SECRET: str = ""
    INITIAL_AUTH_TOKEN: Optional[str] = None

    # Automated responder
    RESPONDER_ID: str = "gemini-bot"
    RESPONDER_NAME: str = "Gemini Bot"
    RESPONDER_API_URL: str = "https://generativelanguage.googleapis.com/v1beta"
    RESPONDER_MODEL: str = "gemini-2.5-flash-preview-05-20"
    RESPONDER_API_KEY: str = ""
    RESPONDER_TIMEOUT_SECONDS: float = 30.0

    @property
    def log_path(self) -> str:
        """Namespace path of the shared message log."""
        return f"/artifacts/{self.APP_ID}/public/data/messages"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to avoid reading .env file on every call.
    """
    return Settings()


# Global settings instance
settings = get_settings()
