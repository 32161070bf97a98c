"""Redis settings configuration."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class RedisSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    REDIS_URL: str = "redis://localhost:6379/0"

    # Inter-app events go to one stream per target application
    EVENT_STREAM_PREFIX: str = "inter-app-events"
    EVENT_STREAM_MAXLEN: int = 10000


__all__ = ["RedisSettings"]
