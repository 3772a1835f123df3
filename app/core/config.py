from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from pkg.db_util.types import PostgresConfig, RedisConfig


class Settings(BaseSettings):
    """Global configuration for environment variables."""

    APP_NAME: str = "Bookmarket Chat"
    ENV: str = "development"

    # Server config
    HOST: str = "0.0.0.0"
    PORT: int = 8080
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Postgres (DATABASE_URL wins over the individual parts)
    DATABASE_URL: Optional[str] = None
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = ""
    POSTGRES_DB: str = "bookmarket"
    POSTGRES_POOL_SIZE: int = 20
    POSTGRES_MAX_OVERFLOW: int = 10
    POSTGRES_POOL_TIMEOUT: int = 30
    AUTO_CREATE_TABLES: bool = False

    # Redis (REDIS_URL wins over the individual parts)
    REDIS_URL: Optional[str] = None
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_PASSWORD: Optional[str] = None
    REDIS_SSL: bool = False
    REDIS_DB: int = 0

    # Chat cache projections
    CACHE_KEY_PREFIX: str = "chat"
    CHAT_MESSAGES_TTL: int = 300
    CHAT_THREADS_TTL: int = 120
    CHAT_UNREAD_TTL: int = 30  # unread badges must refresh quickly

    # Chat limits
    CHAT_PAGE_SIZE: int = 50
    CHAT_MAX_PAGE_SIZE: int = 200
    CHAT_MAX_MESSAGE_LENGTH: int = 2000

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    def postgres_config(self) -> PostgresConfig:
        return PostgresConfig(
            host=self.POSTGRES_HOST,
            port=self.POSTGRES_PORT,
            username=self.POSTGRES_USER,
            password=self.POSTGRES_PASSWORD,
            database=self.POSTGRES_DB,
            pool_size=self.POSTGRES_POOL_SIZE,
            max_overflow=self.POSTGRES_MAX_OVERFLOW,
            pool_timeout=self.POSTGRES_POOL_TIMEOUT,
            url=self.DATABASE_URL or None,
        )

    def redis_config(self) -> RedisConfig:
        return RedisConfig(
            host=self.REDIS_HOST,
            port=self.REDIS_PORT,
            password=self.REDIS_PASSWORD or None,
            db=self.REDIS_DB,
            ssl=self.REDIS_SSL,
            url=self.REDIS_URL or None,
        )


settings = Settings()
