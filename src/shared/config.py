"""
Settings for the Bookstore inventory service.

Every value comes from the environment (or a local ``.env`` file) under the
upper-case name given as each field's alias. Settings are grouped per
collaborator: the store, the cache, the HTTP API and logging.
"""
from enum import Enum
from typing import List, Optional, Union

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_CONFIG = SettingsConfigDict(
    env_file=".env",
    case_sensitive=False,
    extra="ignore",
    populate_by_name=True,
)

# Characters with meaning in Redis KEYS patterns or in our key layout
_PATTERN_CHARS = set("*?[]:")


class Environment(str, Enum):
    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"


class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


def _check_port(value: int) -> int:
    if not 0 < value < 65536:
        raise ValueError(f"Invalid port {value}")
    return value


class DatabaseSettings(BaseSettings):
    """Store connection, pool and startup retry settings."""

    model_config = ENV_CONFIG

    # A full URL wins over the individual parts
    database_url: Optional[str] = Field(None, alias="DATABASE_URL")
    db_host: str = Field("localhost", alias="DB_HOST")
    db_port: int = Field(5432, alias="DB_PORT")
    db_name: str = Field("bookstore", alias="DB_NAME")
    db_user: str = Field("bookstore", alias="DB_USER")
    db_password: str = Field("bookstore123", alias="DB_PASSWORD")

    db_pool_size: int = Field(10, alias="DB_POOL_SIZE")
    db_max_overflow: int = Field(0, ge=0, alias="DB_MAX_OVERFLOW")
    db_pool_timeout: float = Field(30.0, alias="DB_POOL_TIMEOUT")
    db_statement_timeout: float = Field(10.0, alias="DB_STATEMENT_TIMEOUT")
    db_echo: bool = Field(False, alias="DB_ECHO")
    db_create_schema: bool = Field(False, alias="DB_CREATE_SCHEMA")
    db_seed_sample_data: bool = Field(False, alias="DB_SEED_SAMPLE_DATA")

    db_retry_attempts: int = Field(5, alias="DB_RETRY_ATTEMPTS")
    db_retry_delay: float = Field(5.0, alias="DB_RETRY_DELAY")

    check_db_port = field_validator("db_port")(_check_port)

    @field_validator("db_pool_size", "db_retry_attempts")
    @classmethod
    def at_least_one(cls, v):
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    @field_validator("db_retry_delay", "db_statement_timeout", "db_pool_timeout")
    @classmethod
    def not_negative(cls, v):
        if v < 0:
            raise ValueError("must not be negative")
        return v

    def get_database_url(self) -> str:
        """SQLAlchemy URL for the async engine (asyncpg unless overridden)."""
        if self.database_url:
            return self.database_url
        return (
            f"postgresql+asyncpg://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )


class RedisSettings(BaseSettings):
    """Cache connection, TTL and namespace settings."""

    model_config = ENV_CONFIG

    redis_url: Optional[str] = Field(None, alias="REDIS_URL")
    redis_host: str = Field("localhost", alias="REDIS_HOST")
    redis_port: int = Field(6379, alias="REDIS_PORT")
    redis_db: int = Field(0, ge=0, alias="REDIS_DB")
    redis_password: Optional[str] = Field(None, alias="REDIS_PASSWORD")
    redis_pool_size: int = Field(10, ge=1, alias="REDIS_POOL_SIZE")
    redis_timeout: float = Field(2.0, gt=0, alias="REDIS_TIMEOUT")

    cache_enabled: bool = Field(True, alias="CACHE_ENABLED")
    cache_ttl: int = Field(300, alias="CACHE_TTL")
    cache_namespace: str = Field("books", alias="CACHE_NAMESPACE")

    check_redis_port = field_validator("redis_port")(_check_port)

    @field_validator("cache_ttl")
    @classmethod
    def positive_ttl(cls, v):
        if v < 1:
            raise ValueError("cache TTL must be at least one second")
        return v

    @field_validator("cache_namespace")
    @classmethod
    def plain_namespace(cls, v):
        if not v or _PATTERN_CHARS & set(v):
            raise ValueError("cache namespace must be non-empty and free of * ? [ ] :")
        return v

    def get_redis_url(self) -> str:
        if self.redis_url:
            return self.redis_url
        auth = f":{self.redis_password}@" if self.redis_password else ""
        return f"redis://{auth}{self.redis_host}:{self.redis_port}/{self.redis_db}"


class APISettings(BaseSettings):
    """HTTP server settings."""

    model_config = ENV_CONFIG

    api_title: str = Field("Bookstore Inventory API", alias="API_TITLE")
    api_description: str = Field("Book inventory CRUD with read-through caching", alias="API_DESCRIPTION")
    api_prefix: str = Field("/api", alias="API_PREFIX")

    host: str = Field("0.0.0.0", alias="HOST")
    port: int = Field(3000, alias="PORT")

    # Union lets a plain comma separated string through env parsing
    cors_origins: Union[List[str], str] = Field(["*"], alias="CORS_ORIGINS")
    security_headers: bool = Field(True, alias="SECURITY_HEADERS")

    check_api_port = field_validator("port")(_check_port)

    @field_validator("cors_origins", mode="before")
    @classmethod
    def split_origins(cls, v):
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v


class MonitoringSettings(BaseSettings):
    """Logging settings."""

    model_config = ENV_CONFIG

    log_level: LogLevel = Field(LogLevel.INFO, alias="LOG_LEVEL")
    log_format: str = Field("colored", alias="LOG_FORMAT")
    log_file: Optional[str] = Field(None, alias="LOG_FILE")

    @field_validator("log_format")
    @classmethod
    def known_format(cls, v):
        if v not in ("json", "colored", "standard"):
            raise ValueError("log format must be json, colored or standard")
        return v


class Settings(BaseSettings):
    """All settings for one process."""

    model_config = ENV_CONFIG

    environment: Environment = Field(Environment.DEVELOPMENT, alias="ENVIRONMENT")
    debug: bool = Field(False, alias="DEBUG")
    app_name: str = Field("Bookstore Inventory", alias="APP_NAME")
    app_version: str = Field("1.0.0", alias="APP_VERSION")

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    api: APISettings = Field(default_factory=APISettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)

    @model_validator(mode="after")
    def no_debug_in_production(self):
        if self.debug and self.environment == Environment.PRODUCTION:
            raise ValueError("DEBUG must be off in production")
        return self


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Process-wide settings, read from the environment on first use."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    global _settings
    _settings = None


def get_config_summary(settings: Optional[Settings] = None) -> dict:
    """Effective configuration with credentials left out, for startup logs."""
    settings = settings or get_settings()
    db, cache = settings.database, settings.redis
    return {
        "environment": settings.environment.value,
        "version": settings.app_version,
        "store": {
            "host": db.db_host,
            "port": db.db_port,
            "database": db.db_name,
            "pool_size": db.db_pool_size,
            "retry": {"attempts": db.db_retry_attempts, "delay": db.db_retry_delay},
        },
        "cache": {
            "host": cache.redis_host,
            "port": cache.redis_port,
            "enabled": cache.cache_enabled,
            "ttl": cache.cache_ttl,
            "namespace": cache.cache_namespace,
        },
        "logging": {
            "level": settings.monitoring.log_level.value,
            "format": settings.monitoring.log_format,
        },
    }
