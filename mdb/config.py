from functools import lru_cache
import os

from dotenv import load_dotenv
from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Settings for the database layer with environment variable support."""

    # Service information
    SERVICE_NAME: str = "mdb"
    ENVIRONMENT: str = "development"

    # Database configuration
    MONGO_URI: str = "mongodb://localhost/"
    MONGO_DEFAULT_DATABASE: str = "test"
    MONGO_POOL_SIZE: int = 10
    MONGO_CONNECT_TIMEOUT_MS: int = 30000
    MONGO_SERVER_SELECTION_TIMEOUT_MS: int = 30000
    MONGO_PING_ON_CONNECT: bool = True

    # Logging configuration
    LOG_LEVEL: str = "INFO"
    ENABLE_STRUCTURED_LOGGING: bool = True

    @field_validator("MONGO_DEFAULT_DATABASE")
    @classmethod
    def validate_default_database(cls, v: str) -> str:
        """Database names can't be empty or contain path separators."""
        if not v or any(c in v for c in "/\\. \"$"):
            raise ValueError("MONGO_DEFAULT_DATABASE must be a valid database name")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        if v.upper() not in ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"):
            raise ValueError(f"Unknown log level: {v}")
        return v.upper()

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"


def load_env_file(env_file: str = ".env") -> None:
    """
    Load environment variables from the given .env file if it exists.

    Args:
        env_file: Path to the .env file, relative to the working directory
    """
    env_path = os.path.join(os.getcwd(), env_file)
    if os.path.exists(env_path):
        load_dotenv(dotenv_path=env_path)


@lru_cache
def get_settings() -> Settings:
    """
    Create and cache settings.

    Returns:
        Settings: Settings instance
    """
    load_env_file()
    return Settings()
