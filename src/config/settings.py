import os
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import Literal

class AppSettings(BaseSettings):
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

class ServerSettings(BaseSettings):
    # Directory the file tools operate in. Checked at startup, not at import.
    WORKING_DIRECTORY: str = "."

    TRANSPORT: Literal["http", "stdio"] = "http"

    # HTTP transport
    HOST: str = "127.0.0.1"
    PORT: int = Field(default=8080, ge=1024, le=65535)
    MAX_REQUEST_SIZE_MB: int = Field(default=10, ge=1)
    HTTP_TIMEOUT_KEEP_ALIVE_SEC: int = Field(default=60, ge=1)

    # File operation limits
    MAX_FILE_SIZE_MB: int = Field(default=10, ge=1, le=100)
    OPERATION_TIMEOUT_SEC: int = Field(default=10, ge=1, le=30)

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @field_validator("TRANSPORT", mode="before")
    @classmethod
    def normalize_transport(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value


class Settings(BaseSettings):
    app: AppSettings = AppSettings()
    server: ServerSettings = ServerSettings()

@lru_cache()
def get_settings() -> Settings:
    # We instantiate the nested settings explicitly to ensure .env variables are loaded
    return Settings(app=AppSettings(), server=ServerSettings())

settings = get_settings()


def validate_working_directory(path: str) -> str:
    """Resolves ``path`` and checks it is an existing, writable directory."""
    resolved = os.path.abspath(os.path.expanduser(path))
    if not os.path.exists(resolved):
        raise ValueError(f"working directory does not exist: {resolved}")
    if not os.path.isdir(resolved):
        raise ValueError(f"working directory is not a directory: {resolved}")
    if not os.access(resolved, os.W_OK):
        raise ValueError(f"working directory is not writable: {resolved}")
    return resolved
