"""Configuration management using Pydantic Settings."""

# Load environment variables from .env file if it exists
# In Docker/production, environment variables are set directly
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_FILE_OPT: str | None = None
ONE_HOUR_IN_SECONDS = 3600

# Only load .env if it exists (for local development)
_env_path = Path(".env")
if _env_path.exists():
    load_dotenv(dotenv_path=_env_path)
    ENV_FILE_OPT = str(_env_path)


class Settings(BaseSettings):
    """Application configuration.

    Loads settings from environment variables. In local development, these can be
    provided via a .env file. In Docker/production, they should be set directly.
    """

    model_config = SettingsConfigDict(
        env_file=ENV_FILE_OPT,
        env_file_encoding="utf-8",
        extra="ignore",
        env_ignore_empty=True,
    )

    # Application
    app_name: str = "GitLab KB Refresh"
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Logging level")

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port")

    # Redis
    redis_url: SecretStr = Field(
        default="redis://localhost:6379/0", description="Redis connection URL"
    )
    redis_password: Optional[SecretStr] = Field(default=None, description="Redis password")

    # Credentials (optional at import time so the CLI can load without secrets;
    # building a CredentialVault without it fails closed)
    token_encryption_key: Optional[SecretStr] = Field(
        default=None,
        description="Passphrase used to derive the GitLab access token encryption key",
    )

    # GitLab
    gitlab_timeout: float = Field(
        default=30.0, description="Timeout for each GitLab API request (seconds)"
    )
    gitlab_per_page: int = Field(
        default=100, description="Page size used when listing repository trees"
    )

    # Refresh pipeline
    archive_dir: str = Field(
        default="./uploads/gitlab-archives",
        description="Directory where refresh archives are written",
    )
    refresh_lock_ttl: int = Field(
        default=ONE_HOUR_IN_SECONDS,
        description="Expiry of the per-tenant refresh lock (seconds)",
    )
    refresh_history_limit: int = Field(
        default=20, description="Default number of refresh runs returned by history queries"
    )

    # Knowledge store chunking
    chunk_size: int = Field(default=1000, description="Maximum characters per document chunk")
    chunk_overlap: int = Field(default=200, description="Overlap between consecutive chunks")
    min_chunk_size: int = Field(default=100, description="Minimum characters for a chunk")

    # Docket Task Queue
    task_queue_name: str = Field(default="kb_refresh_docket", description="Task queue name")
    task_timeout: int = Field(
        default=ONE_HOUR_IN_SECONDS, description="Task redelivery timeout in seconds"
    )

    # Security
    api_key: Optional[str] = Field(default=None, description="API authentication key")
    allowed_hosts: list[str] = Field(default=["*"], description="Allowed hosts for CORS")


# Global settings instance
settings = Settings()
