from pathlib import Path
from typing import Any

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = "dev"
    log_level: str = "INFO"

    db_host: str = "host.docker.internal"
    db_port: int = 5432
    db_database: str = "medidoc"
    db_username: str = "medidoc"
    db_password: str = "secret"
    db_pool_max_size: int = 10

    uploads_dir: Path = Path("uploads")
    uploads_url_prefix: str = "/uploads"
    profiles_dir: Path = Path("profiles")
    profiles_url_prefix: str = "/profiles"

    thumbnail_max_size: int = 200
    max_files_per_batch: int = 10
    max_file_size_bytes: int = 10 * 1024 * 1024

    jwt_secret: str = ""

    classification_provider: str = "openai"
    classification_api_key: str = ""
    classification_model_name: str = "gpt-4o-mini"
    classification_base_url: str = ""
    classification_timeout_seconds: int = 30
    classification_temperature: float = 0.1
    classification_max_workers: int = 4
    # provider-specific request fields, e.g. safety settings; JSON in the env
    classification_extra_body: dict[str, Any] = {}
