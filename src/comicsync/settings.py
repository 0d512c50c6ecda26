"""Global settings loaded from environment variables via pydantic-settings."""

from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="COMICSYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database_url: str = "sqlite:///./data/comics.db"
    log_dir: str = "./data/logs"
    offline_dir: str = "./data/offline"
    proxy_url: str = ""
    # Upstream endpoints
    xkcd_base_url: str = "https://xkcd.com"
    explain_base_url: str = "https://www.explainxkcd.com/wiki/api.php"
    reddit_base_url: str = "https://www.reddit.com"
    http_timeout: float = 30.0
    max_workers: int = 8
    # Offline mode: mirror every new comic's image as soon as it is found
    full_offline_enabled: bool = False
    # Legacy store migration
    legacy_db_path: str = ""
    force_migration: bool = False
