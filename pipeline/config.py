"""Settings for the crime dashboard, loaded from the environment."""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

DATA_DIR = Path(__file__).resolve().parent.parent / "data"


class Settings(BaseSettings):
    # ── External services ─────────────────────────────────────────────
    postcode_api_base: str = "http://api.getthedata.com/postcode"
    crime_api_base: str = "https://data.police.uk/api/crimes-street/all-crime"
    postcode_timeout: float = 10.0
    crime_timeout: float = 15.0

    # ── Search behaviour ──────────────────────────────────────────────
    cache_ttl: float = 300.0  # seconds a (postcodes, trigger) result is reused
    retry_count: int = 2
    retry_delay: float = 1.0
    history_limit: int = 10
    debounce_delay: float = 0.3

    # ── Storage / logging ─────────────────────────────────────────────
    storage_path: Path = DATA_DIR / "storage.json"
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="CRIME_DASHBOARD_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()


def configure_logging(level: str | None = None) -> None:
    """Set up root logging once for an entry point (dashboard, API, MCP)."""
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    )
