"""Configuration management for grex-settle."""

from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Group data store (PostgREST-compatible REST API)
    store_url: str | None = None
    store_api_key: str | None = None
    store_access_token: str | None = None  # Falls back to the API key

    # Currency settings
    default_currency: str = "VND"
    exchange_rate_api_url: str = "https://api.frankfurter.app"
    use_remote_rates: bool = False  # Query the rate API for missing pairs
    rate_date_policy: Literal["transaction", "latest"] = "transaction"

    # Settlement settings
    tie_break: Literal["member_id", "input_order"] = "member_id"
    recompute_workers: int = 1

    # Database path
    database_path: Path = Path.home() / ".grex_settle" / "grex_settle.db"

    def __init__(self, **kwargs):
        """Initialize settings and create database directory if needed."""
        super().__init__(**kwargs)
        self.database_path.parent.mkdir(parents=True, exist_ok=True)


def load_settings() -> Settings:
    """Load application settings from environment variables."""
    try:
        return Settings()
    except Exception as e:
        raise ValueError(
            f"Failed to load settings. Check your .env file and environment "
            f"variables. See .env.example for reference.\n"
            f"Error: {e}"
        ) from e
