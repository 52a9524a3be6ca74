"""Configuration management for the fund loan service."""

from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_DATABASE_URL = "sqlite:///fund_loans.sqlite3"


@dataclass
class AppConfig:
    """Settings for the loan API and CLI.

    The database URL is handed to the loan store explicitly at construction
    rather than read from a module-level constant.
    """

    database_url: str = DEFAULT_DATABASE_URL
    host: str = "127.0.0.1"
    port: int = 5000
    log_level: str = "INFO"
    log_format: str = "standard"

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Create config from environment variables."""
        return cls(
            database_url=os.getenv("FUND_LOANS_DATABASE_URL", DEFAULT_DATABASE_URL),
            host=os.getenv("FUND_LOANS_HOST", "127.0.0.1"),
            port=int(os.getenv("FUND_LOANS_PORT", "5000")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "standard"),
        )
