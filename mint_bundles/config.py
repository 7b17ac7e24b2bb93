"""
Configuration module for the Mint Bundle Analyzer.
Loads API keys and settings from .env file.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load .env file from project root
_project_root = Path(__file__).parent.parent
load_dotenv(_project_root / ".env")


class Config:
    """Centralised configuration loaded from environment variables."""

    def __init__(self):
        self.helius_api_key: str = self._require("HELIUS_API_KEY")
        self.output_dir: str = os.getenv("OUTPUT_DIR", "./output")
        self.min_slot_transactions: int = self._int("MIN_SLOT_TRANSACTIONS", 2)
        self.cache_ttl_seconds: float = self._float("CACHE_TTL_SECONDS", 300.0)
        self.fetch_timeout_seconds: float = self._float("FETCH_TIMEOUT_SECONDS", 10.0)
        self.history_max_pages: int = self._int("HISTORY_MAX_PAGES", 5)

        # Create output directory if it doesn't exist
        Path(self.output_dir).mkdir(parents=True, exist_ok=True)

    @staticmethod
    def _require(key: str) -> str:
        value = os.getenv(key)
        if not value:
            raise EnvironmentError(
                f"Required environment variable '{key}' is not set. "
                f"Copy .env.example to .env and fill in your API keys."
            )
        return value

    @staticmethod
    def _int(key: str, default: int) -> int:
        value = os.getenv(key)
        if not value:
            return default
        try:
            return int(value)
        except ValueError:
            raise EnvironmentError(f"Environment variable '{key}' must be an integer, got {value!r}")

    @staticmethod
    def _float(key: str, default: float) -> float:
        value = os.getenv(key)
        if not value:
            return default
        try:
            return float(value)
        except ValueError:
            raise EnvironmentError(f"Environment variable '{key}' must be a number, got {value!r}")


def get_config() -> Config:
    """Return a Config instance, raising EnvironmentError if required keys are missing."""
    return Config()
