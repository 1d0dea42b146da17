"""Application settings for InvRec.

Settings are read from ``INVREC_*`` environment variables (or a ``.env``
file) and cached for the lifetime of the process.
"""

import json
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Dict, List, Union

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from invrec.recommender.jobs import DEFAULT_EXCLUDE_KEYWORDS


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="INVREC_",
        env_file=".env",
        extra="ignore",
    )

    # Data locations
    DATA_DIR: str = "data"
    CATALOG_FILENAME: str = "catalog.json"
    ORDERS_FILENAME: str = "orders.csv"
    SETTINGS_FILENAME: str = "recommendation_settings.json"
    RECOMMENDATIONS_DIR: str = "recommendations"

    # Logging
    LOG_LEVEL: str = "INFO"

    # Currency handling for revenue aggregation
    BASE_CURRENCY: str = "CZK"
    EXCHANGE_RATES: Dict[str, float] = {"EUR": 25.0}

    # Order status mapping; when COMPLETED_STATUSES is empty,
    # EXCLUDED_STATUSES are filtered out instead
    COMPLETED_STATUSES: Annotated[List[str], NoDecode] = []
    EXCLUDED_STATUSES: Annotated[List[str], NoDecode] = ["cancelled", "returned", "complaint"]

    # Generation job
    EXCLUDE_KEYWORDS: Annotated[List[str], NoDecode] = DEFAULT_EXCLUDE_KEYWORDS
    TIME_BUDGET_SECONDS: float = 10.0
    REGENERATE_INTERVAL_MINUTES: int = 0  # 0 disables the scheduler

    # Public storefront endpoint
    PUBLIC_MAX_LIMIT: int = 20

    @field_validator("COMPLETED_STATUSES", "EXCLUDED_STATUSES", "EXCLUDE_KEYWORDS", mode="before")
    @classmethod
    def parse_string_list(cls, v: Union[str, List[str]]) -> List[str]:
        """Accept a JSON array or a comma-separated string."""
        if isinstance(v, str):
            stripped = v.strip()
            if not stripped:
                return []
            if stripped.startswith("["):
                return json.loads(stripped)
            return [item.strip() for item in stripped.split(",") if item.strip()]
        return v

    @field_validator("BASE_CURRENCY")
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.strip().upper()

    @property
    def data_path(self) -> Path:
        return Path(self.DATA_DIR)

    @property
    def catalog_path(self) -> Path:
        return self.data_path / self.CATALOG_FILENAME

    @property
    def orders_path(self) -> Path:
        return self.data_path / self.ORDERS_FILENAME

    @property
    def settings_path(self) -> Path:
        return self.data_path / self.SETTINGS_FILENAME

    @property
    def recommendations_path(self) -> Path:
        return self.data_path / self.RECOMMENDATIONS_DIR


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
