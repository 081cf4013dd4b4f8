"""
Tract Affordability Atlas - Application Settings
Manages environment variables and configuration using Pydantic
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
import os


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Every value has a default so the engine runs against a local
    ``data/`` directory without any configuration.

    DATABASE_URL is only read when DATASET_BACKEND=sql.
    """

    # Application
    ENVIRONMENT: str = "production"
    LOG_LEVEL: str = "INFO"
    DEBUG: bool = False

    # API settings
    API_TITLE: str = "Tract Affordability Atlas API"
    API_VERSION: str = "1.0.0"
    API_DESCRIPTION: str = "Census tract rent affordability and metro percentile rankings"
    CORS_ALLOW_ORIGINS: str = ""

    # Dataset storage
    # "files": JSON documents under DATA_DIR
    # "sql":   dataset_blobs table reachable through DATABASE_URL
    DATASET_BACKEND: str = "files"
    DATA_DIR: str = "data"
    DATABASE_URL: str = "sqlite:///data/datasets.db"

    # Dataset keys (relative to DATA_DIR for the file backend)
    COUNTY_TO_REGION_KEY: str = "county-to-cbsa"
    TRACT_TO_ZIP_KEY: str = "tract-to-zip"
    ZIP_RENTS_KEY: str = "safmr-by-zip"
    REGION_TRACTS_PREFIX: str = "msa"
    REGION_GEOMETRY_PREFIX: str = "msa-geo"

    # Bounded in-memory caches (number of regions held)
    REGION_CACHE_SIZE: int = 5
    GEOMETRY_CACHE_SIZE: int = 5

    # Request defaults
    DEFAULT_BEDROOM_INDEX: int = 2  # 2BR
    DEFAULT_HOUSEHOLD_SIZE: int = 4

    # Dataset build
    MIN_TRACT_HOUSEHOLDS: int = 50

    # HTTP caching for choropleth payloads (seconds)
    CHOROPLETH_CACHE_MAX_AGE: int = 86400

    # File storage
    LOG_DIR: str = "logs"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        # Create directories if they don't exist
        if self.LOG_DIR:
            os.makedirs(self.LOG_DIR, exist_ok=True)


@lru_cache()
def get_settings() -> Settings:
    """
    Returns cached settings instance.
    Uses lru_cache to avoid re-reading .env on every call.
    """
    return Settings()

