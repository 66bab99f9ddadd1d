"""Application configuration using Pydantic settings."""

from __future__ import annotations

from enum import Enum

from pydantic_settings import BaseSettings, SettingsConfigDict

from app.core.decoder import WordOrder


class CollectionMode(str, Enum):
    """How snapshots are refreshed."""

    ON_DEMAND = "on_demand"  # one fresh cycle per scrape
    BACKGROUND = "background"  # fixed-interval loop, scrapes read the cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Controller connection
    DATAKOM_HOST: str = "192.168.100.100"
    DATAKOM_PORT: int = 502
    MODBUS_UNIT_ID: int = 1
    MODBUS_TIMEOUT_SECONDS: float = 5.0
    WORD_ORDER: WordOrder = WordOrder.LOW_FIRST  # D500 firmware puts the low word first
    REGISTER_MAP_FILE: str | None = None  # JSON map; built-in D500 map when unset

    # Collection
    COLLECTION_MODE: CollectionMode = CollectionMode.ON_DEMAND
    POLL_INTERVAL_SECONDS: float = 30.0
    CYCLE_TIMEOUT_SECONDS: float = 30.0

    # Exporter HTTP server
    APP_NAME: str = "Datakom D500 Exporter"
    APP_VERSION: str = "0.1.0"
    EXPORTER_HOST: str = "0.0.0.0"
    EXPORTER_PORT: int = 8000

    # Logging configuration
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False  # Set to True for JSON output (production)
    LOG_INCLUDE_CALLER: bool = True


settings = Settings()
