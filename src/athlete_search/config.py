"""Centralized configuration for athlete-search using Pydantic Settings."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Strictly typed configuration loaded from ``ATHLETE_SEARCH_*`` environment variables.

    Values are validated once at construction; a misconfigured process fails at
    startup instead of on the first search.
    """

    model_config = SettingsConfigDict(
        env_prefix="ATHLETE_SEARCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_default=True,
        extra="ignore",
    )

    # Storage
    index_path: Path = Field(default=Path("data/index"), description="Directory holding the SQLite index file")
    source_path: Path = Field(default=Path("data/workspace"), description="Root of crawler JSON records for rebuilds")
    sqlite_busy_timeout_ms: int = Field(default=30000, ge=0, description="SQLite busy timeout for all connections")
    sqlite_synchronous: Literal["FULL", "NORMAL", "EXTRA"] = Field(
        default="FULL", description="SQLite synchronous level for the writer; FULL makes each commit durable"
    )

    # Paging
    default_page_size: int = Field(default=10, ge=1, le=100, description="Page size used when none is given")
    max_page_size: int = Field(default=100, ge=1, le=100, description="Upper clamp for requested page sizes")
    max_result_window: int = Field(
        default=10000,
        ge=1,
        description="Ceiling on ranked hits retrieved by one search; deeper windows are rejected",
    )

    # Multi-term query rewriting
    fuzzy_max_edits: int = Field(default=2, ge=0, le=2, description="Maximum edit distance for fuzzy matches")
    fuzzy_max_expansions: int = Field(default=50, ge=1, description="Vocabulary terms a fuzzy query may expand to")

    # Logging
    log_level: str = Field(default="info", description="Root logging level")
    log_json: bool = Field(default=True, description="Emit structured JSON logs")

    # HTTP glue
    http_host: str = Field(default="127.0.0.1", description="Bind address for the HTTP adapter")
    http_port: int = Field(default=15010, ge=1, le=65535, description="Bind port for the HTTP adapter")

    @model_validator(mode="after")
    def _check_paging_bounds(self) -> "Settings":
        if self.default_page_size > self.max_page_size:
            raise ValueError(
                f"default_page_size ({self.default_page_size}) must not exceed max_page_size ({self.max_page_size})"
            )
        if self.max_page_size > self.max_result_window:
            raise ValueError(
                f"max_page_size ({self.max_page_size}) must not exceed max_result_window ({self.max_result_window})"
            )
        return self

    @property
    def index_file(self) -> Path:
        """Path of the SQLite database inside ``index_path``."""
        return self.index_path / "athletes.db"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()
